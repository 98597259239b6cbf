"""Entry point: control API plus the browser it drives."""

from __future__ import annotations

import argparse
import logging
import signal
import threading

import uvicorn

from .config import RemoteConfig
from .controller import RemoteController
from .logs import configure_logging
from .server import create_app

logger = logging.getLogger("channel_remote.main")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="channel-remote", description="Browser session controller for the channel changer")
    parser.add_argument("--host", default=None, help="bind address (default: CHANNEL_REMOTE_BIND_HOST or 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="listen port (default: CHANNEL_REMOTE_PORT or 3001)")
    parser.add_argument("--no-warm-up", action="store_true", help="do not start the browser until the first request")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    config = RemoteConfig.from_env()
    if args.host:
        config.bind_host = args.host
    if args.port:
        config.port = args.port

    log_path = configure_logging(config)
    controller = RemoteController(config)
    controller.log_path = log_path
    logger.info(
        "Starting channel-remote on %s:%s (mode=%s, guide=%s)",
        config.bind_host,
        config.port,
        config.mode,
        config.guide_base_url,
    )
    if config.bind_host not in {"127.0.0.1", "localhost", "::1"} and not config.api_key:
        logger.warning("Listening on %s without an API key", config.bind_host)

    if not args.no_warm_up:
        threading.Thread(target=controller.warm_up, name="channel-remote-warm-up", daemon=True).start()

    app = create_app(controller, shutdown_on_exit=True)
    server = uvicorn.Server(uvicorn.Config(app, host=config.bind_host, port=config.port, log_config=None))

    # uvicorn handles SIGINT/SIGTERM; treat a hangup the same way.
    def _on_hangup(signum, _frame) -> None:
        logger.info("Received signal %s; shutting down", signum)
        server.should_exit = True

    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _on_hangup)

    try:
        server.run()
    finally:
        controller.shutdown()


if __name__ == "__main__":
    main()
