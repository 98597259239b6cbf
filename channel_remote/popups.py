"""Standing filter for upsell/membership interstitials on the video site.

Injected once per page load; the CSS hides known interstitials immediately and
the scanner (interval + MutationObserver) removes them and clicks their
dismiss buttons for the lifetime of the page.
"""

from __future__ import annotations

from .page import Page

POPUP_STYLE_ID = "channel-remote-popup-filter"

POPUP_CSS = """
ytd-sponsorships-offer-renderer,
ytd-membership-offer-renderer,
ytd-paid-content-overlay-renderer,
ytd-mealbar-promo-renderer,
ytd-popup-container:has(ytd-sponsorships-offer-renderer),
tp-yt-paper-dialog:has([class*="membership"]),
[data-target-id*="membership"],
.membership-offer-dialog,
.ytp-paid-content-overlay,
#sponsor-button,
ytd-popup-container[dialog][style-target="player"] {
  display: none !important;
  visibility: hidden !important;
  opacity: 0 !important;
  pointer-events: none !important;
}
"""

POPUP_SCANNER_JS = r"""(() => {
  if (window.__channelRemotePopupScanner) return 'already-installed';
  const dismissSelectors = [
    'button[aria-label*="No thanks" i]',
    '[role="button"][aria-label*="No thanks" i]',
    'tp-yt-paper-button[aria-label*="No thanks" i]',
    'ytd-mealbar-promo-renderer #dismiss-button button',
    'ytd-popup-container button[aria-label="Close"]',
    'button[aria-label*="Dismiss" i]',
  ];
  const removeSelectors = [
    'ytd-sponsorships-offer-renderer',
    'ytd-membership-offer-renderer',
    'ytd-paid-content-overlay-renderer',
    'ytd-mealbar-promo-renderer',
    '[data-target-id*="membership"]',
    '.membership-offer-dialog',
  ];
  const scan = () => {
    let acted = 0;
    for (const selector of dismissSelectors) {
      for (const btn of document.querySelectorAll(selector)) {
        if (btn.offsetParent !== null) {
          btn.click();
          acted += 1;
        }
      }
    }
    for (const selector of removeSelectors) {
      for (const el of document.querySelectorAll(selector)) {
        el.remove();
        acted += 1;
      }
    }
    return acted;
  };
  let pending = false;
  const observer = new MutationObserver(() => {
    if (pending) return;
    pending = true;
    setTimeout(() => { pending = false; scan(); }, 250);
  });
  observer.observe(document.documentElement, { childList: true, subtree: true });
  const interval = setInterval(scan, 2000);
  window.__channelRemotePopupScanner = { observer, interval, scan };
  scan();
  return 'installed';
})()"""


def install_popup_filter(page: Page) -> str:
    page.add_style(POPUP_CSS, POPUP_STYLE_ID)
    return str(page.eval_js(POPUP_SCANNER_JS))


__all__ = ["POPUP_CSS", "POPUP_SCANNER_JS", "install_popup_filter"]
