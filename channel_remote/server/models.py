from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ChangeTargetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(min_length=1)
    target_id: str | None = Field(default=None, alias="targetId")


class NavigateVideoRequest(BaseModel):
    url: str = Field(min_length=1)


class CaptionsRequest(BaseModel):
    action: str = Field(min_length=1)
