"""Request bodies for the deal scanner HTTP API."""

from typing import Optional

from pydantic import BaseModel, Field


class StatusUpdateRequest(BaseModel):
    status: Optional[str] = None


class TokenRequest(BaseModel):
    access_token: Optional[str] = Field(default=None, alias="accessToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")

    model_config = {"populate_by_name": True}
