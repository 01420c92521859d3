from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ai_daily_digest.core.config import DEFAULT_HOURS, DEFAULT_TOP_N
from ai_daily_digest.core.constants import AUTO_PRESET


class GenerateRequest(BaseModel):
    hours: int = Field(default=DEFAULT_HOURS, ge=1, le=24 * 30)
    topN: int = Field(default=DEFAULT_TOP_N, ge=1, le=100)


class ShareRequest(BaseModel):
    date: str | None = None


class ConfigRequest(BaseModel):
    preset: str = AUTO_PRESET
    apiKey: str = ""                          # blank keeps the stored key
    baseURL: str = ""
    model: str = ""
    schedules: list[dict[str, Any]] = Field(default_factory=list)


class ConnectionTestRequest(BaseModel):
    preset: str = AUTO_PRESET
    apiKey: str = ""
    baseURL: str = ""
    model: str = ""


class FeedSourceModel(BaseModel):
    name: str = Field(min_length=1)
    xmlUrl: str = Field(min_length=1)
    htmlUrl: str = ""


class RssSourcesRequest(BaseModel):
    sources: list[FeedSourceModel] = Field(default_factory=list)


class RssTestRequest(BaseModel):
    url: str = Field(min_length=1)


class TranslationStatusRequest(BaseModel):
    urls: list[str] = Field(default_factory=list, max_length=200)


class RetranslateRequest(BaseModel):
    url: str = Field(min_length=1)
    title: str = ""
    desc: str = ""
