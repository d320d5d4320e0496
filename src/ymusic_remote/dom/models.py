"""Result models for page scripts."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ymusic_remote.config import COVER_SIZE_REPLACEMENTS


def upscale_cover_url(url: str) -> str:
    """Swap a thumbnail size segment for the 400x400 variant."""
    for small, large in COVER_SIZE_REPLACEMENTS:
        if small in url:
            return url.replace(small, large, 1)
    return url


class PageResult(BaseModel):
    """Base for values returned by page scripts (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ActionResult(PageResult):
    success: bool
    message: str = ""


class PlaybackState(PageResult):
    is_playing: bool = False


class LikeState(PageResult):
    is_liked: bool = False
    debug: str | None = None


class MuteState(PageResult):
    is_muted: bool = False
    debug: str | None = None


class UiReady(PageResult):
    ready: bool = False


class TrackInfoResult(PageResult):
    success: bool
    message: str | None = None
    cover_url: str | None = None
    title: str | None = None
    artist: str | None = None
    diagnostics: dict[str, Any] | None = None

    def to_track_info(self) -> TrackInfo | None:
        if not (self.success and self.cover_url and self.title and self.artist):
            return None
        return TrackInfo(
            cover_url=upscale_cover_url(self.cover_url),
            original_cover_url=self.cover_url,
            title=self.title,
            artist=self.artist,
        )


class TrackTimeResult(PageResult):
    success: bool
    message: str | None = None
    current_time: str | None = None
    total_time: str | None = None
    progress_value: float = 0.0
    progress_max: float = 100.0
    progress_percent: float = 0.0

    def to_track_time(self) -> TrackTime | None:
        if not (self.success and self.current_time and self.total_time):
            return None
        return TrackTime(
            current_time=self.current_time,
            total_time=self.total_time,
            progress_value=self.progress_value,
            progress_max=self.progress_max,
            progress_percent=self.progress_percent,
        )


class TrackInfo(BaseModel):
    """Metadata of the current track."""

    cover_url: str
    original_cover_url: str
    title: str
    artist: str


class TrackTime(BaseModel):
    """Playback position of the current track."""

    current_time: str
    total_time: str
    progress_value: float = 0.0
    progress_max: float = 100.0
    progress_percent: float = 0.0
