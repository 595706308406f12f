"""Request/response schemas for subtitle exports.

Wire names are the editor's camelCase; snake_case names are accepted too.
"""

import base64
import binascii
from datetime import datetime
from typing import Any

from PIL import ImageColor
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from captionburn.exceptions import InvalidExportRequestError
from captionburn.render.cues import Cue, EffectType, Style, SubtitlePosition, WordTiming
from captionburn.render.rasterizer import TRANSPARENT


class WordTimingSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    word: str
    start: float = Field(ge=0)
    end: float = Field(ge=0)

    @model_validator(mode="after")
    def validate_window(self) -> "WordTimingSchema":
        if self.end < self.start:
            raise ValueError(f"word '{self.word}' ends before it starts")
        return self

    def to_domain(self) -> WordTiming:
        return WordTiming(word=self.word, start=self.start, end=self.end)


class CueSchema(BaseModel):
    """One timed text entry. ``words`` must be time-ordered and inside the cue."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    text: str
    start: float = Field(ge=0)
    end: float
    words: list[WordTimingSchema] | None = None

    @model_validator(mode="after")
    def validate_timing(self) -> "CueSchema":
        if self.end <= self.start:
            raise ValueError(f"cue '{self.id}' must end after it starts")
        if self.words:
            previous_start = self.start
            for word in self.words:
                if word.start < previous_start:
                    raise ValueError(f"cue '{self.id}' word timings are not in time order")
                if word.start < self.start or word.end > self.end:
                    raise ValueError(f"cue '{self.id}' word '{word.word}' lies outside the cue")
                previous_start = word.start
        return self

    def to_domain(self) -> Cue:
        words = tuple(w.to_domain() for w in self.words) if self.words else None
        return Cue(id=self.id, text=self.text, start=self.start, end=self.end, words=words)


def _check_color(v: str) -> str:
    try:
        ImageColor.getrgb(v)
    except ValueError:
        raise ValueError(f"unsupported color: {v}")
    return v


class StyleSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    font_family: str = Field(default="Arial", alias="fontFamily", min_length=1)
    font_size: float = Field(default=24, alias="fontSize", gt=0)
    text_color: str = Field(default="#ffffff", alias="textColor")
    bg_color: str = Field(default="#000000", alias="bgColor")
    bg_opacity: float = Field(default=0.7, alias="bgOpacity", ge=0, le=1)
    border_radius: float = Field(default=8, alias="borderRadius", ge=0)
    position: SubtitlePosition = SubtitlePosition.BOTTOM
    custom_x: float | None = Field(default=None, alias="customX")
    custom_y: float | None = Field(default=None, alias="customY")
    effect_type: EffectType = Field(default=EffectType.NONE, alias="effectType")

    @field_validator("text_color")
    @classmethod
    def validate_text_color(cls, v: str) -> str:
        return _check_color(v)

    @field_validator("bg_color")
    @classmethod
    def validate_bg_color(cls, v: str) -> str:
        # Only the box may be left out; text always needs a real colour
        if v.lower() == TRANSPARENT:
            return v
        return _check_color(v)

    @model_validator(mode="after")
    def validate_custom_position(self) -> "StyleSchema":
        if self.position == SubtitlePosition.CUSTOM and (self.custom_x is None or self.custom_y is None):
            raise ValueError("customX and customY are required when position is 'custom'")
        return self

    def to_domain(self) -> Style:
        return Style(
            font_family=self.font_family,
            font_size=self.font_size,
            text_color=self.text_color,
            bg_color=self.bg_color,
            bg_opacity=self.bg_opacity,
            border_radius=self.border_radius,
            position=self.position,
            custom_x=self.custom_x,
            custom_y=self.custom_y,
            effect_type=self.effect_type,
        )


class ExportPayload(BaseModel):
    """Cues and style of one export, without the video."""

    model_config = ConfigDict(populate_by_name=True)

    cues: list[CueSchema]
    style: StyleSchema = Field(default_factory=StyleSchema)

    @field_validator("cues")
    @classmethod
    def validate_unique_ids(cls, v: list[CueSchema]) -> list[CueSchema]:
        seen: set[str] = set()
        for cue in v:
            if cue.id in seen:
                raise ValueError(f"duplicate cue id: {cue.id}")
            seen.add(cue.id)
        return v

    def to_domain(self) -> tuple[list[Cue], Style]:
        return [c.to_domain() for c in self.cues], self.style.to_domain()

    def cues_data(self) -> list[dict[str, Any]]:
        """JSON-ready cues as stored on the job row."""
        return [c.model_dump(mode="json", exclude_none=True) for c in self.cues]

    def style_data(self) -> dict[str, Any]:
        return self.style.model_dump(mode="json", by_alias=True)


class ExportRequest(ExportPayload):
    """HTTP body of ``POST /api/exports``."""

    video_base64: str = Field(alias="videoBase64", min_length=1)

    def video_bytes(self) -> bytes:
        data = self.video_base64
        # Accept data URLs as produced by FileReader.readAsDataURL
        if data.startswith("data:") and "," in data:
            data = data.split(",", 1)[1]
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidExportRequestError(f"videoBase64 is not valid base64: {e}")


class ExportCreatedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(serialization_alias="jobId")


class ExportStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(serialization_alias="jobId")
    status: str
    progress: float
    current_stage: str | None = Field(default=None, serialization_alias="currentStage")
    failure_reason: str | None = Field(default=None, serialization_alias="failureReason")
    result_url: str | None = Field(default=None, serialization_alias="resultUrl")
    output_size: int | None = Field(default=None, serialization_alias="outputSize")
    attempts: int
    created_at: datetime | None = Field(default=None, serialization_alias="createdAt")
    started_at: datetime | None = Field(default=None, serialization_alias="startedAt")
    finished_at: datetime | None = Field(default=None, serialization_alias="finishedAt")
    updated_at: datetime | None = Field(default=None, serialization_alias="updatedAt")
