from __future__ import annotations

from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    field_validator,
)

from models.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CAPTION,
    DEFAULT_DURATION_SECONDS,
    MAX_DURATION_SECONDS,
    MAX_TARGET_SIZE,
    MIN_DURATION_SECONDS,
)


class TrackSettings(BaseModel):
    """Template for every new queue item.

    Instances are immutable, so an item holding one keeps the values it was
    created with no matter how the settings change afterwards.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    caption: StrictStr = DEFAULT_CAPTION
    duration: StrictInt = Field(
        default=DEFAULT_DURATION_SECONDS,
        ge=MIN_DURATION_SECONDS,
        le=MAX_DURATION_SECONDS,
    )
    lyrics: StrictStr = ""
    bpm: Optional[StrictInt] = Field(default=None, ge=1)
    key: StrictStr = ""
    genre: StrictStr = ""
    temperature: Optional[float] = Field(default=None, ge=0)
    seed: Optional[StrictInt] = None
    batch_size: Optional[StrictInt] = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    inference_steps: Optional[StrictInt] = Field(default=None, ge=1)
    thinking: Optional[StrictBool] = False
    use_format: Optional[StrictBool] = False
    audio_format: Optional[StrictStr] = None
    time_signature: StrictStr = ""
    use_random_seed: Optional[StrictBool] = None
    lm_temperature: Optional[float] = Field(default=None, ge=0)
    lm_cfg_scale: Optional[float] = None
    top_k: Optional[StrictInt] = Field(default=None, ge=0)
    top_p: Optional[float] = Field(default=None, ge=0, le=1)
    cfg_scale: Optional[float] = None
    model: Optional[StrictStr] = None

    @field_validator("caption")
    @classmethod
    def validate_caption(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Value must be a non-empty string.")
        return trimmed


class SettingsUpdateBody(BaseModel):
    """Partial update; only fields present in the payload are applied."""

    model_config = ConfigDict(extra="forbid")

    caption: Optional[StrictStr] = None
    duration: Optional[StrictInt] = None
    lyrics: Optional[StrictStr] = None
    bpm: Optional[StrictInt] = None
    key: Optional[StrictStr] = None
    genre: Optional[StrictStr] = None
    temperature: Optional[float] = None
    seed: Optional[StrictInt] = None
    batch_size: Optional[StrictInt] = None
    inference_steps: Optional[StrictInt] = None
    thinking: Optional[StrictBool] = None
    use_format: Optional[StrictBool] = None
    audio_format: Optional[StrictStr] = None
    time_signature: Optional[StrictStr] = None
    use_random_seed: Optional[StrictBool] = None
    lm_temperature: Optional[float] = None
    lm_cfg_scale: Optional[float] = None
    top_k: Optional[StrictInt] = None
    top_p: Optional[float] = None
    cfg_scale: Optional[float] = None
    model: Optional[StrictStr] = None


class AutoAdderUpdateBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: Optional[StrictBool] = None
    target_size: Optional[StrictInt] = Field(default=None, ge=1, le=MAX_TARGET_SIZE)
