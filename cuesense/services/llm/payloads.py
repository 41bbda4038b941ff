"""Validated shapes of the JSON objects the LLM is asked to return."""
from __future__ import annotations

import json
import re
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cuesense.services.emotion.types import DIMENSION_NAMES, MAX_SECONDARY

_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json(text: str) -> Dict[str, Any]:
    """Pull the first JSON object out of an LLM reply (fenced or bare).

    Raises:
        ValueError: If no object is found or it does not parse.
    """
    text = (text or "").strip()
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0].strip()
    elif "```" in text:
        text = text.split("```")[1].split("```")[0].strip()

    match = _BARE_OBJECT.search(text)
    if not match:
        raise ValueError("No JSON object in LLM response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Malformed JSON in LLM response: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("LLM response JSON is not an object")
    return data


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class EmotionPayload(BaseModel):
    """``{primary, secondary, intensity, dimensions, confidence}``."""
    model_config = ConfigDict(extra="ignore")

    primary: str = "中性"
    secondary: List[str] = Field(default_factory=list)
    intensity: int = 5
    dimensions: Dict[str, int] = Field(default_factory=dict, validate_default=True)
    confidence: float = 0.5

    @field_validator("primary", mode="before")
    @classmethod
    def _primary_or_neutral(cls, v: Any) -> Any:
        return v or "中性"

    @field_validator("secondary", mode="before")
    @classmethod
    def _secondary_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("secondary")
    @classmethod
    def _secondary_cap(cls, v: List[str]) -> List[str]:
        return v[:MAX_SECONDARY]

    @field_validator("intensity", mode="before")
    @classmethod
    def _intensity_range(cls, v: Any) -> Any:
        if v is None or v == 0:
            return 5
        return int(round(_clamp(float(v), 1, 10)))

    @field_validator("dimensions", mode="before")
    @classmethod
    def _dimension_range(cls, v: Any) -> Any:
        raw = v if isinstance(v, dict) else {}
        return {
            name: int(round(_clamp(float(raw.get(name) or 0), 0, 10)))
            for name in DIMENSION_NAMES
        }

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence_range(cls, v: Any) -> Any:
        if v is None or v == 0:
            return 0.5
        value = float(v)
        if value > 1.0:
            # Percent-style answer
            value /= 100.0
        return _clamp(value, 0.0, 1.0)


class ScenePayload(BaseModel):
    """``{scene, confidence, description, reasoning}``; confidence is 0-100."""
    model_config = ConfigDict(extra="ignore")

    scene: str = "未识别"
    confidence: int = 50
    description: str = ""
    reasoning: str = ""

    @field_validator("scene", mode="before")
    @classmethod
    def _scene_or_unrecognized(cls, v: Any) -> Any:
        return v or "未识别"

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence_range(cls, v: Any) -> Any:
        if v is None or v == 0:
            return 50
        value = float(v)
        if 0.0 < value < 1.0:
            # Fraction-style answer such as 0.85
            value *= 100.0
        return int(round(_clamp(value, 0, 100)))

    @field_validator("description", "reasoning", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Any:
        return "" if v is None else str(v)
