from __future__ import annotations

import re
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


def _as_str_list(xs: Any) -> List[str]:
    if xs is None:
        return []
    if not isinstance(xs, list):
        raise ValueError("expected a list")
    return [str(x) for x in xs]


class StructuredAnalysis(BaseModel):
    """
    Shape every backend is asked to answer with.

    Unknown keys are ignored; missing keys take their empty defaults. A parse
    with an empty `summary` is treated as "no structured answer" by callers.
    """

    model_config = ConfigDict(extra="ignore")

    summary: str = ""
    likely_issue: str = ""
    confidence: float = 0.0
    evidence: List[str] = Field(default_factory=list)
    potential_fix: List[str] = Field(default_factory=list)
    next_checks: List[str] = Field(default_factory=list)

    @field_validator("summary", "likely_issue", mode="before")
    @classmethod
    def _null_str(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("confidence", mode="before")
    @classmethod
    def _null_confidence(cls, v: Any) -> Any:
        return 0.0 if v is None else v

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, v: float) -> float:
        return max(0.0, min(float(v), 1.0))

    @field_validator("evidence", "potential_fix", "next_checks", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> List[str]:
        return _as_str_list(v)


def _strip_code_fences(text: str) -> str:
    t = (text or "").strip()
    if t.startswith("```"):
        t = re.sub(r"^```[a-zA-Z]*\s*", "", t)
        t = re.sub(r"\s*```$", "", t)
    return t.strip()


def parse_structured_analysis(text: str) -> Optional[StructuredAnalysis]:
    """
    Best-effort parse of a backend response into StructuredAnalysis.

    Returns None (never raises) when the text is not a JSON object of the expected
    shape, or when its summary is empty.
    """
    body = _strip_code_fences(text)
    if not body.startswith("{"):
        return None
    try:
        parsed = StructuredAnalysis.model_validate_json(body)
    except ValidationError:
        return None
    if not parsed.summary.strip():
        return None
    return parsed
