from __future__ import annotations

import json
import math
import re
from typing import Any, Iterable

from minrisk.core.errors import ParseError


_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")

DEFAULT_REASONING = "No specific reasoning provided"


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text.strip()).strip()


def extract_json(text: str) -> Any:
    # Models wrap JSON in fences or prose; fall back to the outermost braces or brackets.
    cleaned = strip_code_fences(text or "")
    try:
        return json.loads(cleaned)
    except ValueError:
        pass
    for pattern in (_OBJECT_RE, _ARRAY_RE):
        match = pattern.search(cleaned)
        if match is None:
            continue
        try:
            return json.loads(match.group(0))
        except ValueError:
            continue
    raise ParseError(
        "Failed to parse AI response as JSON",
        details={"response_preview": cleaned[:200]},
    )


def extract_json_object(text: str) -> dict[str, Any]:
    parsed = extract_json(text)
    if not isinstance(parsed, dict):
        raise ParseError("AI response JSON is not an object")
    return parsed


def _as_score(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def clamp_score(score: float) -> int:
    return int(round(min(100.0, max(0.0, score))))


def filter_suggestions(
    raw: Iterable[Any],
    threshold: int,
    *,
    allowed_risk_ids: set[str] | None = None,
) -> list[dict[str, Any]]:
    # Keep model order; drop entries below the threshold, without a score, or naming unknown risks.
    # A risk named twice keeps the first position with the highest score.
    kept: list[dict[str, Any]] = []
    positions: dict[str, int] = {}
    for item in raw:
        if not isinstance(item, dict):
            continue
        score = _as_score(item.get("confidence_score"))
        if score is None or score < threshold:
            continue
        risk_id = item.get("risk_id")
        if allowed_risk_ids is not None and str(risk_id) not in allowed_risk_ids:
            continue
        keywords = item.get("keywords_matched")
        suggestion = {
            "risk_id": str(risk_id) if risk_id is not None else None,
            "risk_code": item.get("risk_code"),
            "risk_title": item.get("risk_title"),
            "confidence_score": clamp_score(score),
            "reasoning": item.get("reasoning") or DEFAULT_REASONING,
            "keywords_matched": [str(word) for word in keywords] if isinstance(keywords, list) else [],
        }
        key = suggestion["risk_id"]
        if key is None:
            kept.append(suggestion)
            continue
        if key in positions:
            index = positions[key]
            if suggestion["confidence_score"] > kept[index]["confidence_score"]:
                kept[index] = suggestion
            continue
        positions[key] = len(kept)
        kept.append(suggestion)
    return kept
