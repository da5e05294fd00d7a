from __future__ import annotations

import pytest

from minrisk.core.errors import ParseError
from minrisk.services.ai.parsing import (
    DEFAULT_REASONING,
    extract_json,
    extract_json_object,
    filter_suggestions,
)


def test_threshold_filter_keeps_order_and_drops_below_threshold() -> None:
    raw = [{"risk_id": f"r{idx}", "confidence_score": score} for idx, score in enumerate([95, 72, 69, 100])]
    kept = filter_suggestions(raw, 70)
    assert [item["confidence_score"] for item in kept] == [95, 72, 100]
    assert [item["risk_id"] for item in kept] == ["r0", "r1", "r3"]


def test_scores_are_clamped_and_non_numeric_dropped() -> None:
    raw = [
        {"risk_id": "a", "confidence_score": 140},
        {"risk_id": "b", "confidence_score": "85"},
        {"risk_id": "c", "confidence_score": "high"},
        {"risk_id": "d"},
        {"risk_id": "e", "confidence_score": True},
        "not-a-dict",
    ]
    kept = filter_suggestions(raw, 70)
    assert [(item["risk_id"], item["confidence_score"]) for item in kept] == [("a", 100), ("b", 85)]
    assert kept[0]["reasoning"] == DEFAULT_REASONING
    assert kept[0]["keywords_matched"] == []


def test_unknown_risk_ids_are_dropped() -> None:
    raw = [
        {"risk_id": "known", "confidence_score": 90, "keywords_matched": ["outage", 7]},
        {"risk_id": "invented", "confidence_score": 99},
    ]
    kept = filter_suggestions(raw, 70, allowed_risk_ids={"known"})
    assert [item["risk_id"] for item in kept] == ["known"]
    assert kept[0]["keywords_matched"] == ["outage", "7"]


def test_duplicate_risk_ids_keep_highest_score_once() -> None:
    raw = [
        {"risk_id": "dup", "confidence_score": 80, "reasoning": "first"},
        {"risk_id": "other", "confidence_score": 75},
        {"risk_id": "dup", "confidence_score": 90, "reasoning": "second"},
        {"risk_id": "dup", "confidence_score": 85},
    ]
    kept = filter_suggestions(raw, 70, allowed_risk_ids={"dup", "other"})
    assert [(item["risk_id"], item["confidence_score"]) for item in kept] == [("dup", 90), ("other", 75)]
    assert kept[0]["reasoning"] == "second"


def test_extract_json_tolerates_code_fences_and_prose() -> None:
    fenced = '```json\n{"suggestions": [{"risk_id": "x"}]}\n```'
    assert extract_json_object(fenced) == {"suggestions": [{"risk_id": "x"}]}
    prose = 'Here is the analysis:\n{"suggestions": []}\nLet me know if you need more.'
    assert extract_json_object(prose) == {"suggestions": []}
    assert extract_json('```\n[{"indicator_name": "Failed payments"}]\n```') == [
        {"indicator_name": "Failed payments"}
    ]


def test_extract_json_raises_parse_error_when_nothing_recoverable() -> None:
    with pytest.raises(ParseError):
        extract_json("I could not find any relevant risks.")
    with pytest.raises(ParseError):
        extract_json_object("[1, 2, 3]")
