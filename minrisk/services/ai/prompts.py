from __future__ import annotations

from minrisk.domain.models import Incident, IncidentPatternAnalysis, Risk


_SEVERITY_SCALE = "(1=LOW, 2=MEDIUM, 3=HIGH, 4=CRITICAL)"


def _or_na(value: object) -> str:
    return str(value) if value not in (None, "") else "N/A"


def build_incident_mapping_prompt(
    incident: Incident,
    risks: list[Risk],
    pattern: IncidentPatternAnalysis | None,
    *,
    min_confidence: int,
) -> str:
    risk_lines = []
    for idx, risk in enumerate(risks, start=1):
        risk_lines.append(
            f"{idx}. ID: {risk.id}\n"
            f"   Code: [{risk.risk_code}]\n"
            f"   Title: {risk.risk_title}\n"
            f"   Category: {_or_na(risk.category)}\n"
            f"   Division: {_or_na(risk.division)}\n"
            f"   Description: {_or_na(risk.risk_description)}\n"
            f"   Current Status: {risk.status}"
        )

    incident_lines = [
        f"Title: {incident.title}",
        f"Type: {_or_na(incident.incident_type)}",
        f"Severity: {_or_na(incident.severity)} {_SEVERITY_SCALE}",
        f"Date: {_or_na(incident.incident_date)}",
        f"Division: {_or_na(incident.division)}",
        f"Department: {_or_na(incident.department)}",
        f"Description: {_or_na(incident.description)}",
    ]
    if incident.financial_impact:
        incident_lines.append(f"Financial Impact: {incident.financial_impact}")
    if incident.root_cause:
        incident_lines.append(f"Root Cause: {incident.root_cause}")
    if incident.impact_description:
        incident_lines.append(f"Impact: {incident.impact_description}")

    sections = [
        "You are an expert enterprise risk management analyst specializing in "
        "incident-to-risk classification. Determine which organizational risks the "
        "incident below relates to.",
        "INCIDENT DETAILS:\n" + "\n".join(incident_lines),
    ]
    if pattern is not None and pattern.similar_mapped_count > 0:
        sections.append(
            "HISTORICAL PATTERN INTELLIGENCE:\n"
            f"Similar incidents in the past ({pattern.similar_mapped_count} occurrences) were most "
            "commonly mapped to:\n"
            f"- Risk Code: {_or_na(pattern.most_common_risk_code)}\n"
            f"- Historical Confidence: {pattern.historical_confidence_pct or 0}%\n"
            "Treat this as context and analyze the current incident independently."
        )
    sections.append(
        f"ORGANIZATIONAL RISK REGISTER ({len(risks)} active risks):\n" + "\n\n".join(risk_lines)
    )
    sections.append(
        "CLASSIFICATION CRITERIA:\n"
        "1. MATERIALIZATION: the risk actually occurred\n"
        "2. NEAR MISS: the incident almost caused the risk to materialize\n"
        "3. CONTROL FAILURE: a control for this risk failed\n"
        "4. INDICATOR: the incident is an early warning sign of this risk\n\n"
        "Score confidence from 0 to 100. "
        f"Only suggest risks with confidence >= {min_confidence}, ranked highest first. "
        "Extract 3-8 keywords from the incident that match risk terminology for each suggestion."
    )
    sections.append(
        "RESPOND WITH ONLY THIS JSON (no markdown, no explanations):\n"
        "{\n"
        '  "suggestions": [\n'
        "    {\n"
        '      "risk_id": "uuid-from-risk-register",\n'
        '      "risk_code": "FIN-OPS-001",\n'
        '      "risk_title": "Transaction Processing Errors",\n'
        '      "confidence_score": 85,\n'
        '      "reasoning": "Specific evidence from the incident",\n'
        '      "keywords_matched": ["transaction", "error"],\n'
        '      "relationship_type": "materialized"\n'
        "    }\n"
        "  ]\n"
        "}"
    )
    return "\n\n".join(sections)


def build_kri_prompt(risk: Risk, *, max_suggestions: int) -> str:
    return "\n\n".join(
        [
            "You are a risk management expert. Suggest key risk indicators (KRIs) that would "
            "give early warning that the risk below is materializing.",
            "RISK:\n"
            f"Code: {risk.risk_code}\n"
            f"Title: {risk.risk_title}\n"
            f"Category: {_or_na(risk.category)}\n"
            f"Division: {_or_na(risk.division)}\n"
            f"Department: {_or_na(risk.department)}\n"
            f"Description: {_or_na(risk.risk_description)}",
            f"Return at most {max_suggestions} KRIs as a JSON array. Each element must have: "
            '"indicator_name", "description", "measurement_unit", "frequency" '
            "(daily, weekly, monthly or quarterly), \"lower_threshold\", \"upper_threshold\", "
            '"target_value" and "rationale".',
            "RESPOND WITH ONLY THE JSON ARRAY (no markdown, no explanations).",
        ]
    )
