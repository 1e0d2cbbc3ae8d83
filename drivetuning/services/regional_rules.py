# drivetuning/services/regional_rules.py
"""
Regional rule lookup over the bundled germany-regional-rules dataset.

State is mandatory: no state → no rules. Rules with a parseable validUntil in
the past are dropped; missing or unparseable validUntil keeps the rule.
validFrom is not evaluated.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from drivetuning.services.reference_data import RegionalRule, get_reference_data
from drivetuning.utils.vocab import Severity, map_category_to_dictionary


def _parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 only ("2025-12-31", "2025-12-31T00:00:00Z"). Anything else, e.g.
    "2020/01/01", counts as unparseable and leaves the rule active.
    """
    if not raw or not isinstance(raw, str):
        return None
    try:
        parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_expired(rule: RegionalRule, now: Optional[datetime] = None) -> bool:
    valid_until = _parse_timestamp(rule.valid_until)
    if valid_until is None:
        return False
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return valid_until < now


def get_regional_rules(state_id: Optional[str], category_id: Optional[str] = None,
                       now: Optional[datetime] = None) -> list[RegionalRule]:
    """All active rules of a state, optionally narrowed to one category."""
    state = str(state_id or "").strip().upper()
    category = str(category_id or "").strip().lower()
    if not state:
        return []

    matches = []
    for rule in get_reference_data().regional_rules:
        if rule.state_id.upper() != state:
            continue
        if category and category not in [c.lower() for c in rule.affected_categories]:
            continue
        if is_expired(rule, now):
            continue
        matches.append(rule)
    return matches


def collect_regional_rules(state_id: Optional[str], categories: Iterable[str] = (),
                           now: Optional[datetime] = None) -> list[RegionalRule]:
    """
    Aggregate rules over several modification categories, deduplicated by id
    (first occurrence wins). An empty category list means "any category".
    """
    category_ids = []
    for raw in categories or ():
        if not isinstance(raw, str) or not raw.strip():
            continue
        category_ids.append(map_category_to_dictionary(raw) or raw.strip().lower())

    if category_ids:
        found = [rule for cid in category_ids for rule in get_regional_rules(state_id, cid, now)]
    else:
        found = get_regional_rules(state_id, None, now)

    unique = {}
    for rule in found:
        if rule.id and rule.id not in unique:
            unique[rule.id] = rule
    return list(unique.values())


def format_warning(rule: RegionalRule) -> str:
    return f"[{rule.state_id}] {rule.name_de}: {rule.description_de}"


def summarize_regional_rules(state_id: Optional[str], rules: list[RegionalRule]) -> dict:
    """Response body shape for the regional-rules endpoints."""
    state = str(state_id).strip().upper() if state_id else None
    return {
        "stateId": state or None,
        "count": len(rules),
        "criticalCount": sum(1 for r in rules if r.severity == Severity.CRITICAL.value),
        "warnings": [format_warning(r) for r in rules],
        "rules": [r.to_dict() for r in rules],
    }
