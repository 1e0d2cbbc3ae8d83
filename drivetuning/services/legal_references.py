# drivetuning/services/legal_references.py
"""
Maps violation / rule ids to cited statutes from the bundled legal framework.
Every regional_<id> rule shares the citations stored under "regional".
"""

from dataclasses import dataclass, asdict
from typing import Optional

from drivetuning.services.reference_data import get_reference_data, UneceRegulation

REGIONAL_RULE_PREFIX = "regional_"
REGIONAL_RULE_KEY = "regional"


@dataclass(frozen=True)
class LegalReference:
    law_id: str
    law_name_de: str
    law_name_en: str
    law_url: str
    section: str
    notes_de: Optional[str] = None
    notes_en: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "lawId": self.law_id,
            "lawNameDe": self.law_name_de,
            "lawNameEn": self.law_name_en,
            "lawUrl": self.law_url,
            "section": self.section,
            "notesDe": self.notes_de,
            "notesEn": self.notes_en,
        }


def normalize_rule_id(rule_id) -> str:
    raw = str(rule_id or "").strip()
    if not raw:
        return ""
    if raw.startswith(REGIONAL_RULE_PREFIX):
        return REGIONAL_RULE_KEY
    return raw


def get_legal_references_for_rule_id(rule_id) -> list[LegalReference]:
    """Resolved citations for a rule id. Unknown ids and dangling law ids yield nothing."""
    key = normalize_rule_id(rule_id)
    if not key:
        return []

    data = get_reference_data()
    out = []
    for ref in data.refs_by_rule_id.get(key, ()):
        law = data.laws_by_id.get(ref.law_id)
        if law is None:
            continue
        out.append(LegalReference(
            law_id=law.id,
            law_name_de=law.name_de,
            law_name_en=law.name_en,
            law_url=law.url,
            section=ref.section,
            notes_de=ref.notes_de,
            notes_en=ref.notes_en,
        ))
    return out


def attach_legal_references(violations: list) -> list:
    """Set legal_references on each violation that has citations. Mutates in place."""
    for violation in violations:
        refs = get_legal_references_for_rule_id(violation.rule_id)
        if refs:
            violation.legal_references = refs
    return violations


def get_unece_context(category_id: Optional[str]) -> list[UneceRegulation]:
    category = str(category_id or "").strip().lower()
    if not category:
        return []
    return [reg for reg in get_reference_data().unece_regulations if category in reg.relevant_for]


def unece_to_dict(reg: UneceRegulation) -> dict:
    payload = asdict(reg)
    payload["relevant_for"] = list(reg.relevant_for)
    return payload
