# drivetuning/services/reference_data.py
"""
Bundled reference datasets (regional rules, legal framework, manufacturer
approval dictionary, UNECE context).

Loaded once per process into immutable structures and shared read-only by
every request handler. Call reset_reference_data() to force a reload.
"""

import json
import os
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from drivetuning.config import settings
from drivetuning.utils.json_parser import safe_list
from drivetuning.utils.logger import get_logger
from drivetuning.utils.vocab import Severity, parse_severity

logger = get_logger(__name__)

REGIONAL_RULES_FILE = "germany-regional-rules.json"
LEGAL_FRAMEWORK_FILE = "german-legal-framework.json"
TUNING_LEGALITY_FILE = "tuning-legality-de.json"
UNECE_FILE = "unece-regulations.json"


@dataclass(frozen=True)
class RegionalRule:
    id: str
    state_id: str
    name_de: str
    description_de: str
    affected_categories: Tuple[str, ...]
    severity: str                     # info | warning | critical
    source_url: Optional[str] = None
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stateId": self.state_id,
            "nameDe": self.name_de,
            "descriptionDe": self.description_de,
            "affectedCategories": list(self.affected_categories),
            "severity": self.severity,
            "sourceUrl": self.source_url,
            "validFrom": self.valid_from,
            "validUntil": self.valid_until,
        }


@dataclass(frozen=True)
class Law:
    id: str
    name_de: str
    name_en: str
    url: str


@dataclass(frozen=True)
class LawReference:
    law_id: str
    section: str
    notes_de: Optional[str] = None
    notes_en: Optional[str] = None


@dataclass(frozen=True)
class TuningLegalityItem:
    brand: str
    model: str
    approval_type: str
    source_id: str
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    approval_number: Optional[str] = None
    source_url: Optional[str] = None
    vehicle_compatibility: Optional[str] = None
    notes_de: Optional[str] = None
    notes_en: Optional[str] = None
    parameters: Optional[Mapping] = None


@dataclass(frozen=True)
class UneceRegulation:
    id: str
    name_de: str
    name_en: str
    url: str
    relevant_for: Tuple[str, ...]


@dataclass(frozen=True)
class ReferenceData:
    regional_rules: Tuple[RegionalRule, ...]
    laws_by_id: Mapping[str, Law]
    refs_by_rule_id: Mapping[str, Tuple[LawReference, ...]]
    tuning_items: Tuple[TuningLegalityItem, ...]
    tuning_categories: Tuple[Mapping, ...]
    unece_regulations: Tuple[UneceRegulation, ...]


def _read_json(filename: str):
    path = os.path.join(settings.REFERENCE_DATA_DIR, filename)
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.warning(f"[REFDATA] Dataset missing: {path}")
        return {}
    except json.JSONDecodeError as e:
        logger.error(f"[REFDATA] Dataset {path} is not valid JSON: {e}")
        return {}


def _str_or_none(value) -> Optional[str]:
    return value if isinstance(value, str) else None


def _build_regional_rules(payload) -> Tuple[RegionalRule, ...]:
    rules = []
    for r in safe_list(payload.get("rules") if isinstance(payload, dict) else None):
        if not isinstance(r, dict) or not isinstance(r.get("id"), str):
            continue
        rules.append(RegionalRule(
            id=r["id"],
            state_id=str(r.get("stateId") or ""),
            name_de=str(r.get("nameDe") or ""),
            description_de=str(r.get("descriptionDe") or ""),
            affected_categories=tuple(str(c or "") for c in safe_list(r.get("affectedCategories"))),
            severity=(parse_severity(r.get("severity")) or Severity.INFO).value,
            source_url=_str_or_none(r.get("sourceUrl")),
            valid_from=_str_or_none(r.get("validFrom")),
            valid_until=_str_or_none(r.get("validUntil")),
        ))
    return tuple(rules)


def _build_laws(payload) -> Mapping[str, Law]:
    laws = {}
    for law in safe_list(payload.get("laws") if isinstance(payload, dict) else None):
        if not isinstance(law, dict) or not isinstance(law.get("id"), str):
            continue
        laws[law["id"]] = Law(
            id=law["id"],
            name_de=str(law.get("nameDe") or ""),
            name_en=str(law.get("nameEn") or ""),
            url=str(law.get("url") or ""),
        )
    return MappingProxyType(laws)


def _build_rule_references(payload) -> Mapping[str, Tuple[LawReference, ...]]:
    index = {}
    for rule in safe_list(payload.get("ruleIdReferences") if isinstance(payload, dict) else None):
        if not isinstance(rule, dict) or not isinstance(rule.get("ruleId"), str):
            continue
        refs = tuple(
            LawReference(
                law_id=ref["lawId"],
                section=ref["section"],
                notes_de=_str_or_none(ref.get("notesDe")),
                notes_en=_str_or_none(ref.get("notesEn")),
            )
            for ref in safe_list(rule.get("refs"))
            if isinstance(ref, dict) and isinstance(ref.get("lawId"), str) and isinstance(ref.get("section"), str)
        )
        index[rule["ruleId"]] = refs
    return MappingProxyType(index)


def _build_tuning_dictionary(payload):
    items, categories = [], []
    for cat in safe_list(payload.get("categories") if isinstance(payload, dict) else None):
        if not isinstance(cat, dict):
            continue
        subcategories = []
        for sub in safe_list(cat.get("subcategories")):
            if not isinstance(sub, dict):
                continue
            subcategories.append(MappingProxyType({
                "id": sub.get("id"),
                "name": sub.get("name"),
                "nameDe": sub.get("nameDe"),
                "approvalTypes": tuple(safe_list(sub.get("approvalTypes"))),
                "criticalParameters": tuple(safe_list(sub.get("criticalParameters"))),
            }))
            for it in safe_list(sub.get("items")):
                if not isinstance(it, dict):
                    continue
                params = it.get("parameters")
                items.append(TuningLegalityItem(
                    brand=str(it.get("brand") or ""),
                    model=str(it.get("model") or ""),
                    approval_type=str(it.get("approvalType") or "NONE"),
                    source_id=str(it.get("sourceId") or ""),
                    category_id=cat.get("id"),
                    subcategory_id=sub.get("id"),
                    approval_number=_str_or_none(it.get("approvalNumber")),
                    source_url=_str_or_none(it.get("sourceUrl")),
                    vehicle_compatibility=_str_or_none(it.get("vehicleCompatibility")),
                    notes_de=_str_or_none(it.get("notesDe")),
                    notes_en=_str_or_none(it.get("notesEn")),
                    parameters=MappingProxyType(dict(params)) if isinstance(params, dict) else None,
                ))
        categories.append(MappingProxyType({
            "id": cat.get("id"),
            "name": cat.get("name"),
            "nameDe": cat.get("nameDe"),
            "subcategories": tuple(subcategories),
        }))
    return tuple(items), tuple(categories)


def _build_unece(payload) -> Tuple[UneceRegulation, ...]:
    if not isinstance(payload, dict):
        return ()
    return tuple(
        UneceRegulation(
            id=reg_id,
            name_de=str(reg.get("nameDe") or ""),
            name_en=str(reg.get("nameEn") or ""),
            url=str(reg.get("url") or ""),
            relevant_for=tuple(str(c) for c in safe_list(reg.get("relevantFor"))),
        )
        for reg_id, reg in payload.items()
        if isinstance(reg, dict)
    )


@lru_cache(maxsize=1)
def get_reference_data() -> ReferenceData:
    """Load every bundled dataset. Cached for the process lifetime."""
    framework = _read_json(LEGAL_FRAMEWORK_FILE)
    tuning_items, tuning_categories = _build_tuning_dictionary(_read_json(TUNING_LEGALITY_FILE))
    data = ReferenceData(
        regional_rules=_build_regional_rules(_read_json(REGIONAL_RULES_FILE)),
        laws_by_id=_build_laws(framework),
        refs_by_rule_id=_build_rule_references(framework),
        tuning_items=tuning_items,
        tuning_categories=tuning_categories,
        unece_regulations=_build_unece(_read_json(UNECE_FILE)),
    )
    logger.info(
        f"[REFDATA] Loaded {len(data.regional_rules)} regional rules, "
        f"{len(data.laws_by_id)} laws, {len(data.refs_by_rule_id)} rule references, "
        f"{len(data.tuning_items)} dictionary items"
    )
    return data


def reset_reference_data():
    get_reference_data.cache_clear()
