# drivetuning/services/legality_validator.py
"""
Legality assessment for a single modification.

Combines:
  1. the best match from the manufacturer approval dictionary,
  2. the evidence attached to the modification (documents / approval docs),
  3. critical-parameter checks (clearance, track width, ET, noise),
  4. regional rules for the car's federal state,
into a LegalityStatus, a list of violations with cited statutes, and notes.
Any critical violation forces ILLEGAL.
"""

import math
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from drivetuning.models.modification import Modification
from drivetuning.services.legal_references import LegalReference, attach_legal_references
from drivetuning.services.reference_data import TuningLegalityItem, get_reference_data
from drivetuning.services.regional_rules import format_warning, get_regional_rules
from drivetuning.utils.errors import ValidationError
from drivetuning.utils.json_parser import get_nested, parse_number_or_none, read_field, safe_parse_object
from drivetuning.utils.logger import get_logger
from drivetuning.utils.vocab import (
    LegalityStatus, ReferenceApprovalType, Severity, TuvStatus,
    map_category_to_dictionary, norm_upper, parse_reference_approval_type,
)

logger = get_logger(__name__)

APPROVAL_EVIDENCE_TYPES = {"ABE", "ABG", "EBE", "TEILEGUTACHTEN", "EINZELABNAHME", "EINTRAGUNG", "ECE"}
STRONG_EVIDENCE_TYPES = ("EINTRAGUNG", "EINZELABNAHME")
DIRECT_APPROVAL_TYPES = {
    ReferenceApprovalType.ABE, ReferenceApprovalType.ABG,
    ReferenceApprovalType.ECE, ReferenceApprovalType.EBE,
}
INSPECTION_APPROVAL_TYPES = {ReferenceApprovalType.EINZELABNAHME_21, ReferenceApprovalType.EINTRAGUNGSPFLICHTIG}

MAX_TRACK_WIDTH_CHANGE_MM = 20
SUGGESTION_LIMIT_DEFAULT = 10
SUGGESTION_LIMIT_MAX = 25
NOTES_VIOLATION_LIMIT = 2

REFERENCE_NOTES = {
    ReferenceApprovalType.ABG: "ABG is often vehicle/headlight specific; check Annex/vehicle list.",
    ReferenceApprovalType.TEILEGUTACHTEN: "Teilegutachten usually requires inspection and registration.",
    ReferenceApprovalType.EINZELABNAHME_21: "§21 individual approval is often required for combinations/deviations.",
}


@dataclass
class Violation:
    rule_id: str
    severity: str                       # info | warning | critical
    message_de: str
    message_en: str
    legal_references: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ruleId": self.rule_id,
            "severity": self.severity,
            "messageDe": self.message_de,
            "messageEn": self.message_en,
            "legalReferences": [r.to_dict() for r in self.legal_references if isinstance(r, LegalReference)],
        }


@dataclass
class LegalityAssessment:
    legality_status: LegalityStatus
    legality_approval_type: Optional[str] = None
    legality_approval_number: Optional[str] = None
    legality_source_id: Optional[str] = None
    legality_source_url: Optional[str] = None
    legality_notes: Optional[str] = None
    violations: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "legalityStatus": self.legality_status.value,
            "legalityApprovalType": self.legality_approval_type,
            "legalityApprovalNumber": self.legality_approval_number,
            "legalitySourceId": self.legality_source_id,
            "legalitySourceUrl": self.legality_source_url,
            "legalityNotes": self.legality_notes,
            "violations": [v.to_dict() for v in self.violations],
        }


# ── Manufacturer dictionary search ──────────────────────────────────────────

def _fold(text) -> str:
    """Lowercase, strip accents, ß → ss."""
    decomposed = unicodedata.normalize("NFD", str(text or "").strip().lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.replace("ß", "ss")


def _clamp_limit(limit) -> int:
    n = limit if isinstance(limit, int) and not isinstance(limit, bool) else SUGGESTION_LIMIT_DEFAULT
    return max(1, min(SUGGESTION_LIMIT_MAX, n))


def suggest_tuning_legality(q: str = "", category_id: Optional[str] = None,
                            subcategory_id: Optional[str] = None,
                            approval_number: Optional[str] = None,
                            limit: Optional[int] = None) -> list[TuningLegalityItem]:
    """Dictionary items matching the query; brand/model prefix matches rank first."""
    query = _fold(q)
    items = list(get_reference_data().tuning_items)

    if category_id:
        items = [i for i in items if i.category_id == category_id.strip()]
    if subcategory_id:
        items = [i for i in items if i.subcategory_id == subcategory_id.strip()]
    if approval_number and approval_number.strip():
        wanted = _fold(approval_number)
        items = [i for i in items if wanted in _fold(i.approval_number or "")]
    if query:
        items = [
            i for i in items
            if query in _fold(f"{i.brand} {i.model} {i.approval_number or ''} {i.vehicle_compatibility or ''}")
        ]

    def rank(item: TuningLegalityItem):
        label = _fold(f"{item.brand} {item.model}")
        prefix = 0 if query and label.startswith(query) else 1
        return prefix, label

    return sorted(items, key=rank)[:_clamp_limit(limit)]


def normalize_approval_number_hint(raw) -> Optional[str]:
    text = raw.strip() if isinstance(raw, str) else ""
    if not text:
        return None
    compact = re.sub(r"\s+", "", text)
    if re.fullmatch(r"\d{3,8}", compact):
        return f"KBA {compact}"
    if re.fullmatch(r"KBA\d{3,8}", compact, flags=re.IGNORECASE):
        return f"KBA {compact[3:]}"
    return re.sub(r"\s+", " ", text)


def extract_approval_number_hints(mod) -> list[str]:
    hints = []
    for approval in read_field(mod, "approval_documents") or []:
        hint = normalize_approval_number_hint(read_field(approval, "approval_number"))
        if hint:
            hints.append(hint)
    for doc in read_field(mod, "documents") or []:
        hint = normalize_approval_number_hint(read_field(doc, "document_number"))
        if hint:
            hints.append(hint)
    return list(dict.fromkeys(hints))


def list_tuning_categories() -> list[dict]:
    """Dictionary categories with their subcategories, approval kinds and critical parameters."""
    return [
        {
            "id": cat["id"],
            "name": cat["name"],
            "nameDe": cat["nameDe"],
            "subcategories": [
                {**sub, "approvalTypes": list(sub["approvalTypes"]), "criticalParameters": list(sub["criticalParameters"])}
                for sub in cat["subcategories"]
            ],
        }
        for cat in get_reference_data().tuning_categories
    ]


# ── Evidence ────────────────────────────────────────────────────────────────

def has_evidence_type(mod, evidence_type: str) -> bool:
    wanted = norm_upper(evidence_type)
    if any(norm_upper(read_field(d, "type")) == wanted for d in read_field(mod, "documents") or []):
        return True
    return any(norm_upper(read_field(a, "approval_type")) == wanted
               for a in read_field(mod, "approval_documents") or [])


def detect_strong_evidence(mod) -> bool:
    return any(has_evidence_type(mod, t) for t in STRONG_EVIDENCE_TYPES)


def evidence_types(mod) -> list[str]:
    found = [norm_upper(read_field(d, "type")) for d in read_field(mod, "documents") or []]
    found += [norm_upper(read_field(a, "approval_type")) for a in read_field(mod, "approval_documents") or []]
    return list(dict.fromkeys(t for t in found if t in APPROVAL_EVIDENCE_TYPES))


def compute_status_from_reference(mod, ref_approval_type) -> LegalityStatus:
    tuv = norm_upper(read_field(mod, "tuv_status"))
    if tuv == TuvStatus.GREEN_REGISTERED.value:
        return LegalityStatus.FULLY_LEGAL
    if tuv == TuvStatus.RED_RACING.value:
        return LegalityStatus.ILLEGAL

    if detect_strong_evidence(mod):
        return LegalityStatus.FULLY_LEGAL

    ref = parse_reference_approval_type(ref_approval_type)
    if ref is None or ref == ReferenceApprovalType.NONE:
        return LegalityStatus.UNKNOWN
    if ref == ReferenceApprovalType.TEILEGUTACHTEN:
        return LegalityStatus.REGISTRATION_REQUIRED
    if ref in INSPECTION_APPROVAL_TYPES:
        return LegalityStatus.INSPECTION_REQUIRED
    if ref in DIRECT_APPROVAL_TYPES:
        # Matching evidence makes it legal; otherwise the owner still has to add proof.
        return LegalityStatus.FULLY_LEGAL if has_evidence_type(mod, ref.value) else LegalityStatus.UNKNOWN
    return LegalityStatus.UNKNOWN


# ── Critical parameters ─────────────────────────────────────────────────────

def _fmt(n: float):
    return int(n) if float(n).is_integer() else n


def _round_half_up(n: float) -> int:
    """Halves round up (20.5 → 21), not to even as round() does."""
    return int(math.floor(n + 0.5))


def validate_critical_parameters(user_params: Optional[dict], critical_params) -> list[Violation]:
    violations = []
    up = dict(user_params) if user_params else None
    cp = dict(critical_params) if critical_params else None

    clearance = parse_number_or_none(get_nested(up, "clearanceLoaded"))
    min_clearance = parse_number_or_none(get_nested(cp, "minClearanceLoaded"))
    if clearance is not None and min_clearance is not None and clearance < min_clearance:
        violations.append(Violation(
            rule_id="min_clearance",
            severity=Severity.CRITICAL.value,
            message_de=f"Bodenfreiheit {_round_half_up(clearance)}mm < {_round_half_up(min_clearance)}mm (beladen)",
            message_en=f"Ground clearance {_round_half_up(clearance)}mm < {_round_half_up(min_clearance)}mm (loaded)",
        ))

    track = parse_number_or_none(get_nested(up, "trackWidthChange"))
    if track is not None and track > MAX_TRACK_WIDTH_CHANGE_MM:
        violations.append(Violation(
            rule_id="track_width",
            severity=Severity.WARNING.value,
            message_de=f"Spurveraenderung +{_round_half_up(track)}mm > 20mm je Achse: Eintragung kann erforderlich sein",
            message_en=f"Track change +{_round_half_up(track)}mm > 20mm per axle: registration may be required",
        ))

    et = parse_number_or_none(get_nested(up, "et"))
    et_range = get_nested(cp, "etRange")
    if et is not None and isinstance(et_range, (list, tuple)) and len(et_range) >= 2:
        min_et = parse_number_or_none(et_range[0])
        max_et = parse_number_or_none(et_range[1])
        if min_et is not None and max_et is not None and (et < min_et or et > max_et):
            violations.append(Violation(
                rule_id="et_range",
                severity=Severity.WARNING.value,
                message_de=f"ET {_fmt(et)} ausserhalb Referenz ({_fmt(min_et)}-{_fmt(max_et)})",
                message_en=f"ET {_fmt(et)} outside reference ({_fmt(min_et)}-{_fmt(max_et)})",
            ))

    noise = parse_number_or_none(get_nested(up, "noiseLevelDb"))
    max_noise = parse_number_or_none(get_nested(cp, "maxNoiseLevel"))
    if noise is not None and max_noise is not None and noise > max_noise:
        violations.append(Violation(
            rule_id="noise",
            severity=Severity.CRITICAL.value,
            message_de=f"Geraeusch {_fmt(noise)} dB > {_fmt(max_noise)} dB (Referenz)",
            message_en=f"Noise {_fmt(noise)} dB > {_fmt(max_noise)} dB (reference)",
        ))

    return violations


def regional_violations(state_id: Optional[str], category_id: Optional[str],
                        now: Optional[datetime] = None) -> list[Violation]:
    return [
        Violation(
            rule_id=f"regional_{rule.id}",
            severity=rule.severity,
            message_de=format_warning(rule),
            message_en=format_warning(rule),
        )
        for rule in get_regional_rules(state_id, category_id, now)
    ]


# ── Assessment ──────────────────────────────────────────────────────────────

def _best_reference(mod, category_id: Optional[str]) -> Optional[TuningLegalityItem]:
    brand = (read_field(mod, "brand") or "").strip()
    query = f"{brand} {read_field(mod, 'part_name') or ''}".strip()
    matches = suggest_tuning_legality(q=query, category_id=category_id, limit=3)
    if matches:
        return matches[0]
    for hint in extract_approval_number_hints(mod):
        matches = suggest_tuning_legality(approval_number=hint, limit=1)
        if matches:
            return matches[0]
    return None


def assess_modification_legality(mod, state_id: Optional[str] = None,
                                 now: Optional[datetime] = None) -> LegalityAssessment:
    """Pure assessment of one modification record (ORM row or dict)."""
    category_id = map_category_to_dictionary(read_field(mod, "category"))
    best = _best_reference(mod, category_id)
    ref_type = parse_reference_approval_type(best.approval_type) if best else None

    status = compute_status_from_reference(mod, ref_type)

    notes = []
    if ref_type and ref_type != ReferenceApprovalType.NONE:
        notes.append(f"Ref: {ref_type.value}")
        if ref_type in REFERENCE_NOTES:
            notes.append(REFERENCE_NOTES[ref_type])
    found_evidence = evidence_types(mod)
    if best is None and found_evidence:
        notes.append(f"Evidence: {', '.join(found_evidence)}")

    user_params = safe_parse_object(read_field(mod, "user_parameters_json"))
    critical_params = best.parameters if best and best.parameters else None
    violations = validate_critical_parameters(user_params, critical_params)
    violations += regional_violations(state_id, category_id, now)
    attach_legal_references(violations)

    if any(v.severity == Severity.CRITICAL.value for v in violations):
        status = LegalityStatus.ILLEGAL

    flagged = [v for v in violations if v.severity != Severity.INFO.value][:NOTES_VIOLATION_LIMIT]
    notes += [f"[{v.rule_id}] {v.message_de}" for v in flagged]

    return LegalityAssessment(
        legality_status=status,
        legality_approval_type=best.approval_type if best else None,
        legality_approval_number=best.approval_number if best else None,
        legality_source_id=best.source_id if best else None,
        legality_source_url=best.source_url if best else None,
        legality_notes=" ".join(notes) if notes else None,
        violations=violations,
    )


def _state_of(mod: Modification) -> Optional[str]:
    log_entry = getattr(mod, "log_entry", None)
    car = getattr(log_entry, "car", None) if log_entry is not None else None
    return getattr(car, "state_id", None) if car is not None else None


async def recompute_and_persist_modification_legality(db: Session, modification_id: int):
    """Reassess a stored modification and write the legality_* columns. None if not found."""
    mod = db.query(Modification).filter(Modification.id == modification_id).first()
    if not mod:
        return None

    assessment = assess_modification_legality(mod, state_id=_state_of(mod))
    mod.legality_status = assessment.legality_status.value
    mod.legality_approval_type = assessment.legality_approval_type
    mod.legality_approval_number = assessment.legality_approval_number
    mod.legality_source_id = assessment.legality_source_id
    mod.legality_source_url = assessment.legality_source_url
    mod.legality_notes = assessment.legality_notes
    mod.legality_last_checked_at = datetime.utcnow()
    db.commit()

    logger.info(
        f"[LEGALITY] Modification {modification_id} → {assessment.legality_status.value} "
        f"({len(assessment.violations)} violations)"
    )
    return assessment


# ── One-shot check ──────────────────────────────────────────────────────────

CHECK_SUGGESTION_LIMIT = 5

DEFAULT_NEXT_STEPS = [
    "Nachweisart (ABE/ABG/Teilegutachten/ECE/§21) klaeren.",
    "Wenn du Dokumente hast: als Nachweis hochladen.",
]

NEXT_STEPS = {
    ReferenceApprovalType.ABE: [
        "ABE lesen und alle Auflagen einhalten.",
        "Dokument als Nachweis in DriveTuning hochladen (PDF/Foto).",
    ],
    ReferenceApprovalType.ABG: [
        "ABG herunterladen, ausdrucken und ggf. mitfuehren (je nach Auflagen).",
        "Pruefen, ob dein Fahrzeug/Dein Scheinwerfertyp in der Liste/Anlage enthalten ist.",
        "Dokument als Nachweis in DriveTuning hochladen (PDF/Foto).",
    ],
    ReferenceApprovalType.ECE: [
        "E-Kennzeichnung am Teil pruefen (E1/E4 usw.) und Einbauhinweise befolgen.",
        "Falls zusaetzliche Auflagen gelten: Nachweis/Dokumentation speichern.",
    ],
    ReferenceApprovalType.TEILEGUTACHTEN: [
        "Teilegutachten bereit halten (PDF/Scan).",
        "Aenderungsabnahme (z.B. TUEV/DEKRA/GTUE) und anschliessend Eintragung, falls gefordert.",
        "Nachweis (Gutachten + Eintragung) in DriveTuning speichern.",
    ],
    ReferenceApprovalType.EINZELABNAHME_21: [
        "Einzelabnahme nach §21 mit Prueforganisation klaeren (Unterlagen, Messungen, Kombinationswirkung).",
        "Ergebnisdokument (Gutachten/Eintragung) als Nachweis speichern.",
    ],
    ReferenceApprovalType.EINTRAGUNGSPFLICHTIG: [
        "Ohne passende Dokumente: Eintragung/Abnahme erforderlich.",
        "Vor Umbau mit Prueforganisation abstimmen und Nachweise sammeln.",
    ],
}

APPROVAL_WARNINGS = {
    ReferenceApprovalType.ABG:
        "ABG ist oft fahrzeug-/scheinwerferspezifisch: vor Einbau Anlage/Fahrzeugliste pruefen.",
    ReferenceApprovalType.TEILEGUTACHTEN:
        "Teilegutachten bedeutet in der Praxis meist Abnahme/Eintragung. Plane Termin/Kosten ein.",
    ReferenceApprovalType.EINZELABNAHME_21:
        "§21 Einzelabnahme kann komplex sein (Kombinationswirkung, Messungen). Vorab abstimmen.",
}

DISCLAIMER = {
    "title": "Hinweis zur StVZO",
    "body": (
        "DriveTuning stellt technische Informationen bereit und ersetzt nicht die Pruefung durch eine "
        "Prueforganisation (TUEV/DEKRA/GTUE). Im Zweifel Originaldokumente verwenden und Ruecksprache halten."
    ),
}

USER_PARAMETER_KEYS = ("et", "trackWidthChange", "clearanceLoaded", "noiseLevelDb")


@dataclass
class LegalityCheck:
    query: dict
    best_match: Optional[TuningLegalityItem]
    suggestions: list
    approval_type: str
    legality_status: LegalityStatus
    violations: list
    user_parameters: Optional[dict]
    next_steps: list
    warnings: list

    def to_dict(self) -> dict:
        return {
            "query": dict(self.query),
            "bestMatch": dictionary_item_to_dict(self.best_match) if self.best_match else None,
            "suggestions": [dictionary_item_to_dict(i) for i in self.suggestions],
            "approvalType": self.approval_type,
            "legalityStatus": self.legality_status.value,
            "violations": [v.to_dict() for v in self.violations],
            "userParameters": self.user_parameters,
            "nextSteps": list(self.next_steps),
            "warnings": list(self.warnings),
            "disclaimer": dict(DISCLAIMER),
        }


def dictionary_item_to_dict(item: TuningLegalityItem) -> dict:
    return {
        "brand": item.brand,
        "model": item.model,
        "categoryId": item.category_id,
        "subcategoryId": item.subcategory_id,
        "approvalType": item.approval_type,
        "approvalNumber": item.approval_number,
        "sourceId": item.source_id,
        "sourceUrl": item.source_url,
        "vehicleCompatibility": item.vehicle_compatibility,
        "parameters": dict(item.parameters) if item.parameters else None,
    }


def compute_next_steps(approval_type) -> list[str]:
    return list(NEXT_STEPS.get(parse_reference_approval_type(approval_type), DEFAULT_NEXT_STEPS))


def status_for_approval_type(approval_type) -> LegalityStatus:
    """Status implied by the approval kind alone, without any stored evidence."""
    ref = parse_reference_approval_type(approval_type)
    if ref == ReferenceApprovalType.TEILEGUTACHTEN:
        return LegalityStatus.REGISTRATION_REQUIRED
    if ref in INSPECTION_APPROVAL_TYPES:
        return LegalityStatus.INSPECTION_REQUIRED
    if ref in DIRECT_APPROVAL_TYPES:
        return LegalityStatus.FULLY_LEGAL
    return LegalityStatus.UNKNOWN


def filter_by_vehicle(items: list, make: Optional[str] = None, model: Optional[str] = None) -> list:
    """Drop items whose compatibility string names neither make nor model. Items without one stay."""
    mk = (make or "").strip().lower()
    md = (model or "").strip().lower()
    kept = []
    for item in items:
        compatibility = (item.vehicle_compatibility or "").lower()
        if compatibility and ((mk and mk not in compatibility) or (md and md not in compatibility)):
            continue
        kept.append(item)
    return kept


def parse_user_parameters(raw: dict) -> dict:
    params = {}
    for key in USER_PARAMETER_KEYS:
        value = parse_number_or_none(raw.get(key)) if raw else None
        if value is not None:
            params[key] = value
    return params


def check_legality(brand: str, part_name: str, category: Optional[str] = None,
                   approval_number: Optional[str] = None, make: Optional[str] = None,
                   model: Optional[str] = None, year: Optional[str] = None,
                   state_id: Optional[str] = None, user_parameters: Optional[dict] = None,
                   now: Optional[datetime] = None) -> LegalityCheck:
    """
    Legality of a part before it is documented: best dictionary match for the
    vehicle, parameter checks, and the state's regional rules. Every regional
    rule becomes a warning; only critical ones become violations.
    """
    brand = (brand or "").strip()
    part_name = (part_name or "").strip()
    if not brand or not part_name:
        raise ValidationError("Missing parameters")

    category_id = map_category_to_dictionary(category)
    suggestions = suggest_tuning_legality(
        q=f"{brand} {part_name}", category_id=category_id,
        approval_number=approval_number or None, limit=CHECK_SUGGESTION_LIMIT,
    )
    compatible = filter_by_vehicle(suggestions, make, model)
    best = (compatible or suggestions or [None])[0]
    approval_type = best.approval_type if best else None

    params = parse_user_parameters(user_parameters or {})
    violations = []
    if params:
        violations = validate_critical_parameters(params, best.parameters if best else None)

    status = status_for_approval_type(approval_type)

    warnings = []
    for rule in get_regional_rules(state_id, category_id, now):
        warnings.append(format_warning(rule))
        if rule.severity == Severity.CRITICAL.value:
            violations.append(Violation(
                rule_id=f"regional_{rule.id}",
                severity=Severity.CRITICAL.value,
                message_de=format_warning(rule),
                message_en=format_warning(rule),
            ))
    attach_legal_references(violations)

    if any(v.severity == Severity.CRITICAL.value for v in violations):
        status = LegalityStatus.ILLEGAL

    ref = parse_reference_approval_type(approval_type)
    if ref in APPROVAL_WARNINGS:
        warnings.append(APPROVAL_WARNINGS[ref])

    logger.debug(f"[CHECK] {brand} {part_name} → {status.value} ({len(violations)} violations)")
    return LegalityCheck(
        query={
            "brand": brand, "partName": part_name, "category": category, "approvalNumber": approval_number,
            "make": make, "model": model, "year": year, "stateId": state_id,
        },
        best_match=best,
        suggestions=compatible or suggestions,
        approval_type=approval_type or ReferenceApprovalType.NONE.value,
        legality_status=status,
        violations=violations,
        user_parameters=params or None,
        next_steps=compute_next_steps(approval_type),
        warnings=warnings,
    )
