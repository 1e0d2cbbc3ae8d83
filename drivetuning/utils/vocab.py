# drivetuning/utils/vocab.py
"""
Closed vocabularies shared by models, services and schemas.
Every external string goes through parse_enum() instead of ad hoc comparisons.
"""

from enum import Enum
from typing import Optional, Type, TypeVar

E = TypeVar("E", bound=Enum)


class ModificationCategory(str, Enum):
    SUSPENSION = "SUSPENSION"
    EXHAUST = "EXHAUST"
    WHEELS = "WHEELS"
    BRAKES = "BRAKES"
    AERO = "AERO"
    LIGHTING = "LIGHTING"
    ECU = "ECU"
    INTERIOR = "INTERIOR"
    ENGINE = "ENGINE"
    OTHER = "OTHER"


class TuvStatus(str, Enum):
    GREEN_REGISTERED = "GREEN_REGISTERED"
    YELLOW_ABE = "YELLOW_ABE"
    RED_RACING = "RED_RACING"


class LegalityStatus(str, Enum):
    UNKNOWN = "UNKNOWN"
    FULLY_LEGAL = "FULLY_LEGAL"
    LEGAL_WITH_RESTRICTIONS = "LEGAL_WITH_RESTRICTIONS"
    REGISTRATION_REQUIRED = "REGISTRATION_REQUIRED"
    INSPECTION_REQUIRED = "INSPECTION_REQUIRED"
    ILLEGAL = "ILLEGAL"


class ApprovalType(str, Enum):
    """Approval documents that can be attached to a modification."""
    ABE = "ABE"
    ABG = "ABG"
    EBE = "EBE"
    TEILEGUTACHTEN = "TEILEGUTACHTEN"
    EINZELABNAHME = "EINZELABNAHME"
    EINTRAGUNG = "EINTRAGUNG"


class ReferenceApprovalType(str, Enum):
    """Approval kinds used by the manufacturer dictionary."""
    NONE = "NONE"
    ABE = "ABE"
    ABG = "ABG"
    EBE = "EBE"
    TEILEGUTACHTEN = "TEILEGUTACHTEN"
    EINZELABNAHME_21 = "EINZELABNAHME_21"
    ECE = "ECE"
    EINTRAGUNGSPFLICHTIG = "EINTRAGUNGSPFLICHTIG"


class ContributionApprovalType(str, Enum):
    """Approval kinds accepted in crowd contributions."""
    ABE = "ABE"
    ABG = "ABG"
    EBE = "EBE"
    ECE = "ECE"
    TEILEGUTACHTEN = "TEILEGUTACHTEN"
    EINTRAGUNG = "EINTRAGUNG"
    EINTRAGUNGSPFLICHTIG = "EINTRAGUNGSPFLICHTIG"
    EINZELABNAHME = "EINZELABNAHME"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class ContributionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ReviewDecision(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class EvidenceTier(str, Enum):
    GOLD = "GOLD"
    SILVER = "SILVER"
    BRONZE = "BRONZE"
    NONE = "NONE"


class ReadinessStatus(str, Enum):
    READY = "READY"
    NEEDS_DOCS = "NEEDS_DOCS"
    NOT_READY = "NOT_READY"
    UNKNOWN = "UNKNOWN"


class InspectionOrg(str, Enum):
    TUEV_SUED = "tuev_sued"
    TUEV_NORD = "tuev_nord"
    TUEV_RHEINLAND = "tuev_rheinland"
    DEKRA = "dekra"
    GTUE = "gtue"
    OTHER = "other"


APPROVAL_TYPE_ALIASES = {"EINZELABNAHME_21": "EINZELABNAHME"}

# Modification category → lowercase category id used by the reference datasets
CATEGORY_TO_DICTIONARY = {
    ModificationCategory.AERO: "aero",
    ModificationCategory.BRAKES: "brakes",
    ModificationCategory.WHEELS: "wheels",
    ModificationCategory.SUSPENSION: "suspension",
    ModificationCategory.EXHAUST: "exhaust",
    ModificationCategory.LIGHTING: "lighting",
    ModificationCategory.ECU: "ecu",
    ModificationCategory.ENGINE: "ecu",
    ModificationCategory.INTERIOR: "interior",
}


def parse_enum(enum_cls: Type[E], value) -> Optional[E]:
    """
    Map an arbitrary external value to a member of enum_cls, or None.
    Matching is on the trimmed value, case-insensitive against member values.
    """
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    for member in enum_cls:
        if member.value.lower() == raw.lower():
            return member
    return None


def parse_tuv_status(value) -> Optional[TuvStatus]:
    return parse_enum(TuvStatus, value)


def parse_severity(value) -> Optional[Severity]:
    return parse_enum(Severity, value)


def parse_category(value) -> Optional[ModificationCategory]:
    return parse_enum(ModificationCategory, value)


def parse_approval_type(value) -> Optional[ApprovalType]:
    if isinstance(value, str):
        value = APPROVAL_TYPE_ALIASES.get(value.strip().upper(), value)
    return parse_enum(ApprovalType, value)


def parse_contribution_approval_type(value) -> Optional[ContributionApprovalType]:
    if isinstance(value, str):
        value = APPROVAL_TYPE_ALIASES.get(value.strip().upper(), value)
    return parse_enum(ContributionApprovalType, value)


def parse_reference_approval_type(value) -> Optional[ReferenceApprovalType]:
    return parse_enum(ReferenceApprovalType, value)


def parse_inspection_org(value) -> Optional[InspectionOrg]:
    return parse_enum(InspectionOrg, value)


def parse_review_decision(value) -> Optional[ReviewDecision]:
    return parse_enum(ReviewDecision, value)


def map_category_to_dictionary(category) -> Optional[str]:
    """ENGINE shares the 'ecu' dictionary category. Unknown categories map to None."""
    parsed = parse_category(category)
    if parsed is None:
        return None
    return CATEGORY_TO_DICTIONARY.get(parsed)


def norm_upper(value) -> str:
    """Trim + uppercase; non-strings collapse to ''."""
    return value.strip().upper() if isinstance(value, str) else ""
