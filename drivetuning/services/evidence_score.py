# drivetuning/services/evidence_score.py
"""
Evidence scoring for documented modifications.

Two independent formulas live here and are NOT interchangeable:
  - calculate_evidence_score_v2: 0..100 score + tier, used for listings.
  - calculate_evidence_score:    0..10 provenance score, used elsewhere.
"""

from dataclasses import dataclass, field
from typing import Optional

from drivetuning.utils.json_parser import read_field, safe_list
from drivetuning.utils.vocab import EvidenceTier, TuvStatus, norm_upper

PHOTO_WEIGHT = 30
MILEAGE_WEIGHT = 25
TRUSTED_APPROVAL_WEIGHT = 35
APPROVAL_SIGNAL_WEIGHT = 18
TIMESTAMP_WEIGHT = 10

# Lower bounds, inclusive
TIER_THRESHOLDS = (
    (85, EvidenceTier.GOLD),
    (70, EvidenceTier.SILVER),
    (50, EvidenceTier.BRONZE),
)

PROVENANCE_MAX_SCORE = 10

LISTING_APPROVAL_TYPES = {"ABE", "EBE", "TEILEGUTACHTEN", "EINZELABNAHME", "EINTRAGUNG"}
TRUSTED_APPROVAL_TYPES = {"EINTRAGUNG", "EINZELABNAHME"}


@dataclass
class EvidenceInput:
    has_photos: bool = False
    has_mileage_proof: bool = False
    has_trusted_approval_doc: bool = False
    has_any_approval_signal: bool = False
    has_timestamp: bool = False


@dataclass
class EvidenceScore:
    score: int
    tier: EvidenceTier
    breakdown: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"score": self.score, "tier": self.tier.value, "breakdown": dict(self.breakdown)}


@dataclass
class ProvenanceInput:
    has_installed_photo: bool = False
    has_installed_mileage: bool = False
    has_removed_mileage: bool = False
    has_price: bool = False
    document_count: int = 0
    has_tuv_status: bool = False


def _clamp_0_100(n: float) -> int:
    return max(0, min(100, int(round(n))))


def tier_for_score(score: int) -> EvidenceTier:
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return EvidenceTier.NONE


def calculate_evidence_score_v2(data: EvidenceInput) -> EvidenceScore:
    photo = PHOTO_WEIGHT if data.has_photos else 0
    mileage = MILEAGE_WEIGHT if data.has_mileage_proof else 0
    # A trusted document dominates; a weak signal counts roughly half.
    if data.has_trusted_approval_doc:
        approval = TRUSTED_APPROVAL_WEIGHT
    elif data.has_any_approval_signal:
        approval = APPROVAL_SIGNAL_WEIGHT
    else:
        approval = 0
    timestamp = TIMESTAMP_WEIGHT if data.has_timestamp else 0

    score = _clamp_0_100(photo + mileage + approval + timestamp)
    return EvidenceScore(
        score=score,
        tier=tier_for_score(score),
        breakdown={"photo": photo, "mileage": mileage, "approval": approval, "timestamp": timestamp},
    )


def calculate_evidence_score(data: ProvenanceInput) -> int:
    score = 0
    if data.has_installed_photo:
        score += 2
    if data.has_installed_mileage:
        score += 2
    if data.has_removed_mileage:
        score += 1
    if data.has_price:
        score += 1
    if data.has_tuv_status:
        score += 2
    if data.document_count >= 1:
        score += 1
    if data.document_count >= 2:
        score += 1
    return min(score, PROVENANCE_MAX_SCORE)


def _types(records, attr: str) -> set:
    return {t for t in (norm_upper(read_field(r, attr)) for r in safe_list(records)) if t}


def build_listing_evidence(modification, media_count: int = 0) -> EvidenceScore:
    """
    Derive the v2 inputs from a modification record (ORM row or dict) and the
    number of listing photos. No modification → zero score.
    """
    if modification is None:
        return EvidenceScore(
            score=0,
            tier=EvidenceTier.NONE,
            breakdown={"photo": 0, "mileage": 0, "approval": 0, "timestamp": 0},
        )

    doc_types = _types(list(read_field(modification, "documents") or []), "type")
    approval_types = _types(list(read_field(modification, "approval_documents") or []), "approval_type")
    all_types = doc_types | approval_types

    return calculate_evidence_score_v2(EvidenceInput(
        has_photos=media_count > 0,
        has_mileage_proof=(read_field(modification, "installed_mileage") is not None
                           or read_field(modification, "removed_mileage") is not None),
        has_trusted_approval_doc=bool(all_types & TRUSTED_APPROVAL_TYPES),
        has_any_approval_signal=(bool(all_types & LISTING_APPROVAL_TYPES)
                                 or norm_upper(read_field(modification, "tuv_status")) == TuvStatus.GREEN_REGISTERED.value),
        has_timestamp=(read_field(modification, "installed_at") is not None
                       or read_field(modification, "removed_at") is not None),
    ))


def build_provenance_input(modification, price: Optional[float] = None) -> ProvenanceInput:
    """Provenance signals from a modification record."""
    documents = list(read_field(modification, "documents") or [])
    return ProvenanceInput(
        has_installed_photo=bool(read_field(modification, "installed_photo_url")),
        has_installed_mileage=read_field(modification, "installed_mileage") is not None,
        has_removed_mileage=read_field(modification, "removed_mileage") is not None,
        has_price=price is not None,
        document_count=len(documents),
        has_tuv_status=bool(norm_upper(read_field(modification, "tuv_status"))),
    )
