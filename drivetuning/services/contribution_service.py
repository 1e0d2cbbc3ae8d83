# drivetuning/services/contribution_service.py
"""
Crowd-sourced legality evidence: submission, admin review, listings.

Lifecycle: PENDING (user submission) → APPROVED | REJECTED (admin review).
A reviewed contribution is terminal; reviewing it again is a conflict.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from drivetuning.config import settings
from drivetuning.models.car import LogEntry
from drivetuning.models.legality_contribution import LegalityContribution
from drivetuning.models.modification import Modification
from drivetuning.services.admin_policy import Identity
from drivetuning.services.modification_service import find_owned_modification, user_pk
from drivetuning.utils.errors import ConflictError, NotFoundError, ValidationError
from drivetuning.utils.json_parser import read_field
from drivetuning.utils.logger import get_logger
from drivetuning.utils.vocab import (
    ContributionStatus, ReviewDecision,
    parse_contribution_approval_type, parse_inspection_org, parse_review_decision,
)

logger = get_logger(__name__)

COMMUNITY_PROOF_CANDIDATES = 10
COMMUNITY_PROOF_LIMIT = 3


def _parse_date(raw) -> Optional[datetime]:
    if isinstance(raw, datetime):
        return raw
    text = raw.strip() if isinstance(raw, str) else ""
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


def normalize_rejection_reason(decision: ReviewDecision, reason: Optional[str]) -> Optional[str]:
    """REJECTED keeps the trimmed reason or the default; APPROVED carries none."""
    if decision != ReviewDecision.REJECTED:
        return None
    text = (reason or "").strip()[:settings.REJECTION_REASON_MAX_LENGTH]
    return text or settings.REJECTION_REASON_DEFAULT


async def create_contribution(db: Session, identity: Identity, payload) -> LegalityContribution:
    """Store a PENDING contribution for a modification owned by the caller."""
    approval_type = parse_contribution_approval_type(read_field(payload, "approval_type"))
    if approval_type is None:
        raise ValidationError("Invalid approval type")

    inspection_org = parse_inspection_org(read_field(payload, "inspection_org"))
    if inspection_org is None:
        raise ValidationError("Invalid inspection organisation")

    inspection_date = _parse_date(read_field(payload, "inspection_date"))
    if inspection_date is None:
        raise ValidationError("Invalid inspection date")

    user_id = user_pk(identity)
    mod = find_owned_modification(db, read_field(payload, "modification_id"), identity)

    approval_number = (read_field(payload, "approval_number") or "").strip() or None
    notes = (read_field(payload, "notes") or "").strip() or None

    contribution = LegalityContribution(
        user_id=user_id,
        modification_id=mod.id,
        approval_type=approval_type.value,
        approval_number=approval_number,
        inspection_org=inspection_org.value,
        inspection_date=inspection_date,
        notes=notes,
        status=ContributionStatus.PENDING.value,
        is_anonymous=read_field(payload, "is_anonymous") is not False,
        has_documents=read_field(payload, "has_documents") is True,
        created_at=datetime.utcnow(),
    )
    db.add(contribution)
    db.commit()
    db.refresh(contribution)
    logger.info(f"[CONTRIB] User {user_id} submitted {approval_type.value} evidence for modification {mod.id}")
    return contribution


async def review_contribution(db: Session, contribution_id: int, reviewer: Identity,
                              decision, rejection_reason: Optional[str] = None) -> dict:
    """
    Move a PENDING contribution to APPROVED or REJECTED.
    Admin gating happens in the caller; this only enforces the state machine.
    """
    parsed = parse_review_decision(decision)
    if parsed is None:
        raise ValidationError("Decision must be APPROVED or REJECTED")

    contribution = db.query(LegalityContribution).filter(LegalityContribution.id == contribution_id).first()
    if not contribution:
        raise NotFoundError("Contribution not found")
    if contribution.status != ContributionStatus.PENDING.value:
        raise ConflictError(f"Contribution already {contribution.status}")

    # Guarded on status so a concurrent review that committed first wins
    updated = (
        db.query(LegalityContribution)
        .filter(LegalityContribution.id == contribution_id,
                LegalityContribution.status == ContributionStatus.PENDING.value)
        .update({
            LegalityContribution.status: parsed.value,
            LegalityContribution.reviewed_at: datetime.utcnow(),
            LegalityContribution.reviewed_by: str(reviewer.user_id),
            LegalityContribution.rejection_reason: normalize_rejection_reason(parsed, rejection_reason),
        }, synchronize_session=False)
    )
    if not updated:
        db.rollback()
        logger.warning(f"[REVIEW] Contribution {contribution_id} was reviewed concurrently")
        raise ConflictError("Contribution already reviewed")
    db.commit()

    logger.info(f"[REVIEW] Contribution {contribution_id} → {parsed.value} by {reviewer.user_id}")
    return {"id": contribution.id, "status": parsed.value}


def _car_context(mod: Optional[Modification]) -> Optional[dict]:
    log_entry = getattr(mod, "log_entry", None)
    car = getattr(log_entry, "car", None)
    if car is None:
        return None
    return {"id": car.id, "make": car.make, "model": car.model, "year": car.year}


def serialize_pending(c: LegalityContribution) -> dict:
    user, mod = c.user, c.modification
    return {
        "id": c.id,
        "approvalType": c.approval_type,
        "approvalNumber": c.approval_number,
        "inspectionOrg": c.inspection_org,
        "inspectionDate": c.inspection_date,
        "notes": c.notes,
        "status": c.status,
        "isAnonymous": c.is_anonymous,
        "hasDocuments": c.has_documents,
        "createdAt": c.created_at,
        "user": {"id": user.id, "name": user.name, "email": user.email} if user else None,
        "modification": {
            "id": mod.id,
            "partName": mod.part_name,
            "brand": mod.brand,
            "category": mod.category,
            "car": _car_context(mod),
        } if mod else None,
    }


async def list_pending_contributions(db: Session, limit: Optional[int] = None) -> list[dict]:
    """PENDING contributions, newest first, with submitter and car context."""
    cap = settings.PENDING_CONTRIBUTIONS_LIMIT
    limit = cap if limit is None else max(1, min(limit, cap))
    rows = (
        db.query(LegalityContribution)
        .options(
            joinedload(LegalityContribution.user),
            joinedload(LegalityContribution.modification)
            .joinedload(Modification.log_entry)
            .joinedload(LogEntry.car),
        )
        .filter(LegalityContribution.status == ContributionStatus.PENDING.value)
        .order_by(LegalityContribution.created_at.desc())
        .limit(limit)
        .all()
    )
    return [serialize_pending(c) for c in rows]


async def list_community_proofs(db: Session, brand: str, part_name: str) -> list[dict]:
    """Up to three approved contributions for the same brand whose part name matches."""
    brand = (brand or "").strip()
    q = db.query(LegalityContribution).join(
        Modification, LegalityContribution.modification_id == Modification.id
    ).filter(LegalityContribution.status == ContributionStatus.APPROVED.value)
    if brand:
        q = q.filter(Modification.brand == brand)
    rows = (
        q.order_by(LegalityContribution.inspection_date.desc(), LegalityContribution.created_at.desc())
        .limit(COMMUNITY_PROOF_CANDIDATES)
        .all()
    )

    needle = (part_name or "").strip().lower()
    proofs = []
    for c in rows:
        mod_part = str(getattr(c.modification, "part_name", "") or "").lower()
        if needle not in mod_part:
            continue
        proofs.append({
            "id": c.id,
            "approvalType": c.approval_type,
            "approvalNumber": c.approval_number,
            "inspectionOrg": c.inspection_org,
            "inspectionDate": c.inspection_date,
            "notes": c.notes,
            "hasDocuments": c.has_documents,
            "createdAt": c.created_at,
        })
    return proofs[:COMMUNITY_PROOF_LIMIT]
