"""
Legality contributions — user submission plus the admin review queue.
Admin endpoints answer 401 without identity and 403 for non-admins.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from drivetuning.database import get_db
from drivetuning.dependencies import get_current_identity, require_admin
from drivetuning.schemas.contribution import ContributionCreate, ContributionReview, ContributionOut, ContributionReviewOut
from drivetuning.services.admin_policy import Identity
from drivetuning.services.contribution_service import (
    create_contribution, review_contribution, list_pending_contributions, list_community_proofs,
)

router = APIRouter()


@router.post("/legality/contribute", status_code=201, summary="Submit legality evidence")
async def contribute(body: ContributionCreate, db: Session = Depends(get_db),
                     identity: Identity = Depends(get_current_identity)):
    contribution = await create_contribution(db, identity, body)
    return {"contribution": ContributionOut.model_validate(contribution).model_dump()}


@router.get("/legality/community-proofs", summary="Approved community evidence for a part")
async def community_proofs(brand: str = "", partName: str = "", db: Session = Depends(get_db)):
    return {"communityProofs": await list_community_proofs(db, brand, partName)}


@router.get("/admin/legality-contributions", summary="Pending contributions (admin)")
async def pending_contributions(db: Session = Depends(get_db), admin: Identity = Depends(require_admin)):
    return {"contributions": await list_pending_contributions(db)}


@router.post("/admin/legality-contributions/{contribution_id}/review", response_model=ContributionReviewOut,
             summary="Approve or reject (admin)")
async def review(contribution_id: int, body: ContributionReview, db: Session = Depends(get_db),
                 admin: Identity = Depends(require_admin)):
    updated = await review_contribution(db, contribution_id, admin, body.decision, body.rejection_reason)
    return {"contribution": updated}
