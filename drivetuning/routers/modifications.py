"""
Per-car and per-modification legality endpoints backed by stored evidence:
TÜV readiness, listing evidence score and legality recompute.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from drivetuning.database import get_db
from drivetuning.dependencies import get_current_identity
from drivetuning.schemas.legality import TuvReadinessOut, EvidenceScoreOut
from drivetuning.services.admin_policy import Identity
from drivetuning.services.evidence_score import build_listing_evidence
from drivetuning.services.legality_validator import recompute_and_persist_modification_legality
from drivetuning.services.modification_service import find_owned_modification
from drivetuning.services.tuv_readiness import compute_car_readiness

router = APIRouter()


@router.get("/cars/{car_id}/tuv-readiness", response_model=TuvReadinessOut, summary="TÜV readiness of a car")
async def get_tuv_readiness(car_id: int, db: Session = Depends(get_db),
                            identity: Identity = Depends(get_current_identity)):
    readiness = await compute_car_readiness(db, car_id, identity)
    if readiness is None:
        raise HTTPException(status_code=404, detail="Car not found")
    return readiness.to_dict()


@router.get("/modifications/{modification_id}/evidence-score", response_model=EvidenceScoreOut,
            summary="Evidence score of a modification")
def get_modification_evidence(modification_id: int, media_count: int = 0,
                              db: Session = Depends(get_db),
                              identity: Identity = Depends(get_current_identity)):
    mod = find_owned_modification(db, modification_id, identity)
    return build_listing_evidence(mod, media_count).to_dict()


@router.post("/modifications/{modification_id}/legality/recompute", summary="Recompute legality status")
async def recompute_legality(modification_id: int, db: Session = Depends(get_db),
                             identity: Identity = Depends(get_current_identity)):
    mod = find_owned_modification(db, modification_id, identity)
    assessment = await recompute_and_persist_modification_legality(db, mod.id)
    if assessment is None:
        raise HTTPException(status_code=404, detail="Modification not found")
    return {"modification": {"id": mod.id, **assessment.to_dict()}}
