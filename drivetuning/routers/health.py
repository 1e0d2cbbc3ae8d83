"""
System health check endpoint.
Returns status of backend + DB + reference datasets.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from drivetuning.database import get_db
from drivetuning.services.reference_data import get_reference_data
from datetime import datetime

router = APIRouter()


@router.get("/health", summary="System health check")
def health_check(db: Session = Depends(get_db)):
    result = {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "backend": "ok",
        "database": "unknown",
        "referenceData": {},
    }

    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"

    data = get_reference_data()
    result["referenceData"] = {
        "regionalRules": len(data.regional_rules),
        "laws": len(data.laws_by_id),
        "ruleReferences": len(data.refs_by_rule_id),
        "dictionaryItems": len(data.tuning_items),
    }
    if not data.regional_rules or not data.laws_by_id:
        result["status"] = "degraded"

    return result
