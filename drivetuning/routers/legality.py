"""
Legality reference endpoints — regional rules, legal citations, dictionary
search, the one-shot legality check and the two evidence scores.
Only the check touches the database (approved community proofs).
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from drivetuning.database import get_db
from drivetuning.schemas.legality import (
    RegionalRulesOut, RegionalRulesQuery, LegalReferenceOut,
    EvidenceScoreIn, EvidenceScoreOut, ProvenanceScoreIn, ProvenanceScoreOut,
)
from drivetuning.services.regional_rules import collect_regional_rules, summarize_regional_rules
from drivetuning.services.legal_references import get_legal_references_for_rule_id, get_unece_context, unece_to_dict
from drivetuning.services.contribution_service import list_community_proofs
from drivetuning.services.legality_validator import check_legality, list_tuning_categories, suggest_tuning_legality
from drivetuning.services.evidence_score import (
    EvidenceInput, ProvenanceInput, calculate_evidence_score, calculate_evidence_score_v2,
)
from drivetuning.utils.vocab import map_category_to_dictionary

router = APIRouter()


@router.get("/legality/regional-rules", response_model=RegionalRulesOut, summary="Regional rules for a state")
def get_regional_rules(stateId: Optional[str] = None, categories: Optional[str] = None):
    """categories is a comma-separated list; unknown names are matched as raw lowercase ids."""
    cats = [c.strip() for c in categories.split(",") if c.strip()] if categories else []
    return summarize_regional_rules(stateId, collect_regional_rules(stateId, cats))


@router.post("/legality/regional-rules", response_model=RegionalRulesOut, summary="Regional rules for a car's modifications")
def post_regional_rules(body: RegionalRulesQuery):
    """Only recognised modification categories narrow the result; none → every rule of the state."""
    cats = [c for c in body.modificationCategories if isinstance(c, str) and map_category_to_dictionary(c)]
    return summarize_regional_rules(body.stateId, collect_regional_rules(body.stateId, cats))


@router.get("/legality/references/{rule_id}", response_model=list[LegalReferenceOut], summary="Legal citations for a rule")
def get_references(rule_id: str):
    return [ref.to_dict() for ref in get_legal_references_for_rule_id(rule_id)]


@router.get("/legality/unece/{category_id}", summary="UNECE regulation context for a category")
def get_unece(category_id: str):
    return [unece_to_dict(reg) for reg in get_unece_context(category_id)]


@router.get("/legality/dictionary", summary="Search the manufacturer approval dictionary")
def search_dictionary(
    q: str = "",
    categoryId: Optional[str] = None,
    subcategoryId: Optional[str] = None,
    approvalNumber: Optional[str] = None,
    limit: int = Query(default=10),
):
    items = suggest_tuning_legality(q=q, category_id=categoryId, subcategory_id=subcategoryId,
                                    approval_number=approvalNumber, limit=limit)
    return [
        {
            "label": f"{i.brand} {i.model}" + (f" · {i.approval_number}" if i.approval_number else ""),
            "value": f"{i.brand} {i.model}",
            "categoryId": i.category_id,
            "subcategoryId": i.subcategory_id,
            "approvalType": i.approval_type,
            "approvalNumber": i.approval_number,
            "sourceId": i.source_id,
            "sourceUrl": i.source_url,
        }
        for i in items
    ]


@router.post("/legality/evidence-score", response_model=EvidenceScoreOut, summary="Evidence score (0–100, tiered)")
def post_evidence_score(body: EvidenceScoreIn):
    return calculate_evidence_score_v2(EvidenceInput(**body.model_dump())).to_dict()


@router.post("/legality/provenance-score", response_model=ProvenanceScoreOut, summary="Provenance score (0–10)")
def post_provenance_score(body: ProvenanceScoreIn):
    return {"score": calculate_evidence_score(ProvenanceInput(**body.model_dump()))}


@router.get("/legality/dictionary/categories", summary="Dictionary categories and subcategories")
def get_dictionary_categories():
    return list_tuning_categories()


@router.get("/legality/check", summary="Legality check for a part on a vehicle")
async def get_legality_check(
    brand: str = "",
    partName: str = "",
    category: Optional[str] = None,
    approvalNumber: Optional[str] = None,
    make: Optional[str] = None,
    model: Optional[str] = None,
    year: Optional[str] = None,
    stateId: Optional[str] = None,
    et: Optional[str] = None,
    trackWidthChange: Optional[str] = None,
    clearanceLoaded: Optional[str] = None,
    noiseLevelDb: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Missing brand or partName → 400. Non-numeric parameter values are ignored."""
    result = check_legality(
        brand, partName, category=category, approval_number=approvalNumber,
        make=make, model=model, year=year, state_id=stateId,
        user_parameters={"et": et, "trackWidthChange": trackWidthChange,
                         "clearanceLoaded": clearanceLoaded, "noiseLevelDb": noiseLevelDb},
    )
    return {**result.to_dict(), "communityProofs": await list_community_proofs(db, brand, partName)}
