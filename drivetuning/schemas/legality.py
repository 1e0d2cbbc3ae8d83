# drivetuning/schemas/legality.py
from pydantic import BaseModel, Field
from typing import Optional


class RegionalRuleOut(BaseModel):
    id: str
    stateId: str
    nameDe: str
    descriptionDe: str
    affectedCategories: list[str]
    severity: str
    sourceUrl: Optional[str] = None
    validFrom: Optional[str] = None
    validUntil: Optional[str] = None


class RegionalRulesOut(BaseModel):
    stateId: Optional[str]
    count: int
    criticalCount: int
    warnings: list[str]
    rules: list[RegionalRuleOut]


class RegionalRulesQuery(BaseModel):
    stateId: Optional[str] = None
    modificationCategories: list = Field(default_factory=list)


class LegalReferenceOut(BaseModel):
    lawId: str
    lawNameDe: str
    lawNameEn: str
    lawUrl: str
    section: str
    notesDe: Optional[str] = None
    notesEn: Optional[str] = None


class EvidenceScoreIn(BaseModel):
    has_photos: bool = False
    has_mileage_proof: bool = False
    has_trusted_approval_doc: bool = False
    has_any_approval_signal: bool = False
    has_timestamp: bool = False


class EvidenceScoreOut(BaseModel):
    score: int
    tier: str
    breakdown: dict[str, int]


class ProvenanceScoreIn(BaseModel):
    has_installed_photo: bool = False
    has_installed_mileage: bool = False
    has_removed_mileage: bool = False
    has_price: bool = False
    document_count: int = Field(default=0, ge=0)
    has_tuv_status: bool = False


class ProvenanceScoreOut(BaseModel):
    score: int


class ReadinessSummaryOut(BaseModel):
    totalMods: int
    green: int
    yellow: int
    red: int
    withApprovals: int
    missingApprovals: int


class TuvReadinessOut(BaseModel):
    status: str
    score: int
    summary: ReadinessSummaryOut
    actions: list[str]
