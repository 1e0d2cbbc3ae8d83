# drivetuning/services/tuv_readiness.py
"""
TÜV readiness of a whole car, aggregated over its documented modifications.

Rules:
  - GREEN_REGISTERED: fine, approval document optional.
  - YELLOW_ABE:       needs at least one approval document.
  - RED_RACING:       never ready, whatever evidence exists.
"""

from dataclasses import dataclass, field
from typing import Optional

from drivetuning.utils.json_parser import read_field
from drivetuning.utils.vocab import ApprovalType, ReadinessStatus, TuvStatus, norm_upper

APPROVAL_TYPES = {t.value for t in ApprovalType}

ACTION_ADD_APPROVAL = "Fuege ABE/EBE/Teilegutachten als Nachweis hinzu (mind. 1 pro gelbe Modifikation)."
ACTION_RACING_PARTS = "Racing-Teile (rot) verhindern TUEV-Ready. Dokumentiere Ausbau oder Einzelabnahme/Eintragung."
ACTION_NO_MODIFICATIONS = "Noch keine Modifikationen dokumentiert."
ACTION_ALL_DOCUMENTED = "Alle dokumentierten Modifikationen haben Nachweise."

READY_SCORE = 95


@dataclass
class ReadinessSummary:
    total_mods: int = 0
    green: int = 0
    yellow: int = 0
    red: int = 0
    with_approvals: int = 0
    missing_approvals: int = 0


@dataclass
class TuvReadiness:
    status: ReadinessStatus
    score: int
    summary: ReadinessSummary
    actions: list = field(default_factory=list)

    def to_dict(self) -> dict:
        s = self.summary
        return {
            "status": self.status.value,
            "score": self.score,
            "summary": {
                "totalMods": s.total_mods,
                "green": s.green,
                "yellow": s.yellow,
                "red": s.red,
                "withApprovals": s.with_approvals,
                "missingApprovals": s.missing_approvals,
            },
            "actions": list(self.actions),
        }


def has_approval(modification) -> bool:
    """Structured approval documents first, then plain documents typed as approvals."""
    approvals = read_field(modification, "approval_documents") or []
    if any(norm_upper(read_field(a, "approval_type")) in APPROVAL_TYPES for a in approvals):
        return True
    documents = read_field(modification, "documents") or []
    return any(norm_upper(read_field(d, "type")) in APPROVAL_TYPES for d in documents)


def compute_tuv_readiness(modifications) -> TuvReadiness:
    mods = list(modifications or [])
    summary = ReadinessSummary(total_mods=len(mods))
    actions = []

    for mod in mods:
        status = norm_upper(read_field(mod, "tuv_status"))
        if status == TuvStatus.GREEN_REGISTERED.value:
            summary.green += 1
        elif status == TuvStatus.YELLOW_ABE.value:
            summary.yellow += 1
        elif status == TuvStatus.RED_RACING.value:
            summary.red += 1

        approved = has_approval(mod)
        if approved:
            summary.with_approvals += 1

        if status == TuvStatus.YELLOW_ABE.value and not approved:
            summary.missing_approvals += 1
            actions.append(ACTION_ADD_APPROVAL)
        if status == TuvStatus.RED_RACING.value:
            actions.append(ACTION_RACING_PARTS)

    unique_actions = list(dict.fromkeys(actions))

    if summary.total_mods == 0:
        return TuvReadiness(ReadinessStatus.UNKNOWN, 0, summary, [ACTION_NO_MODIFICATIONS])

    if summary.red > 0:
        return TuvReadiness(ReadinessStatus.NOT_READY, max(0, 60 - summary.red * 20), summary, unique_actions)

    if summary.missing_approvals > 0:
        return TuvReadiness(ReadinessStatus.NEEDS_DOCS, max(0, 80 - summary.missing_approvals * 15),
                            summary, unique_actions)

    return TuvReadiness(ReadinessStatus.READY, READY_SCORE, summary, unique_actions or [ACTION_ALL_DOCUMENTED])


async def compute_car_readiness(db, car_id: int, identity) -> Optional[TuvReadiness]:
    """Readiness over every modification logged for a car of the caller. None if not found or not owned."""
    from drivetuning.models.car import Car, LogEntry
    from drivetuning.models.modification import Modification
    from drivetuning.services.modification_service import user_pk

    car = db.query(Car).filter(Car.id == car_id, Car.owner_id == user_pk(identity)).first()
    if not car:
        return None
    mods = (
        db.query(Modification)
        .join(LogEntry, Modification.log_entry_id == LogEntry.id)
        .filter(LogEntry.car_id == car_id)
        .all()
    )
    return compute_tuv_readiness(mods)
