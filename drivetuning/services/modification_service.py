# drivetuning/services/modification_service.py
"""
Modification lookup helpers.
Used by the contribution workflow and the legality / evidence routers.
"""

from sqlalchemy.orm import Session
from drivetuning.models.car import Car, LogEntry
from drivetuning.models.modification import Modification
from drivetuning.services.admin_policy import Identity
from drivetuning.utils.errors import NotFoundError, ValidationError
from drivetuning.utils.logger import get_logger

logger = get_logger(__name__)


def user_pk(identity: Identity) -> int:
    """Numeric users.id of the caller."""
    try:
        return int(str(identity.user_id).strip())
    except (TypeError, ValueError):
        raise ValidationError("Invalid user id")


def find_owned_modification(db: Session, modification_id, identity: Identity) -> Modification:
    """The modification if it sits on a car owned by the caller, else NotFoundError."""
    mod = (
        db.query(Modification)
        .join(LogEntry, Modification.log_entry_id == LogEntry.id)
        .join(Car, LogEntry.car_id == Car.id)
        .filter(Modification.id == modification_id, Car.owner_id == user_pk(identity))
        .first()
    )
    if not mod:
        logger.debug(f"Modification {modification_id} not found for user {identity.user_id}")
        raise NotFoundError("Modification not found")
    return mod
