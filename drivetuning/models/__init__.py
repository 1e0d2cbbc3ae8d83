# DriveTuning — Database Models
# Import all models here for SQLAlchemy discovery

from drivetuning.models.user import User                                    # noqa
from drivetuning.models.car import Car, LogEntry                            # noqa
from drivetuning.models.modification import Modification, Document, ApprovalDocument  # noqa
from drivetuning.models.legality_contribution import LegalityContribution   # noqa
