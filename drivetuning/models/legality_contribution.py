"""
Crowd-submitted legality evidence for a modification.
Created PENDING by the submitting user; an admin moves it to APPROVED or
REJECTED exactly once, stamping reviewed_at / reviewed_by.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from drivetuning.database import Base


class LegalityContribution(Base):
    __tablename__ = "legality_contributions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    modification_id = Column(Integer, ForeignKey("modifications.id"), nullable=False, index=True)
    approval_type = Column(String(30), nullable=False)
    approval_number = Column(String(120))
    inspection_org = Column(String(30), nullable=False)
    inspection_date = Column(DateTime, nullable=False)
    notes = Column(Text)
    status = Column(String(20), nullable=False, default="PENDING", index=True)  # PENDING | APPROVED | REJECTED
    is_anonymous = Column(Boolean, nullable=False, default=True)
    has_documents = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, index=True)
    reviewed_at = Column(DateTime)
    reviewed_by = Column(String(255))
    rejection_reason = Column(String(500))

    user = relationship("User")
    modification = relationship("Modification")

    def __repr__(self):
        return f"<LegalityContribution {self.id} mod={self.modification_id} status={self.status}>"
