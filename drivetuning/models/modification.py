"""
Modifications (installed parts) and their evidence: uploaded documents and
structured approval documents (ABE, ABG, EBE, TEILEGUTACHTEN, EINZELABNAHME,
EINTRAGUNG). The legality_* columns are written by the recompute service.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from drivetuning.database import Base


class Modification(Base):
    __tablename__ = "modifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    log_entry_id = Column(Integer, ForeignKey("log_entries.id"), nullable=False, index=True)
    part_name = Column(String(200), nullable=False)
    brand = Column(String(100))
    category = Column(String(30), nullable=False)          # SUSPENSION | EXHAUST | WHEELS | ...
    tuv_status = Column(String(30), nullable=False)        # GREEN_REGISTERED | YELLOW_ABE | RED_RACING
    installed_at = Column(DateTime)
    installed_mileage = Column(Integer)
    installed_photo_url = Column(String(500))
    removed_at = Column(DateTime)
    removed_mileage = Column(Integer)
    user_parameters_json = Column(Text)                    # e.g. {"clearanceLoaded": 95, "et": 40}

    legality_status = Column(String(40), nullable=False, default="UNKNOWN")
    legality_approval_type = Column(String(40))
    legality_approval_number = Column(String(120))
    legality_source_id = Column(String(120))
    legality_source_url = Column(String(500))
    legality_notes = Column(Text)
    legality_last_checked_at = Column(DateTime)

    log_entry = relationship("LogEntry", back_populates="modifications")
    documents = relationship("Document", back_populates="modification")
    approval_documents = relationship("ApprovalDocument", back_populates="modification")

    def __repr__(self):
        return f"<Modification {self.id} {self.brand} {self.part_name} tuv={self.tuv_status}>"


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    modification_id = Column(Integer, ForeignKey("modifications.id"), index=True)
    type = Column(String(40), nullable=False)              # approval types, RECEIPT, INVOICE, ...
    title = Column(String(200))
    document_number = Column(String(120))
    url = Column(String(500))
    uploaded_at = Column(DateTime)

    modification = relationship("Modification", back_populates="documents")

    def __repr__(self):
        return f"<Document {self.id} type={self.type} mod={self.modification_id}>"


class ApprovalDocument(Base):
    __tablename__ = "approval_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    modification_id = Column(Integer, ForeignKey("modifications.id"), nullable=False, index=True)
    document_id = Column(Integer, ForeignKey("documents.id"))
    approval_type = Column(String(30), nullable=False)
    approval_number = Column(String(80))
    issuing_authority = Column(String(120))
    issue_date = Column(DateTime)
    valid_until = Column(DateTime)
    created_at = Column(DateTime)

    modification = relationship("Modification", back_populates="approval_documents")

    def __repr__(self):
        return f"<ApprovalDocument {self.id} type={self.approval_type} mod={self.modification_id}>"
