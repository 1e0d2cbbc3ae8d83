# tests/test_contribution_service.py
"""Unit tests for the contribution submission and review workflow."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import MagicMock
from types import SimpleNamespace
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from drivetuning.database import Base
from drivetuning.models.legality_contribution import LegalityContribution
from drivetuning.services.admin_policy import Identity
from drivetuning.services.contribution_service import (
    create_contribution, list_community_proofs, list_pending_contributions,
    normalize_rejection_reason, review_contribution,
)
from drivetuning.utils.errors import ConflictError, NotFoundError, ValidationError
from drivetuning.utils.vocab import ReviewDecision

OWNER = Identity(user_id="7", email="owner@example.de")
ADMIN = Identity(user_id="1", email="admin@example.de")


def payload(**overrides):
    data = {
        "modification_id": 11,
        "approval_type": "einzelabnahme_21",
        "approval_number": "  ",
        "inspection_org": "tuev_sued",
        "inspection_date": "2024-05-02",
        "notes": " Abnahme ohne Auflagen ",
    }
    data.update(overrides)
    return data


def owned_db(mod=None):
    db = MagicMock()
    db.query.return_value.join.return_value.join.return_value.filter.return_value.first.return_value = mod
    return db


def pending(status="PENDING"):
    return SimpleNamespace(id=3, status=status, reviewed_at=None, reviewed_by=None, rejection_reason=None)


def review_db(contribution, updated_rows=1):
    db = MagicMock()
    db.query.return_value.filter.return_value.first.return_value = contribution
    db.query.return_value.filter.return_value.update.return_value = updated_rows
    return db


def update_values(db):
    values = db.query.return_value.filter.return_value.update.call_args.args[0]
    return {column.key: value for column, value in values.items()}


class TestCreateContribution:
    @pytest.mark.asyncio
    async def test_creates_pending(self):
        db = owned_db(SimpleNamespace(id=11))
        contribution = await create_contribution(db, OWNER, payload())

        db.add.assert_called_once_with(contribution)
        db.commit.assert_called_once()
        assert contribution.status == "PENDING"
        assert contribution.user_id == 7
        assert contribution.approval_type == "EINZELABNAHME"
        assert contribution.approval_number is None
        assert contribution.notes == "Abnahme ohne Auflagen"
        assert contribution.is_anonymous is True
        assert contribution.has_documents is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("override,message", [
        ({"approval_type": "STEMPEL"}, "Invalid approval type"),
        ({"inspection_org": "werkstatt"}, "Invalid inspection organisation"),
        ({"inspection_date": "gestern"}, "Invalid inspection date"),
    ])
    async def test_invalid_fields_rejected_before_lookup(self, override, message):
        db = owned_db(SimpleNamespace(id=11))
        with pytest.raises(ValidationError) as exc:
            await create_contribution(db, OWNER, payload(**override))
        assert exc.value.detail == message
        db.query.assert_not_called()
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_foreign_modification_not_found(self):
        db = owned_db(None)
        with pytest.raises(NotFoundError):
            await create_contribution(db, OWNER, payload())
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_numeric_user(self):
        with pytest.raises(ValidationError):
            await create_contribution(owned_db(), Identity(user_id="abc"), payload())


class TestReviewContribution:
    @pytest.mark.asyncio
    async def test_approve(self):
        db = review_db(pending())
        result = await review_contribution(db, 3, ADMIN, "APPROVED", "ignored")

        assert result == {"id": 3, "status": "APPROVED"}
        values = update_values(db)
        assert values["status"] == "APPROVED"
        assert values["rejection_reason"] is None
        assert values["reviewed_by"] == "1"
        assert isinstance(values["reviewed_at"], datetime)
        db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_update_guarded_on_pending(self):
        db = review_db(pending())
        await review_contribution(db, 3, ADMIN, "APPROVED")

        update_filter = db.query.return_value.filter.call_args_list[-1]
        assert len(update_filter.args) == 2
        assert "status" in str(update_filter.args[1])
        assert db.query.return_value.filter.return_value.update.call_args.kwargs == {"synchronize_session": False}

    @pytest.mark.asyncio
    async def test_reject_defaults_reason(self):
        db = review_db(pending())
        await review_contribution(db, 3, ADMIN, "REJECTED", "   ")
        assert update_values(db)["status"] == "REJECTED"
        assert update_values(db)["rejection_reason"] == "Rejected"

    @pytest.mark.asyncio
    async def test_reject_keeps_trimmed_reason(self):
        db = review_db(pending())
        await review_contribution(db, 3, ADMIN, "rejected", "  Foto unleserlich ")
        assert update_values(db)["rejection_reason"] == "Foto unleserlich"

    @pytest.mark.asyncio
    async def test_already_reviewed_conflict(self):
        db = review_db(pending("APPROVED"))
        with pytest.raises(ConflictError):
            await review_contribution(db, 3, ADMIN, "REJECTED")
        db.query.return_value.filter.return_value.update.assert_not_called()
        db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_lost_race_is_conflict(self):
        db = review_db(pending(), updated_rows=0)
        with pytest.raises(ConflictError):
            await review_contribution(db, 3, ADMIN, "REJECTED")
        db.rollback.assert_called_once()
        db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_contribution(self):
        with pytest.raises(NotFoundError):
            await review_contribution(review_db(None), 404, ADMIN, "APPROVED")

    @pytest.mark.asyncio
    async def test_invalid_decision(self):
        db = review_db(pending())
        with pytest.raises(ValidationError):
            await review_contribution(db, 3, ADMIN, "PENDING")
        db.query.assert_not_called()

    def test_reason_truncated(self):
        assert len(normalize_rejection_reason(ReviewDecision.REJECTED, "x" * 900)) == 500


class TestConcurrentReview:
    @pytest.mark.asyncio
    async def test_second_session_cannot_overwrite(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'review.db'}")
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(bind=engine)

        with Session() as setup:
            setup.add(LegalityContribution(
                id=3, user_id=7, modification_id=11, approval_type="ABE", inspection_org="dekra",
                inspection_date=datetime(2024, 5, 2), status="PENDING", created_at=datetime(2024, 5, 3),
            ))
            setup.commit()

        first, second = Session(), Session()
        try:
            # Both admins open the contribution while it is still pending
            assert first.get(LegalityContribution, 3).status == "PENDING"
            assert second.get(LegalityContribution, 3).status == "PENDING"

            assert await review_contribution(first, 3, ADMIN, "APPROVED") == {"id": 3, "status": "APPROVED"}
            with pytest.raises(ConflictError):
                await review_contribution(second, 3, ADMIN, "REJECTED")
        finally:
            first.close()
            second.close()

        with Session() as check:
            stored = check.get(LegalityContribution, 3)
            assert stored.status == "APPROVED"
            assert stored.rejection_reason is None
        engine.dispose()


class TestListings:
    @pytest.mark.asyncio
    async def test_pending_list_serialized(self):
        car = SimpleNamespace(id=2, make="VW", model="Golf", year=2016)
        row = SimpleNamespace(
            id=3, approval_type="ABE", approval_number="KBA 45678", inspection_org="dekra",
            inspection_date=datetime(2024, 5, 2), notes=None, status="PENDING", is_anonymous=True,
            has_documents=False, created_at=datetime(2024, 5, 3),
            user=SimpleNamespace(id=7, name="Lena", email="lena@example.de"),
            modification=SimpleNamespace(id=11, part_name="Pro-Kit", brand="Eibach", category="SUSPENSION",
                                         log_entry=SimpleNamespace(car=car)),
        )
        db = MagicMock()
        chain = db.query.return_value.options.return_value.filter.return_value.order_by.return_value
        chain.limit.return_value.all.return_value = [row]

        result = await list_pending_contributions(db)

        chain.limit.assert_called_once_with(100)
        assert result[0]["approvalNumber"] == "KBA 45678"
        assert result[0]["user"]["email"] == "lena@example.de"
        assert result[0]["modification"]["car"] == {"id": 2, "make": "VW", "model": "Golf", "year": 2016}

    @pytest.mark.asyncio
    async def test_community_proofs_filtered_by_part(self):
        def proof(i, part):
            return SimpleNamespace(
                id=i, approval_type="ABE", approval_number=None, inspection_org="gtue",
                inspection_date=datetime(2024, 1, i), notes=None, has_documents=True,
                created_at=datetime(2024, 1, i), modification=SimpleNamespace(part_name=part),
            )

        rows = [proof(1, "Pro-Kit Federn"), proof(2, "Sportluftfilter"), proof(3, "Pro-Kit"),
                proof(4, "pro-kit hinten"), proof(5, "Pro-Kit vorne")]
        db = MagicMock()
        db.query.return_value.join.return_value.filter.return_value.filter.return_value \
            .order_by.return_value.limit.return_value.all.return_value = rows

        result = await list_community_proofs(db, "Eibach", "Pro-Kit")

        assert [p["id"] for p in result] == [1, 3, 4]
