"""
Tests for UnlockCodeIssuer

Covers validation, the course lookup, collision retries (both the
pre-check and the unique index), and the transaction/code back-link.
"""
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    CodeGenerationExhaustedError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from app.models import Transaction, UnlockCode
from app.services.code_generator import CodeGenerator
from app.services.scheduler import reconcile_orphaned_codes
from app.services.unlock_code_issuer import PurchaseClaim, UnlockCodeIssuer
from tests.helpers import ScriptedGenerator, count_rows, store_code

NOW = datetime(2026, 10, 18, 9, 30, 0)


def make_claim(admin, course_id, **overrides) -> PurchaseClaim:
    fields = dict(
        buyer_name="Asha Gurung",
        contact="98xxxxxxx",
        payment_method="cash",
        course_id=course_id,
        amount=1200,
        issued_by=admin,
    )
    fields.update(overrides)
    return PurchaseClaim(**fields)


async def test_issue_creates_completed_transaction_and_unused_code(db, admin, course_id):
    issuer = UnlockCodeIssuer(db, clock=lambda: NOW)

    issued = await issuer.issue(make_claim(admin, course_id))

    transaction = issued.transaction
    assert transaction.status == "completed"
    assert transaction.amount == Decimal("1200")
    assert transaction.buyer_name == "Asha Gurung"
    assert transaction.payment_method == "cash"
    assert transaction.issued_by_admin_id == "admin-1"
    assert transaction.issued_by_role == "admin"

    unlock_code = issued.unlock_code
    assert unlock_code.is_used is False
    assert unlock_code.issued_to == "Asha Gurung"
    assert unlock_code.course_id == course_id
    assert unlock_code.code == issued.plain_code
    assert unlock_code.code_hash == CodeGenerator.hash(issued.plain_code)
    assert issued.expires_on == NOW + timedelta(days=7)


async def test_issue_links_transaction_and_code_both_ways(db, session_factory, admin, course_id):
    issued = await UnlockCodeIssuer(db).issue(make_claim(admin, course_id))

    async with session_factory() as fresh:
        transaction = await fresh.get(Transaction, issued.transaction_id)
        assert transaction.unlock_code_id == issued.unlock_code_id

        unlock_code = await fresh.get(UnlockCode, transaction.unlock_code_id)
        assert unlock_code.transaction_id == transaction.id
        assert unlock_code.is_used is False


async def test_validity_window_is_configurable(db, admin, course_id):
    issuer = UnlockCodeIssuer(db, validity=timedelta(days=30), clock=lambda: NOW)

    issued = await issuer.issue(make_claim(admin, course_id))

    assert issued.expires_on == NOW + timedelta(days=30)


async def test_optional_fields_are_stored(db, admin, course_id):
    claim = make_claim(
        admin,
        course_id,
        payment_method="bank-transfer",
        payment_reference_type="transaction-id",
        payment_reference="NIC-7781",
        notes="Paid at branch",
        amount="999.50",
    )

    issued = await UnlockCodeIssuer(db).issue(claim)

    assert issued.transaction.payment_reference_type == "transaction-id"
    assert issued.transaction.payment_reference == "NIC-7781"
    assert issued.transaction.notes == "Paid at branch"
    assert issued.transaction.amount == Decimal("999.50")


async def test_unknown_course_raises_not_found_and_stores_nothing(db, admin, course_id):
    with pytest.raises(NotFoundError):
        await UnlockCodeIssuer(db).issue(make_claim(admin, course_id + 1000))

    assert await count_rows(db, Transaction) == 0
    assert await count_rows(db, UnlockCode) == 0


@pytest.mark.parametrize("amount", [0, "0", "abc", -5, "NaN", "Infinity", None, "", "0.001", "0.004", "12.345", "1e15", "10000000000"])
async def test_invalid_amount_fails_before_storage(admin, amount):
    db = AsyncMock(spec=AsyncSession)
    db.add = MagicMock()

    with pytest.raises(ValidationError):
        await UnlockCodeIssuer(db).issue(make_claim(admin, 1, amount=amount))

    db.get.assert_not_called()
    db.execute.assert_not_called()
    db.add.assert_not_called()
    db.commit.assert_not_called()


@pytest.mark.parametrize(
    "overrides",
    [
        {"buyer_name": None},
        {"buyer_name": "   "},
        {"contact": ""},
        {"payment_method": None},
        {"payment_method": "crypto"},
        {"payment_reference_type": "receipt"},
        {"course_id": None},
        {"course_id": "not-an-id"},
        {"course_id": 0},
        {"course_id": -3},
        {"course_id": 10 ** 30},
    ],
)
async def test_invalid_claim_fails_before_storage(admin, overrides):
    db = AsyncMock(spec=AsyncSession)
    db.add = MagicMock()

    with pytest.raises(ValidationError):
        await UnlockCodeIssuer(db).issue(replace(make_claim(admin, 1), **overrides))

    db.get.assert_not_called()
    db.add.assert_not_called()


async def test_identical_claims_are_not_deduplicated(db, admin, course_id):
    issuer = UnlockCodeIssuer(db)

    first = await issuer.issue(make_claim(admin, course_id))
    second = await issuer.issue(make_claim(admin, course_id))

    assert first.transaction_id != second.transaction_id
    assert first.unlock_code_id != second.unlock_code_id
    assert first.plain_code != second.plain_code
    assert first.unlock_code.code_hash != second.unlock_code.code_hash
    assert await count_rows(db, Transaction) == 2
    assert await count_rows(db, UnlockCode) == 2


async def test_retries_until_free_code_on_tenth_attempt(db, admin, course_id):
    taken = [f"AA-AA-AA-{i:02d}" for i in range(9)]
    for code in taken:
        await store_code(db, course_id, code)
    generator = ScriptedGenerator(taken + ["ZZ-ZZ-ZZ-ZZ"])

    issued = await UnlockCodeIssuer(db, generator=generator).issue(make_claim(admin, course_id))

    assert generator.calls == 10
    assert issued.plain_code == "ZZ-ZZ-ZZ-ZZ"
    assert await count_rows(db, UnlockCode) == 10


async def test_ten_collisions_raise_exhausted(db, admin, course_id):
    taken = [f"BB-BB-BB-{i:02d}" for i in range(10)]
    for code in taken:
        await store_code(db, course_id, code)
    transactions_before = await count_rows(db, Transaction)
    generator = ScriptedGenerator(taken + ["ZZ-ZZ-ZZ-ZZ"])

    with pytest.raises(CodeGenerationExhaustedError):
        await UnlockCodeIssuer(db, generator=generator).issue(make_claim(admin, course_id))

    assert generator.calls == 10
    assert await count_rows(db, UnlockCode) == 10
    # The transaction from before code generation stays behind
    assert await count_rows(db, Transaction) == transactions_before + 1


async def test_unique_index_violation_counts_as_collision(db, admin, course_id):
    await store_code(db, course_id, "CC-CC-CC-CC")
    generator = ScriptedGenerator(["CC-CC-CC-CC", "DD-DD-DD-DD"])
    issuer = UnlockCodeIssuer(db, generator=generator)
    # Simulate a concurrent writer: the pre-check sees nothing, the insert collides
    issuer._hash_taken = AsyncMock(return_value=False)

    issued = await issuer.issue(make_claim(admin, course_id))

    assert generator.calls == 2
    assert issued.plain_code == "DD-DD-DD-DD"
    assert await count_rows(db, UnlockCode) == 2
    assert issued.transaction.unlock_code_id == issued.unlock_code_id


async def test_unique_index_violations_also_exhaust(db, admin, course_id):
    await store_code(db, course_id, "EE-EE-EE-EE")
    generator = ScriptedGenerator(["EE-EE-EE-EE"] * 10)
    issuer = UnlockCodeIssuer(db, generator=generator)
    issuer._hash_taken = AsyncMock(return_value=False)

    with pytest.raises(CodeGenerationExhaustedError):
        await issuer.issue(make_claim(admin, course_id))

    assert generator.calls == 10
    assert await count_rows(db, UnlockCode) == 1


async def test_back_link_failure_leaves_valid_code_for_reconciliation(
    db, session_factory, admin, course_id, monkeypatch
):
    original_commit = AsyncSession.commit
    commits = {"n": 0}

    async def flaky_commit(self):
        commits["n"] += 1
        # 1: transaction, 2: unlock code, 3: back-link
        if commits["n"] == 3:
            raise OperationalError("UPDATE transactions", {}, Exception("database is locked"))
        await original_commit(self)

    monkeypatch.setattr(AsyncSession, "commit", flaky_commit)

    with pytest.raises(PersistenceError):
        await UnlockCodeIssuer(db).issue(make_claim(admin, course_id))

    monkeypatch.undo()

    async with session_factory() as fresh:
        transaction = (await fresh.execute(Transaction.__table__.select())).one()
        unlock_code = (await fresh.execute(UnlockCode.__table__.select())).one()
        assert transaction.unlock_code_id is None
        assert unlock_code.transaction_id == transaction.id
        assert unlock_code.is_used is False

        assert await reconcile_orphaned_codes(fresh) == 1

    async with session_factory() as fresh:
        linked = await fresh.get(Transaction, transaction.id)
        assert linked.unlock_code_id == unlock_code.id
        assert await reconcile_orphaned_codes(fresh) == 0


@pytest.mark.parametrize("amount, stored", [("1.000", Decimal("1.00")), ("1e3", Decimal("1000.00")), (19.99, Decimal("19.99"))])
async def test_amount_is_stored_with_two_places(db, session_factory, admin, course_id, amount, stored):
    issued = await UnlockCodeIssuer(db).issue(make_claim(admin, course_id, amount=amount))

    async with session_factory() as fresh:
        transaction = await fresh.get(Transaction, issued.transaction_id)
        assert transaction.amount == stored
        assert transaction.amount > 0


async def test_zero_max_attempts_is_respected(db, admin, course_id):
    generator = ScriptedGenerator(["FF-FF-FF-FF"])

    with pytest.raises(CodeGenerationExhaustedError):
        await UnlockCodeIssuer(db, generator=generator, max_attempts=0).issue(make_claim(admin, course_id))

    assert generator.calls == 0


async def test_course_lookup_failure_raises_persistence_error(db, admin, course_id, monkeypatch):
    async def broken_get(self, *args, **kwargs):
        raise OperationalError("SELECT courses", {}, Exception("database is locked"))

    monkeypatch.setattr(AsyncSession, "get", broken_get)

    with pytest.raises(PersistenceError):
        await UnlockCodeIssuer(db).issue(make_claim(admin, course_id))

    monkeypatch.undo()
    assert await count_rows(db, Transaction) == 0
    assert await count_rows(db, UnlockCode) == 0


async def test_transaction_commit_failure_raises_persistence_error(db, admin, course_id, monkeypatch):
    async def broken_commit(self):
        raise OperationalError("INSERT INTO transactions", {}, Exception("disk I/O error"))

    monkeypatch.setattr(AsyncSession, "commit", broken_commit)

    with pytest.raises(PersistenceError):
        await UnlockCodeIssuer(db).issue(make_claim(admin, course_id))

    monkeypatch.undo()
    assert await count_rows(db, Transaction) == 0
    assert await count_rows(db, UnlockCode) == 0
