"""Unit tests for LedgerService against the in-memory repository."""

from datetime import date
from decimal import Decimal

import pytest

from src.lt_commission.domain.models import CommissionPolicy, PolicyChain
from src.lt_common.enums import LedgerEntryType, OwnerType
from src.lt_common.errors import (
    AccountInactiveError,
    AccountNotFoundError,
    EntryAlreadyReversedError,
    IdempotencyConflictError,
    InvalidAmountError,
    InvalidLedgerOperationError,
    LedgerEntryNotFoundError,
)
from src.lt_ledger.application.service import LedgerService
from src.lt_ledger.domain.models import EntryFilter, SaleLine
from tests.unit.fakes import (
    FakeBalanceRepository,
    FakeLedgerRepository,
    FakeSession,
    RecordingAuditSink,
    RecordingInvalidator,
    make_db,
)

DAY = date(2026, 3, 10)


@pytest.fixture
def repo() -> FakeLedgerRepository:
    return FakeLedgerRepository()


@pytest.fixture
def audit() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def invalidator() -> RecordingInvalidator:
    return RecordingInvalidator()


@pytest.fixture
def closings() -> FakeBalanceRepository:
    return FakeBalanceRepository()


@pytest.fixture
def svc(repo, audit, invalidator, closings) -> LedgerService:
    return LedgerService(
        repo=repo,
        invalidator=invalidator,
        audit=audit,
        default_currency="CRC",
        closings=closings,
    )


def _balance_matches_entries(repo: FakeLedgerRepository, account_id: str) -> bool:
    total = sum(
        (e.amount for e in repo.entries if e.account_id == account_id), Decimal("0")
    )
    return repo.accounts[account_id].balance == total


class TestAccounts:
    async def test_get_or_create_is_stable(self, svc, repo) -> None:
        db = make_db()
        first = await svc.get_or_create_account(db, OwnerType.SELLER, "s-1")
        second = await svc.get_or_create_account(db, OwnerType.SELLER, "s-1")
        assert first.id == second.id
        assert first.currency == "CRC"
        assert len(repo.accounts) == 1

    async def test_missing_account(self, svc) -> None:
        with pytest.raises(AccountNotFoundError):
            await svc.get_account(make_db(), "nope")


class TestAddEntry:
    async def test_balance_equals_sum_of_entries(self, svc, repo) -> None:
        account = repo.add_account()
        db = make_db()
        await svc.add_entry(db, account.id, LedgerEntryType.SALE, Decimal("-100"), created_by="u")
        await svc.add_entry(
            db, account.id, LedgerEntryType.COMMISSION, Decimal("10.005"), created_by="u"
        )
        await svc.add_entry(db, account.id, LedgerEntryType.PAYOUT, Decimal("70"), created_by="u")

        assert repo.accounts[account.id].balance == Decimal("-19.99")
        assert _balance_matches_entries(repo, account.id)
        # 10.005 rounds half up to the minor unit
        assert repo.entries[1].amount == Decimal("10.01")

    async def test_idempotent_replay_posts_once(self, svc, repo, audit) -> None:
        account = repo.add_account()
        db = make_db()
        first = await svc.add_entry(
            db, account.id, LedgerEntryType.SALE, Decimal("-50"),
            created_by="u", idempotency_key="k-1",
        )
        second = await svc.add_entry(
            db, account.id, LedgerEntryType.SALE, Decimal("-50"),
            created_by="u", idempotency_key="k-1",
        )
        assert first.id == second.id
        assert len(repo.entries) == 1
        assert repo.accounts[account.id].balance == Decimal("-50")
        assert audit.actions == ["LEDGER_ENTRY_CREATED"]

    async def test_zero_amount_rejected(self, svc, repo) -> None:
        account = repo.add_account()
        db = make_db()
        with pytest.raises(InvalidAmountError):
            await svc.add_entry(db, account.id, LedgerEntryType.SALE, Decimal("0"), created_by="u")
        db.rollback.assert_awaited()
        assert repo.entries == []

    @pytest.mark.parametrize("entry_type", [LedgerEntryType.REVERSAL, LedgerEntryType.TRANSFER])
    async def test_reserved_types_rejected(self, svc, repo, entry_type) -> None:
        account = repo.add_account()
        with pytest.raises(InvalidLedgerOperationError):
            await svc.add_entry(make_db(), account.id, entry_type, Decimal("5"), created_by="u")

    async def test_inactive_account_rejected(self, svc, repo) -> None:
        account = repo.add_account(is_active=False)
        with pytest.raises(AccountInactiveError):
            await svc.add_entry(
                make_db(), account.id, LedgerEntryType.SALE, Decimal("-5"), created_by="u"
            )

    async def test_unknown_account(self, svc) -> None:
        with pytest.raises(AccountNotFoundError):
            await svc.add_entry(
                make_db(), "missing", LedgerEntryType.SALE, Decimal("-5"), created_by="u"
            )

    async def test_cache_and_audit_failures_do_not_fail_the_post(self, repo) -> None:
        svc = LedgerService(
            repo=repo,
            invalidator=RecordingInvalidator(fail=True),
            audit=RecordingAuditSink(fail=True),
            closings=FakeBalanceRepository(),
        )
        account = repo.add_account()
        entry = await svc.add_entry(
            make_db(), account.id, LedgerEntryType.SALE, Decimal("-5"), created_by="u"
        )
        assert entry.amount == Decimal("-5.00")

    async def test_invalidates_owner(self, svc, repo, invalidator) -> None:
        account = repo.add_account(OwnerType.OUTLET, "o-9")
        await svc.add_entry(
            make_db(), account.id, LedgerEntryType.SALE, Decimal("-5"), created_by="u"
        )
        assert invalidator.calls == [(OwnerType.OUTLET, "o-9")]

    async def test_backdated_collection_discards_closings_from_its_month(
        self, svc, repo, closings
    ) -> None:
        account = repo.add_account(OwnerType.SELLER, "s-1")
        await svc.record_movement(
            make_db(), account.id, LedgerEntryType.COLLECTION, Decimal("300"),
            created_by="u", business_date=date(2026, 2, 20),
        )
        assert closings.discards == [(OwnerType.SELLER, "s-1", date(2026, 2, 1))]

    async def test_sale_entry_keeps_closings(self, svc, repo, closings) -> None:
        account = repo.add_account(OwnerType.SELLER, "s-1")
        await svc.add_entry(
            make_db(), account.id, LedgerEntryType.SALE, Decimal("-5"),
            created_by="u", business_date=date(2026, 2, 20),
        )
        assert closings.discards == []

    async def test_replayed_movement_does_not_discard_again(self, svc, repo, closings) -> None:
        account = repo.add_account(OwnerType.SELLER, "s-1")
        db = make_db()
        for _ in range(2):
            await svc.add_entry(
                db, account.id, LedgerEntryType.PAYMENT, Decimal("-40"),
                created_by="u", idempotency_key="pay-1", business_date=date(2026, 1, 5),
            )
        assert closings.discards == [(OwnerType.SELLER, "s-1", date(2026, 1, 1))]


class TestReverseEntry:
    async def test_reversal_negates_and_nets_to_zero(self, svc, repo, audit) -> None:
        account = repo.add_account()
        db = make_db()
        original = await svc.add_entry(
            db, account.id, LedgerEntryType.PAYOUT, Decimal("70"), created_by="u"
        )
        reversal = await svc.reverse_entry(
            db, account.id, original.id, reason="typo", created_by="u"
        )
        assert reversal.entry_type == "REVERSAL"
        assert reversal.amount == Decimal("-70")
        assert reversal.reversal_of == original.id
        assert repo.accounts[account.id].balance == Decimal("0")
        assert _balance_matches_entries(repo, account.id)
        assert audit.actions[-1] == "LEDGER_ENTRY_REVERSED"

    async def test_second_reversal_rejected(self, svc, repo) -> None:
        account = repo.add_account()
        db = make_db()
        original = await svc.add_entry(
            db, account.id, LedgerEntryType.PAYOUT, Decimal("70"), created_by="u"
        )
        await svc.reverse_entry(db, account.id, original.id, reason="r", created_by="u")
        with pytest.raises(EntryAlreadyReversedError):
            await svc.reverse_entry(db, account.id, original.id, reason="r", created_by="u")

    async def test_reversal_replay_with_same_key(self, svc, repo) -> None:
        account = repo.add_account()
        db = make_db()
        original = await svc.add_entry(
            db, account.id, LedgerEntryType.PAYOUT, Decimal("70"), created_by="u"
        )
        a = await svc.reverse_entry(
            db, account.id, original.id, reason="r", created_by="u", idempotency_key="rev-1"
        )
        b = await svc.reverse_entry(
            db, account.id, original.id, reason="r", created_by="u", idempotency_key="rev-1"
        )
        assert a.id == b.id
        assert repo.accounts[account.id].balance == Decimal("0")

    async def test_reversal_key_reused_for_another_entry_conflicts(self, svc, repo) -> None:
        account = repo.add_account()
        db = make_db()
        first = await svc.add_entry(
            db, account.id, LedgerEntryType.PAYOUT, Decimal("70"), created_by="u"
        )
        second = await svc.add_entry(
            db, account.id, LedgerEntryType.PAYOUT, Decimal("30"), created_by="u"
        )
        await svc.reverse_entry(
            db, account.id, first.id, reason="r", created_by="u", idempotency_key="rev-1"
        )
        with pytest.raises(IdempotencyConflictError):
            await svc.reverse_entry(
                db, account.id, second.id, reason="r", created_by="u", idempotency_key="rev-1"
            )
        assert await repo.find_reversal_of(db, second.id) is None
        assert repo.accounts[account.id].balance == Decimal("30")

    async def test_reversing_a_collection_discards_closings(self, svc, repo, closings) -> None:
        account = repo.add_account(OwnerType.OUTLET, "o-1")
        db = make_db()
        collected = await svc.record_movement(
            db, account.id, LedgerEntryType.COLLECTION, Decimal("50"),
            created_by="u", business_date=DAY,
        )
        await svc.reverse_entry(
            db, account.id, collected.id, reason="r", created_by="u",
            business_date=date(2026, 1, 15),
        )
        assert closings.discards[-1] == (OwnerType.OUTLET, "o-1", date(2026, 1, 1))

    async def test_cannot_reverse_a_reversal(self, svc, repo) -> None:
        account = repo.add_account()
        db = make_db()
        original = await svc.add_entry(
            db, account.id, LedgerEntryType.PAYOUT, Decimal("70"), created_by="u"
        )
        reversal = await svc.reverse_entry(db, account.id, original.id, reason="r", created_by="u")
        with pytest.raises(InvalidLedgerOperationError):
            await svc.reverse_entry(db, account.id, reversal.id, reason="r", created_by="u")

    async def test_entry_of_another_account_is_not_found(self, svc, repo) -> None:
        a = repo.add_account(owner_id="s-1")
        b = repo.add_account(owner_id="s-2")
        db = make_db()
        entry = await svc.add_entry(db, a.id, LedgerEntryType.PAYOUT, Decimal("5"), created_by="u")
        with pytest.raises(LedgerEntryNotFoundError):
            await svc.reverse_entry(db, b.id, entry.id, reason="r", created_by="u")


class TestTransfer:
    async def test_two_legs_and_conservation(self, svc, repo) -> None:
        src = repo.add_account(OwnerType.OUTLET, "o-1")
        dst = repo.add_account(OwnerType.SELLER, "s-1")
        result = await svc.transfer(
            make_db(), src.id, dst.id, Decimal("25"),
            doc_number="D-1", doc_date=DAY, created_by="u", idempotency_key="t-1",
        )
        assert result.debit.amount == Decimal("-25")
        assert result.credit.amount == Decimal("25")
        assert result.debit.reference_id == result.document.id
        assert repo.accounts[src.id].balance + repo.accounts[dst.id].balance == Decimal("0")
        assert not result.replayed

    async def test_failure_on_credit_leg_leaves_nothing_posted(self, svc, repo, audit) -> None:
        src = repo.add_account(OwnerType.OUTLET, "o-1")
        dst = repo.add_account(OwnerType.SELLER, "s-1")
        repo.fail_on_entry = 2
        db = FakeSession(repo)

        with pytest.raises(ConnectionError):
            await svc.transfer(
                db, src.id, dst.id, Decimal("25"),
                doc_number="D-1", doc_date=DAY, created_by="u", idempotency_key="t-1",
            )

        assert db.commits == 0 and db.rollbacks == 1
        assert repo.entries == []
        assert repo.documents == {}
        assert repo.accounts[src.id].balance == Decimal("0")
        assert repo.accounts[dst.id].balance == Decimal("0")
        assert audit.actions == []

        repo.fail_on_entry = None
        retried = await svc.transfer(
            db, src.id, dst.id, Decimal("25"),
            doc_number="D-1", doc_date=DAY, created_by="u", idempotency_key="t-1",
        )
        assert not retried.replayed
        assert [e.amount for e in repo.entries] == [Decimal("-25"), Decimal("25")]
        assert repo.accounts[dst.id].balance == Decimal("25")

    async def test_replay_returns_same_document(self, svc, repo) -> None:
        src = repo.add_account(OwnerType.OUTLET, "o-1")
        dst = repo.add_account(OwnerType.SELLER, "s-1")
        db = make_db()
        first = await svc.transfer(
            db, src.id, dst.id, Decimal("25"),
            doc_number="D-1", doc_date=DAY, created_by="u", idempotency_key="t-1",
        )
        again = await svc.transfer(
            db, src.id, dst.id, Decimal("25"),
            doc_number="D-1", doc_date=DAY, created_by="u", idempotency_key="t-1",
        )
        assert again.replayed
        assert again.document.id == first.document.id
        assert len(repo.entries) == 2
        assert repo.accounts[dst.id].balance == Decimal("25")

    async def test_replay_with_different_amount_conflicts(self, svc, repo) -> None:
        src = repo.add_account(OwnerType.OUTLET, "o-1")
        dst = repo.add_account(OwnerType.SELLER, "s-1")
        db = make_db()
        await svc.transfer(
            db, src.id, dst.id, Decimal("25"),
            doc_number="D-1", doc_date=DAY, created_by="u", idempotency_key="t-1",
        )
        with pytest.raises(IdempotencyConflictError):
            await svc.transfer(
                db, src.id, dst.id, Decimal("30"),
                doc_number="D-1", doc_date=DAY, created_by="u", idempotency_key="t-1",
            )

    async def test_same_account_rejected(self, svc, repo) -> None:
        a = repo.add_account()
        with pytest.raises(InvalidLedgerOperationError):
            await svc.transfer(
                make_db(), a.id, a.id, Decimal("1"), doc_number="D", doc_date=DAY, created_by="u"
            )

    async def test_currency_mismatch_rejected(self, svc, repo) -> None:
        a = repo.add_account(owner_id="s-1", currency="CRC")
        b = repo.add_account(owner_id="s-2", currency="USD")
        with pytest.raises(InvalidLedgerOperationError):
            await svc.transfer(
                make_db(), a.id, b.id, Decimal("1"), doc_number="D", doc_date=DAY, created_by="u"
            )

    async def test_non_positive_amount_rejected(self, svc, repo) -> None:
        a = repo.add_account(owner_id="s-1")
        b = repo.add_account(owner_id="s-2")
        with pytest.raises(InvalidAmountError):
            await svc.transfer(
                make_db(), a.id, b.id, Decimal("-1"), doc_number="D", doc_date=DAY, created_by="u"
            )


class TestMovementsAndDeposits:
    async def test_payment_is_debit_and_collection_is_credit(self, svc, repo) -> None:
        account = repo.add_account()
        db = make_db()
        paid = await svc.record_movement(
            db, account.id, LedgerEntryType.PAYMENT, Decimal("50"), created_by="u"
        )
        collected = await svc.record_movement(
            db, account.id, LedgerEntryType.COLLECTION, Decimal("30"), created_by="u"
        )
        assert paid.amount == Decimal("-50")
        assert collected.amount == Decimal("30")
        assert paid.reference_type == "RECEIPT"

    async def test_movement_type_must_be_cash(self, svc, repo) -> None:
        account = repo.add_account()
        with pytest.raises(InvalidLedgerOperationError):
            await svc.record_movement(
                make_db(), account.id, LedgerEntryType.SALE, Decimal("5"), created_by="u"
            )

    async def test_bank_deposit_posts_credit_once(self, svc, repo) -> None:
        account = repo.add_account()
        db = make_db()
        deposit, entry = await svc.create_bank_deposit(
            db, account.id, doc_number="B-77", amount=Decimal("120"), deposit_date=DAY,
            created_by="u", bank_name="BN", idempotency_key="dep-1",
        )
        again, replay = await svc.create_bank_deposit(
            db, account.id, doc_number="B-77", amount=Decimal("120"), deposit_date=DAY,
            created_by="u", bank_name="BN", idempotency_key="dep-1",
        )
        assert entry.amount == Decimal("120")
        assert entry.entry_type == "BANK_DEPOSIT"
        assert entry.reference_id == deposit.id
        assert again.id == deposit.id and replay.id == entry.id
        assert repo.accounts[account.id].balance == Decimal("120")


class TestPostSale:
    @staticmethod
    def _chain() -> PolicyChain:
        return PolicyChain(
            seller=CommissionPolicy.model_validate(
                {"rules": [{"id": "r1", "bet_type": "NUMBER", "rate": "10"}]}
            ),
            outlet=CommissionPolicy.model_validate({"rules": [{"id": "o1", "rate": "5"}]}),
        )

    async def test_sale_and_commission_for_seller(self, svc, repo) -> None:
        account = repo.add_account(OwnerType.SELLER, "s-1")
        posting = await svc.post_sale(
            make_db(), account.id, ticket_id="t-1",
            lines=[
                SaleLine("b-1", "lot-1", "NUMBER", Decimal("70"), Decimal("100")),
                SaleLine("b-2", "lot-1", "BONUS", Decimal("0"), Decimal("50")),
            ],
            chain=self._chain(), created_by="u", business_date=DAY,
        )
        assert posting.sale_entry.amount == Decimal("-150")
        assert posting.total_commission == Decimal("10.00")
        assert posting.commission_entry is not None
        assert posting.commission_snapshots["b-1"] == (
            Decimal("10"), Decimal("10.00"), "SELLER", "r1"
        )
        assert posting.commission_snapshots["b-2"][1] == Decimal("0")

    async def test_outlet_tier_for_outlet_account(self, svc, repo) -> None:
        account = repo.add_account(OwnerType.OUTLET, "o-1")
        posting = await svc.post_sale(
            make_db(), account.id, ticket_id="t-1",
            lines=[SaleLine("b-1", "lot-1", "NUMBER", Decimal("70"), Decimal("100"))],
            chain=self._chain(), created_by="u", business_date=DAY,
        )
        assert posting.total_commission == Decimal("5.00")
        assert posting.commission_snapshots["b-1"][2] == "OUTLET"

    async def test_sale_is_posted_once_per_ticket(self, svc, repo) -> None:
        account = repo.add_account(OwnerType.SELLER, "s-1")
        lines = [SaleLine("b-1", "lot-1", "NUMBER", Decimal("70"), Decimal("100"))]
        db = make_db()
        await svc.post_sale(db, account.id, ticket_id="t-1", lines=lines,
                            chain=self._chain(), created_by="u", business_date=DAY)
        await svc.post_sale(db, account.id, ticket_id="t-1", lines=lines,
                            chain=self._chain(), created_by="u", business_date=DAY)
        assert len(repo.entries) == 2
        assert repo.accounts[account.id].balance == Decimal("-90.00")

    async def test_retry_keeps_commission_resolved_at_first_post(self, svc, repo) -> None:
        account = repo.add_account(OwnerType.SELLER, "s-1")
        lines = [SaleLine("b-1", "lot-1", "NUMBER", Decimal("70"), Decimal("100"))]
        db = make_db()
        first = await svc.post_sale(db, account.id, ticket_id="t-1", lines=lines,
                                    chain=PolicyChain(), created_by="u", business_date=DAY)
        # The policy gained a 10% rule between the post and the retry
        retry = await svc.post_sale(db, account.id, ticket_id="t-1", lines=lines,
                                    chain=self._chain(), created_by="u", business_date=DAY)

        assert first.commission_entry is None and not first.replayed
        assert retry.replayed
        assert retry.sale_entry.id == first.sale_entry.id
        assert retry.commission_entry is None
        assert retry.total_commission == Decimal("0")
        assert retry.commission_snapshots["b-1"][1] == Decimal("0")
        assert [e.entry_type for e in repo.entries] == ["SALE"]
        assert repo.accounts[account.id].balance == Decimal("-100")

    async def test_retry_returns_stored_snapshots(self, svc, repo) -> None:
        account = repo.add_account(OwnerType.SELLER, "s-1")
        lines = [SaleLine("b-1", "lot-1", "NUMBER", Decimal("70"), Decimal("100"))]
        db = make_db()
        first = await svc.post_sale(db, account.id, ticket_id="t-1", lines=lines,
                                    chain=self._chain(), created_by="u", business_date=DAY)
        retry = await svc.post_sale(db, account.id, ticket_id="t-1", lines=lines,
                                    chain=PolicyChain(), created_by="u", business_date=DAY)
        assert retry.commission_entry.id == first.commission_entry.id
        assert retry.total_commission == Decimal("10.00")
        assert retry.commission_snapshots == first.commission_snapshots

    @pytest.mark.parametrize(
        "retry_lines",
        [
            [SaleLine("b-1", "lot-1", "NUMBER", Decimal("70"), Decimal("120"))],
            [
                SaleLine("b-1", "lot-1", "NUMBER", Decimal("70"), Decimal("60")),
                SaleLine("b-2", "lot-1", "NUMBER", Decimal("70"), Decimal("40")),
            ],
        ],
    )
    async def test_retry_with_different_lines_conflicts(self, svc, repo, retry_lines) -> None:
        account = repo.add_account(OwnerType.SELLER, "s-1")
        db = make_db()
        await svc.post_sale(
            db, account.id, ticket_id="t-1",
            lines=[SaleLine("b-1", "lot-1", "NUMBER", Decimal("70"), Decimal("100"))],
            chain=self._chain(), created_by="u", business_date=DAY,
        )
        with pytest.raises(IdempotencyConflictError):
            await svc.post_sale(db, account.id, ticket_id="t-1", lines=retry_lines,
                                chain=self._chain(), created_by="u", business_date=DAY)
        assert len(repo.entries) == 2

    async def test_unknown_bet_type(self, svc, repo) -> None:
        account = repo.add_account(OwnerType.SELLER, "s-1")
        with pytest.raises(InvalidLedgerOperationError):
            await svc.post_sale(
                make_db(), account.id, ticket_id="t-1",
                lines=[SaleLine("b-1", "lot-1", "PARLAY", Decimal("1"), Decimal("1"))],
                chain=self._chain(), created_by="u",
            )


class TestReads:
    async def test_keyset_pagination_walks_all_entries(self, svc, repo) -> None:
        account = repo.add_account()
        db = make_db()
        for i in range(5):
            await svc.add_entry(
                db, account.id, LedgerEntryType.SALE, Decimal(-(i + 1)),
                created_by="u", business_date=date(2026, 3, 1 + i),
            )
        page1 = await svc.list_entries(db, account.id, EntryFilter(), None, limit=2)
        page2 = await svc.list_entries(db, account.id, EntryFilter(), page1.next_cursor, limit=2)
        page3 = await svc.list_entries(db, account.id, EntryFilter(), page2.next_cursor, limit=2)

        ids = [e.id for p in (page1, page2, page3) for e in p.items]
        assert ids == [5, 4, 3, 2, 1]
        assert page1.has_more and page2.has_more and not page3.has_more
        assert page3.next_cursor is None

    async def test_summary_is_consistent(self, svc, repo) -> None:
        account = repo.add_account()
        db = make_db()
        await svc.add_entry(db, account.id, LedgerEntryType.SALE, Decimal("-40"), created_by="u")
        await svc.add_entry(db, account.id, LedgerEntryType.PAYOUT, Decimal("15"), created_by="u")
        summary = await svc.balance_summary(db, account.id)
        assert summary.is_consistent
        assert summary.total_debits == Decimal("40")
        assert summary.total_credits == Decimal("15")
        assert summary.entry_count == 2
