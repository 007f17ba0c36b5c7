"""DrawingSettlementService — drawing state machine and evaluation.

Every status change is a conditional UPDATE gated on the expected status,
so two concurrent callers can never both move the same drawing. Evaluation
writes winners, ticket totals and the drawing outcome in one transaction;
period balances are refreshed afterwards in a background task whose
failures are only logged.
Stored monthly closings of every affected owner are discarded inside the
same transaction from the month of its earliest affected ticket, since a
late evaluation or a revert changes the totals those months were closed on.
"""

import asyncio
import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.lt_balance.domain.repository import StaleClosingStore
from src.lt_balance.infrastructure.persistence import BalanceRepository
from src.lt_common.audit import AuditRecord, AuditSink, LoggingAuditSink, emit_safely
from src.lt_common.datetime_utils import month_start
from src.lt_common.enums import DrawingStatus, MultiplierKind, OwnerType
from src.lt_common.errors import (
    BonusMultiplierError,
    DrawingHasPaymentsError,
    DrawingNotFoundError,
    DrawingStateError,
)
from src.lt_common.money import ZERO
from src.lt_settlement.domain.evaluation import (
    TRANSITIONS,
    compute_outcomes,
    validate_winning_number,
)
from src.lt_settlement.domain.models import Drawing, EligibleTicket, EvaluationResult
from src.lt_settlement.domain.repository import (
    BalanceRefresher,
    DrawingRepositoryProtocol,
    ExclusionProvider,
)
from src.lt_settlement.infrastructure.persistence import (
    DrawingExclusionProvider,
    DrawingRepository,
)

logger = logging.getLogger(__name__)


class DrawingSettlementService:
    def __init__(
        self,
        repo: DrawingRepositoryProtocol | None = None,
        exclusions: ExclusionProvider | None = None,
        refresher: BalanceRefresher | None = None,
        audit: AuditSink | None = None,
        currency: str | None = None,
        closings: StaleClosingStore | None = None,
    ) -> None:
        self._repo: DrawingRepositoryProtocol = repo or DrawingRepository()
        self._exclusions: ExclusionProvider = exclusions or DrawingExclusionProvider()
        self._refresher = refresher
        self._audit: AuditSink = audit or LoggingAuditSink()
        self._currency = currency or settings.DEFAULT_CURRENCY
        self._closings: StaleClosingStore = closings or BalanceRepository()
        self._background: set[asyncio.Task[None]] = set()

    async def get_drawing(self, db: AsyncSession, drawing_id: str) -> Drawing:
        drawing = await self._repo.get_drawing(db, drawing_id)
        if drawing is None:
            raise DrawingNotFoundError(drawing_id)
        return drawing

    # ------------------------------------------------------------------
    # Plain transitions
    # ------------------------------------------------------------------

    async def open(self, db: AsyncSession, drawing_id: str, actor: str) -> Drawing:
        return await self._simple_transition(db, drawing_id, "open", actor)

    async def close(self, db: AsyncSession, drawing_id: str, actor: str) -> Drawing:
        return await self._simple_transition(db, drawing_id, "close", actor)

    async def revert_evaluation(
        self, db: AsyncSession, drawing_id: str, actor: str, reason: str | None = None
    ) -> Drawing:
        """EVALUATED -> OPEN, clearing every winner flag and payout it set."""
        return await self._clearing_transition(db, drawing_id, "revert", actor, reason)

    async def force_reopen(
        self, db: AsyncSession, drawing_id: str, actor: str, reason: str | None = None
    ) -> Drawing:
        """CLOSED -> OPEN escape hatch; applies the same clearing as revert."""
        return await self._clearing_transition(db, drawing_id, "force_reopen", actor, reason)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate(
        self,
        db: AsyncSession,
        drawing_id: str,
        winning_number: str,
        actor: str,
        bonus_multiplier_id: str | None = None,
        bonus_outcome: str | None = None,
    ) -> EvaluationResult:
        try:
            drawing = await self.get_drawing(db, drawing_id)
            validate_winning_number(winning_number, drawing.digits)
            if drawing.status != DrawingStatus.OPEN.value:
                raise DrawingStateError(drawing_id, drawing.status, "evaluate")

            bonus_value, bonus_label = await self._resolve_bonus(
                db, drawing, bonus_multiplier_id, bonus_outcome
            )
            excluded = await self._exclusions.excluded_ticket_ids(db, drawing_id)

            claimed = await self._repo.claim_evaluation(
                db,
                drawing_id,
                winning_number,
                bonus_multiplier_id if bonus_value > ZERO else None,
                bonus_value,
                bonus_label,
                actor,
            )
            if claimed is None:
                current = await self.get_drawing(db, drawing_id)
                raise DrawingStateError(drawing_id, current.status, "evaluate")

            tickets = [
                t for t in await self._repo.list_eligible_tickets(db, drawing_id)
                if t.id not in excluded
            ]
            ticket_ids = {t.id for t in tickets}
            bets = [
                b for b in await self._repo.list_eligible_bets(db, drawing_id)
                if b.ticket_id in ticket_ids
            ]
            outcome = compute_outcomes(
                bets, ticket_ids, winning_number, bonus_value, self._currency
            )

            await self._repo.mark_winning_bets(db, outcome.winners)
            await self._repo.mark_tickets_evaluated(db, outcome.ticket_payouts)
            drawing = await self._repo.set_has_winner(db, drawing_id, outcome.has_winner)
            await self._discard_stale_closings(db, tickets)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        result = EvaluationResult(
            drawing=drawing,
            tickets_evaluated=len(tickets),
            winning_bets=len(outcome.winners),
            winning_tickets=sum(1 for v in outcome.ticket_payouts.values() if v > ZERO),
            total_payout=outcome.total_payout,
            excluded_tickets=len(excluded),
            affected_owners=_owners_of(tickets),
            affected_dates={t.business_date for t in tickets},
        )
        logger.info(
            "Drawing %s evaluated: number=%s bonus=%s winners=%d payout=%s",
            drawing_id,
            winning_number,
            bonus_value,
            result.winning_bets,
            result.total_payout,
        )
        await emit_safely(
            self._audit,
            AuditRecord(
                action="DRAWING_EVALUATED",
                target_type="DRAWING",
                target_id=drawing_id,
                actor=actor,
                details={
                    "winning_number": winning_number,
                    "bonus_multiplier": str(bonus_value),
                    "winning_bets": result.winning_bets,
                    "total_payout": str(result.total_payout),
                    "excluded_tickets": result.excluded_tickets,
                },
            ),
        )
        self._schedule_refresh(result.affected_owners, result.affected_dates)
        return result

    async def wait_for_background(self) -> None:
        """Await pending balance refreshes (tests and graceful shutdown)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _resolve_bonus(
        self,
        db: AsyncSession,
        drawing: Drawing,
        multiplier_id: str | None,
        outcome_label: str | None,
    ) -> tuple[Decimal, str | None]:
        if multiplier_id is None:
            return ZERO, outcome_label
        multiplier = await self._repo.get_multiplier(db, multiplier_id)
        if multiplier is None:
            raise BonusMultiplierError(multiplier_id, "not found")
        if not multiplier.is_active:
            raise BonusMultiplierError(multiplier_id, "inactive")
        if multiplier.lottery_id != drawing.lottery_id:
            raise BonusMultiplierError(multiplier_id, "belongs to another lottery")
        if multiplier.kind != MultiplierKind.BONUS.value:
            raise BonusMultiplierError(multiplier_id, f"kind {multiplier.kind} is not BONUS")
        if multiplier.drawing_id is not None and multiplier.drawing_id != drawing.id:
            raise BonusMultiplierError(multiplier_id, "scoped to another drawing")
        return multiplier.value, outcome_label or multiplier.name

    async def _simple_transition(
        self, db: AsyncSession, drawing_id: str, action: str, actor: str
    ) -> Drawing:
        expected, target = TRANSITIONS[action]
        try:
            drawing = await self._repo.transition(db, drawing_id, expected, target)
            if drawing is None:
                current = await self.get_drawing(db, drawing_id)
                raise DrawingStateError(drawing_id, current.status, action)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await self._audit_transition(action, drawing_id, actor, expected, target)
        return drawing

    async def _clearing_transition(
        self,
        db: AsyncSession,
        drawing_id: str,
        action: str,
        actor: str,
        reason: str | None,
    ) -> Drawing:
        expected, target = TRANSITIONS[action]
        try:
            current = await self.get_drawing(db, drawing_id)
            if current.status != expected.value:
                raise DrawingStateError(drawing_id, current.status, action)
            # Tickets are read before the clear so their owners can be refreshed
            tickets = await self._repo.list_eligible_tickets(db, drawing_id)
            moved = await self._repo.transition(db, drawing_id, expected, target)
            if moved is None:
                latest = await self.get_drawing(db, drawing_id)
                raise DrawingStateError(drawing_id, latest.status, action)
            if await self._repo.count_paid_tickets(db, drawing_id) > 0:
                raise DrawingHasPaymentsError(drawing_id)
            await self._repo.clear_evaluation(db, drawing_id)
            await self._discard_stale_closings(db, tickets)
            drawing = await self.get_drawing(db, drawing_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await self._audit_transition(action, drawing_id, actor, expected, target, reason)
        self._schedule_refresh(_owners_of(tickets), {t.business_date for t in tickets})
        return drawing

    async def _discard_stale_closings(
        self, db: AsyncSession, tickets: list[EligibleTicket]
    ) -> None:
        earliest: dict[tuple[OwnerType, str], date] = {}
        for t in tickets:
            for owner in ((OwnerType.SELLER, t.seller_id), (OwnerType.OUTLET, t.outlet_id)):
                seen = earliest.get(owner)
                if seen is None or t.business_date < seen:
                    earliest[owner] = t.business_date
        for (owner_type, owner_id), day in sorted(earliest.items()):
            discarded = await self._closings.discard_closings_from(
                db, owner_type, owner_id, month_start(day)
            )
            if discarded:
                logger.warning(
                    "Discarded %d stale closing(s) for %s:%s from %s",
                    discarded,
                    owner_type.value,
                    owner_id,
                    month_start(day),
                )

    async def _audit_transition(
        self,
        action: str,
        drawing_id: str,
        actor: str,
        expected: DrawingStatus,
        target: DrawingStatus,
        reason: str | None = None,
    ) -> None:
        logger.info("Drawing %s %s: %s -> %s", drawing_id, action, expected.value, target.value)
        details: dict[str, object] = {"from": expected.value, "to": target.value}
        if reason:
            details["reason"] = reason
        await emit_safely(
            self._audit,
            AuditRecord(
                action=f"DRAWING_{action.upper()}",
                target_type="DRAWING",
                target_id=drawing_id,
                actor=actor,
                details=details,
            ),
        )

    def _schedule_refresh(self, owners: set[tuple[OwnerType, str]], dates: set[date]) -> None:
        if self._refresher is None or not owners:
            return
        task = asyncio.create_task(self._refresh(owners, dates))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh(self, owners: set[tuple[OwnerType, str]], dates: set[date]) -> None:
        if self._refresher is None:
            return
        try:
            await self._refresher.refresh(owners, dates)
        except Exception:
            logger.exception(
                "Balance refresh after settlement failed: owners=%d dates=%s",
                len(owners),
                sorted(dates),
            )


def _owners_of(tickets: list[EligibleTicket]) -> set[tuple[OwnerType, str]]:
    owners: set[tuple[OwnerType, str]] = set()
    for t in tickets:
        owners.add((OwnerType.SELLER, t.seller_id))
        owners.add((OwnerType.OUTLET, t.outlet_id))
    return owners
