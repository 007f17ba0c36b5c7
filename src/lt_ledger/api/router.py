"""lt_ledger REST API. Mutations take the principal from X-Actor-Id."""

from datetime import date
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.lt_balance.infrastructure.cache import BalanceCache
from src.lt_commission.domain.models import PolicyChain
from src.lt_commission.infrastructure.persistence import PolicyChainLoader
from src.lt_common.database import get_db_session
from src.lt_common.enums import LedgerEntryType, OwnerType
from src.lt_common.redis_client import get_redis
from src.lt_common.response import ApiResponse, success_response
from src.lt_gateway.auth.dependencies import get_actor
from src.lt_ledger.application.schemas import (
    AccountResponse,
    AddEntryRequest,
    BalanceSummaryResponse,
    BankDepositRequest,
    LedgerEntryItem,
    MovementRequest,
    OpenAccountRequest,
    ReverseEntryRequest,
    SaleRequest,
    TransferRequest,
    TransferResponse,
)
from src.lt_ledger.application.service import LedgerService
from src.lt_ledger.domain.models import EntryFilter, SaleLine

router = APIRouter(prefix="/ledger", tags=["ledger"])

_service = LedgerService(
    invalidator=BalanceCache(get_redis, settings.BALANCE_CACHE_TTL_SECONDS)
)
_policies = PolicyChainLoader()


@router.post("/accounts")
async def open_account(
    body: OpenAccountRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    account = await _service.get_or_create_account(
        db, body.owner_type, body.owner_id, body.currency
    )
    return success_response(
        AccountResponse.from_account(account).model_dump(mode="json"), request
    )


@router.get("/accounts/{account_id}")
async def get_account(
    account_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    account = await _service.get_account(db, account_id)
    return success_response(
        AccountResponse.from_account(account).model_dump(mode="json"), request
    )


@router.post("/accounts/{account_id}/entries")
async def add_entry(
    account_id: str,
    body: AddEntryRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    entry = await _service.add_entry(
        db,
        account_id,
        body.entry_type,
        body.amount,
        created_by=actor,
        reference_type=body.reference_type.value if body.reference_type else None,
        reference_id=body.reference_id,
        idempotency_key=body.idempotency_key,
        note=body.note,
        business_date=body.business_date,
    )
    return success_response(LedgerEntryItem.from_entry(entry).model_dump(mode="json"), request)


@router.post("/accounts/{account_id}/entries/{entry_id}/reverse")
async def reverse_entry(
    account_id: str,
    entry_id: int,
    body: ReverseEntryRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    entry = await _service.reverse_entry(
        db,
        account_id,
        entry_id,
        reason=body.reason,
        created_by=actor,
        idempotency_key=body.idempotency_key,
        business_date=body.business_date,
    )
    return success_response(LedgerEntryItem.from_entry(entry).model_dump(mode="json"), request)


@router.get("/accounts/{account_id}/entries")
async def list_entries(
    account_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    entry_type: list[LedgerEntryType] | None = Query(None, description="Repeatable"),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    reference_type: str | None = Query(None),
    order: Literal["asc", "desc"] = Query("desc"),
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(50, ge=1, le=200, description="Items per page"),
) -> ApiResponse:
    filters = EntryFilter(
        entry_types=[t.value for t in entry_type] if entry_type else None,
        date_from=date_from,
        date_to=date_to,
        reference_type=reference_type,
        descending=order == "desc",
    )
    page = await _service.list_entries(db, account_id, filters, cursor, limit)
    return success_response(page.model_dump(mode="json"), request)


@router.get("/accounts/{account_id}/summary")
async def balance_summary(
    account_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    summary = await _service.balance_summary(db, account_id)
    return success_response(
        BalanceSummaryResponse.from_summary(summary).model_dump(mode="json"), request
    )


@router.post("/transfers")
async def transfer(
    body: TransferRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    result = await _service.transfer(
        db,
        body.from_account_id,
        body.to_account_id,
        body.amount,
        doc_number=body.doc_number,
        doc_date=body.doc_date,
        created_by=actor,
        idempotency_key=body.idempotency_key,
    )
    return success_response(TransferResponse.from_result(result).model_dump(mode="json"), request)


@router.post("/accounts/{account_id}/movements")
async def record_movement(
    account_id: str,
    body: MovementRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    entry = await _service.record_movement(
        db,
        account_id,
        body.movement_type,
        body.amount,
        created_by=actor,
        reference_id=body.reference_id,
        idempotency_key=body.idempotency_key,
        note=body.note,
        business_date=body.business_date,
    )
    return success_response(LedgerEntryItem.from_entry(entry).model_dump(mode="json"), request)


@router.post("/accounts/{account_id}/bank-deposits")
async def create_bank_deposit(
    account_id: str,
    body: BankDepositRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    deposit, entry = await _service.create_bank_deposit(
        db,
        account_id,
        doc_number=body.doc_number,
        amount=body.amount,
        deposit_date=body.deposit_date,
        bank_name=body.bank_name,
        created_by=actor,
        idempotency_key=body.idempotency_key,
    )
    data = {
        "deposit_id": deposit.id,
        "doc_number": deposit.doc_number,
        "entry": LedgerEntryItem.from_entry(entry).model_dump(mode="json"),
    }
    return success_response(data, request)


@router.post("/accounts/{account_id}/sales")
async def post_sale(
    account_id: str,
    body: SaleRequest,
    actor: Annotated[str, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    account = await _service.get_account(db, account_id)
    chain: PolicyChain | None = None
    if body.seller_id is not None:
        chain = await _policies.for_seller(db, body.seller_id, body.business_date)
    elif account.owner_type == OwnerType.OUTLET.value:
        chain = await _policies.for_outlet(db, account.owner_id, body.business_date)
    posting = await _service.post_sale(
        db,
        account_id,
        ticket_id=body.ticket_id,
        lines=[
            SaleLine(
                bet_id=line.bet_id,
                lottery_id=line.lottery_id,
                bet_type=line.bet_type.value,
                multiplier=line.multiplier,
                stake=line.stake,
            )
            for line in body.lines
        ],
        chain=chain or PolicyChain(),
        created_by=actor,
        business_date=body.business_date,
    )
    data = {
        "sale_entry": LedgerEntryItem.from_entry(posting.sale_entry).model_dump(mode="json"),
        "commission_entry": (
            LedgerEntryItem.from_entry(posting.commission_entry).model_dump(mode="json")
            if posting.commission_entry
            else None
        ),
        "total_commission": str(posting.total_commission),
        "replayed": posting.replayed,
        "commissions": {
            bet_id: {
                "rate": str(rate),
                "amount": str(amount),
                "origin": origin,
                "rule_id": rule_id,
            }
            for bet_id, (rate, amount, origin, rule_id) in posting.commission_snapshots.items()
        },
    }
    return success_response(data, request)
