"""HTTP-level tests: envelope, actor header and AppError mapping.

Services are swapped for fake-backed instances and the DB session
dependency is overridden, so no database or Redis is needed.
"""

from datetime import date
from decimal import Decimal

import pytest

from src.lt_balance.api import router as balance_api
from src.lt_balance.application.service import BalanceService
from src.lt_common.database import get_db_session
from src.lt_common.enums import DrawingStatus, OwnerType
from src.lt_settlement.api import payments_router
from src.lt_settlement.api import router as settlement_api
from src.lt_settlement.application.payments import TicketPaymentService
from src.lt_settlement.application.service import DrawingSettlementService
from src.main import app
from tests.unit.fakes import (
    DictBalanceCache,
    FakeBalanceRepository,
    FakeDrawingRepository,
    FakeTicketPaymentRepository,
    RecordingAuditSink,
    StaticExclusions,
    make_db,
)

ACTOR = {"X-Actor-Id": "operator-1"}


@pytest.fixture(autouse=True)
def fake_db():
    db = make_db()

    async def override():
        yield db

    app.dependency_overrides[get_db_session] = override
    yield db
    app.dependency_overrides.pop(get_db_session, None)


@pytest.fixture
def drawings(monkeypatch) -> FakeDrawingRepository:
    repo = FakeDrawingRepository()
    service = DrawingSettlementService(
        repo=repo,
        exclusions=StaticExclusions(),
        audit=RecordingAuditSink(),
        closings=FakeBalanceRepository(),
    )
    monkeypatch.setattr(settlement_api, "settlement_service", service)
    return repo


@pytest.fixture
def balances(monkeypatch) -> FakeBalanceRepository:
    repo = FakeBalanceRepository()
    monkeypatch.setattr(balance_api, "_service", BalanceService(repo=repo))
    return repo


class TestHealth:
    async def test_health(self, client) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestActorHeader:
    async def test_missing_actor_is_401(self, client, drawings) -> None:
        drawings.add_drawing(status=DrawingStatus.SCHEDULED)
        resp = await client.post("/api/v1/drawings/d-1/open")
        assert resp.status_code == 401
        body = resp.json()
        assert body["code"] == 1001
        assert body["data"] is None

    async def test_blank_actor_is_401(self, client, drawings) -> None:
        resp = await client.post("/api/v1/drawings/d-1/open", headers={"X-Actor-Id": "  "})
        assert resp.status_code == 401


class TestDrawingRoutes:
    async def test_get_drawing(self, client, drawings) -> None:
        drawings.add_drawing()
        resp = await client.get("/api/v1/drawings/d-1")
        assert resp.status_code == 200
        body = resp.json()
        assert body["code"] == 0
        assert body["data"]["status"] == "OPEN"
        assert body["request_id"].startswith("req_")

    async def test_unknown_drawing_maps_to_404(self, client, drawings) -> None:
        resp = await client.get("/api/v1/drawings/nope")
        assert resp.status_code == 404
        assert resp.json()["code"] == 3001

    async def test_wrong_state_maps_to_409(self, client, drawings) -> None:
        drawings.add_drawing(status=DrawingStatus.OPEN)
        resp = await client.post("/api/v1/drawings/d-1/close", headers=ACTOR)
        assert resp.status_code == 409
        assert resp.json()["code"] == 3002

    async def test_open_scheduled_drawing(self, client, drawings, fake_db) -> None:
        drawings.add_drawing(status=DrawingStatus.SCHEDULED)
        resp = await client.post("/api/v1/drawings/d-1/open", headers=ACTOR)
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "OPEN"
        fake_db.commit.assert_awaited()


class TestBalanceRoutes:
    async def test_month_to_date(self, client, balances) -> None:
        balances.add_day(OwnerType.SELLER, "s-1", date(2026, 2, 10), sales=Decimal("300"))
        balances.add_day(OwnerType.SELLER, "s-1", date(2026, 3, 2), sales=Decimal("50"))
        resp = await client.get(
            "/api/v1/balances/SELLER/s-1/month-to-date", params={"today": "2026-03-05"}
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert Decimal(data["previous_month_balance"]) == Decimal("300")
        assert Decimal(data["totals"]["balance"]) == Decimal("50")
        assert Decimal(data["accumulated_balance"]) == Decimal("350")

    async def test_inverted_range_maps_to_422(self, client, balances) -> None:
        resp = await client.get(
            "/api/v1/balances/SELLER/s-1",
            params={"date_from": "2026-03-05", "date_to": "2026-03-01"},
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == 5001

    async def test_unknown_owner_type_is_rejected(self, client, balances) -> None:
        resp = await client.get(
            "/api/v1/balances/BANK/s-1/month-to-date", params={"today": "2026-03-05"}
        )
        assert resp.status_code == 422

    async def test_cache_flush_requires_actor(self, client, balances) -> None:
        resp = await client.post("/api/v1/balances/cache/invalidate", json={})
        assert resp.status_code == 401

    async def test_cache_flush(self, client, monkeypatch) -> None:
        cache = DictBalanceCache()
        service = BalanceService(repo=FakeBalanceRepository(), cache=cache)
        monkeypatch.setattr(balance_api, "_service", service)
        await service.month_to_date(make_db(), OwnerType.SELLER, "s-1", date(2026, 3, 5))

        resp = await client.post(
            "/api/v1/balances/cache/invalidate", json={"reason": "exclusions edited"},
            headers=ACTOR,
        )

        assert resp.status_code == 200
        assert resp.json()["data"] == {"flushed": True}
        assert cache.views == {}


class TestTicketPaymentRoutes:
    @pytest.fixture
    def payments(self, monkeypatch, drawings) -> FakeTicketPaymentRepository:
        repo = FakeTicketPaymentRepository(drawings)
        service = TicketPaymentService(repo=repo, audit=RecordingAuditSink(), currency="CRC")
        monkeypatch.setattr(payments_router, "payment_service", service)
        drawings.add_drawing(status=DrawingStatus.EVALUATED)
        drawings.add_ticket(
            "t-1", status="EVALUATED", is_winner=True,
            total_payout=Decimal("700.00"), remaining_amount=Decimal("700.00"),
        )
        return repo

    async def test_partial_payment(self, client, payments, fake_db) -> None:
        resp = await client.post(
            "/api/v1/tickets/t-1/payments",
            json={"amount": "250", "idempotency_key": "p-1"},
            headers=ACTOR,
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["replayed"] is False
        assert data["payment"]["paid_by"] == "operator-1"
        assert data["ticket"]["status"] == "EVALUATED"
        assert Decimal(data["ticket"]["remaining_amount"]) == Decimal("450")
        fake_db.commit.assert_awaited()

    async def test_overpayment_maps_to_422(self, client, payments) -> None:
        resp = await client.post(
            "/api/v1/tickets/t-1/payments", json={"amount": "701"}, headers=ACTOR
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == 3008

    async def test_unknown_ticket_maps_to_404(self, client, payments) -> None:
        resp = await client.post(
            "/api/v1/tickets/nope/payments", json={"amount": "1"}, headers=ACTOR
        )
        assert resp.status_code == 404
        assert resp.json()["code"] == 3006

    async def test_reverse_and_list(self, client, payments) -> None:
        paid = await client.post(
            "/api/v1/tickets/t-1/payments", json={"amount": "700"}, headers=ACTOR
        )
        payment_id = paid.json()["data"]["payment"]["id"]
        assert paid.json()["data"]["ticket"]["status"] == "PAID"

        resp = await client.post(
            f"/api/v1/tickets/payments/{payment_id}/reverse",
            json={"reason": "wrong ticket"},
            headers=ACTOR,
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["ticket"]["status"] == "EVALUATED"

        listed = await client.get("/api/v1/tickets/t-1/payments")
        items = listed.json()["data"]["items"]
        assert [i["is_reversed"] for i in items] == [True]
