"""Loads commission policy documents for a seller's hierarchy.

One round trip: seller -> outlet -> organization. Documents are parsed
into typed policies here so callers never handle raw JSON.
"""

from datetime import date
from typing import Protocol

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.lt_commission.domain.models import PolicyChain
from src.lt_commission.domain.resolver import parse_chain

_POLICY_CHAIN_FOR_SELLER_SQL = text("""
    SELECT s.commission_policy AS seller_policy,
           o.commission_policy AS outlet_policy,
           g.commission_policy AS org_policy
    FROM sellers s
    JOIN outlets o ON o.id = s.outlet_id
    JOIN organizations g ON g.id = o.org_id
    WHERE s.id = :seller_id
""")

_POLICY_CHAIN_FOR_OUTLET_SQL = text("""
    SELECT NULL::jsonb AS seller_policy,
           o.commission_policy AS outlet_policy,
           g.commission_policy AS org_policy
    FROM outlets o
    JOIN organizations g ON g.id = o.org_id
    WHERE o.id = :outlet_id
""")


class PolicyChainLoaderProtocol(Protocol):
    async def for_seller(
        self, db: AsyncSession, seller_id: str, as_of: date | None = None
    ) -> PolicyChain | None: ...

    async def for_outlet(
        self, db: AsyncSession, outlet_id: str, as_of: date | None = None
    ) -> PolicyChain | None: ...


class PolicyChainLoader:
    async def for_seller(
        self, db: AsyncSession, seller_id: str, as_of: date | None = None
    ) -> PolicyChain | None:
        result = await db.execute(_POLICY_CHAIN_FOR_SELLER_SQL, {"seller_id": seller_id})
        row = result.fetchone()
        if row is None:
            return None
        return parse_chain(row.seller_policy, row.outlet_policy, row.org_policy, as_of)

    async def for_outlet(
        self, db: AsyncSession, outlet_id: str, as_of: date | None = None
    ) -> PolicyChain | None:
        result = await db.execute(_POLICY_CHAIN_FOR_OUTLET_SQL, {"outlet_id": outlet_id})
        row = result.fetchone()
        if row is None:
            return None
        return parse_chain(None, row.outlet_policy, row.org_policy, as_of)
