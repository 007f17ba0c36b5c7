"""Commission resolution: pure functions, no I/O.

Hierarchy is decided at the document level: the first present policy in
the chain is the only one consulted. Within that policy, the first rule
whose declared filters all match wins. The default rate never authorizes a
commission; with no matching rule the rate is 0.
"""

import logging
from datetime import date
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.lt_commission.domain.models import (
    CommissionContext,
    CommissionPolicy,
    CommissionResult,
    CommissionRule,
    PolicyChain,
)
from src.lt_common.datetime_utils import utc_now
from src.lt_common.enums import BetType, CommissionOrigin
from src.lt_common.money import percent_of

logger = logging.getLogger(__name__)


def parse_policy(
    document: dict[str, Any] | CommissionPolicy | None,
    origin: CommissionOrigin,
    as_of: date | None = None,
) -> CommissionPolicy | None:
    """Validate a stored policy document.

    Returns None for a missing document, a malformed one (WARNING) or one
    outside its effective window (INFO). Never raises: a broken policy must
    not block a sale.
    """
    if document is None:
        return None
    if isinstance(document, CommissionPolicy):
        policy = document
    else:
        try:
            policy = CommissionPolicy.model_validate(document)
        except PydanticValidationError as exc:
            logger.warning(
                "Malformed commission policy ignored: origin=%s errors=%s",
                origin.value,
                exc.errors(include_url=False),
            )
            return None
    day = as_of or utc_now().date()
    if not policy.is_effective_on(day):
        logger.info(
            "Commission policy not effective: origin=%s as_of=%s window=%s..%s",
            origin.value,
            day,
            policy.effective_from,
            policy.effective_to,
        )
        return None
    return policy


def rule_matches(
    rule: CommissionRule, policy: CommissionPolicy, ctx: CommissionContext
) -> bool:
    if rule.lottery_id is not None and rule.lottery_id != ctx.lottery_id:
        return False
    if rule.bet_type is not None and rule.bet_type != ctx.bet_type:
        return False
    # Multiplier ranges only constrain straight bets; bonus multipliers are
    # not known at sale time.
    if ctx.bet_type == BetType.BONUS:
        return True
    if rule.multiplier_range is not None:
        return rule.multiplier_range.contains(ctx.multiplier)
    return not policy.enforces_ranges


def find_matching_rule(
    policy: CommissionPolicy, ctx: CommissionContext
) -> CommissionRule | None:
    """First rule in document order whose filters all match."""
    for rule in policy.rules:
        if rule_matches(rule, policy, ctx):
            return rule
    return None


def resolve(
    policy: CommissionPolicy | None,
    ctx: CommissionContext,
    origin: CommissionOrigin | None = None,
    fallback: list[tuple[CommissionPolicy | None, CommissionOrigin]] | None = None,
) -> CommissionResult:
    """Resolve commission for one bet.

    If `policy` is None the first present policy in `fallback` is used
    instead. No present policy, or no matching rule, means no commission.
    """
    chosen, chosen_origin = policy, origin
    if chosen is None:
        for candidate, candidate_origin in fallback or []:
            if candidate is not None:
                chosen, chosen_origin = candidate, candidate_origin
                break
    if chosen is None:
        return CommissionResult.none()

    rule = find_matching_rule(chosen, ctx)
    if rule is None:
        logger.debug(
            "No commission rule matched: origin=%s lottery=%s bet_type=%s multiplier=%s",
            chosen_origin.value if chosen_origin else None,
            ctx.lottery_id,
            ctx.bet_type.value,
            ctx.multiplier,
        )
        return CommissionResult.none()

    return CommissionResult(
        rate=rule.rate,
        amount=percent_of(ctx.stake, rule.rate, ctx.currency),
        origin=chosen_origin,
        rule_id=rule.id,
    )


def resolve_seller_commission(chain: PolicyChain, ctx: CommissionContext) -> CommissionResult:
    """Seller tier: seller -> outlet -> org."""
    return resolve(
        chain.seller,
        ctx,
        CommissionOrigin.SELLER,
        fallback=[
            (chain.outlet, CommissionOrigin.OUTLET),
            (chain.org, CommissionOrigin.ORG),
        ],
    )


def resolve_outlet_commission(chain: PolicyChain, ctx: CommissionContext) -> CommissionResult:
    """Outlet tier: outlet -> org. The seller's own policy is never consulted."""
    return resolve(
        chain.outlet,
        ctx,
        CommissionOrigin.OUTLET,
        fallback=[(chain.org, CommissionOrigin.ORG)],
    )


def is_commissionable(
    policy: CommissionPolicy | None, lottery_id: str, bet_type: BetType
) -> bool:
    """Whether an explicit rule could ever charge this lottery/bet type.

    Multiplier ranges are ignored here; the default rate is never consulted.
    """
    if policy is None:
        return False
    for rule in policy.rules:
        if rule.lottery_id is not None and rule.lottery_id != lottery_id:
            continue
        if rule.bet_type is not None and rule.bet_type != bet_type:
            continue
        if rule.rate > 0:
            return True
    return False


def parse_chain(
    seller_doc: dict[str, Any] | None,
    outlet_doc: dict[str, Any] | None,
    org_doc: dict[str, Any] | None,
    as_of: date | None = None,
) -> PolicyChain:
    return PolicyChain(
        seller=parse_policy(seller_doc, CommissionOrigin.SELLER, as_of),
        outlet=parse_policy(outlet_doc, CommissionOrigin.OUTLET, as_of),
        org=parse_policy(org_doc, CommissionOrigin.ORG, as_of),
    )
