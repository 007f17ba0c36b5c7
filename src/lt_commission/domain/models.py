"""Commission policy models.

Policy documents are stored as JSONB on sellers, outlets and organizations.
They are validated once into these pydantic models; resolution code never
looks at raw dicts. Both snake_case keys and the legacy camelCase keys
(loteriaId, betType, multiplierRange, percent, defaultPercent,
effectiveFrom/effectiveTo) are accepted, as are the legacy bet type labels
NUMERO and REVENTADO.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from src.lt_common.enums import BetType, CommissionOrigin
from src.lt_common.money import ZERO

_LEGACY_BET_TYPES = {"NUMERO": BetType.NUMBER, "REVENTADO": BetType.BONUS}


class MultiplierRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: Decimal = Field(..., ge=0)
    max: Decimal = Field(..., ge=0)

    @model_validator(mode="after")
    def _ordered(self) -> "MultiplierRange":
        if self.min > self.max:
            raise ValueError(f"multiplier range min {self.min} > max {self.max}")
        return self

    def contains(self, value: Decimal) -> bool:
        return self.min <= value <= self.max


class CommissionRule(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str | None = None
    lottery_id: str | None = Field(
        None, validation_alias=AliasChoices("lottery_id", "loteriaId")
    )
    bet_type: BetType | None = Field(
        None, validation_alias=AliasChoices("bet_type", "betType")
    )
    multiplier_range: MultiplierRange | None = Field(
        None, validation_alias=AliasChoices("multiplier_range", "multiplierRange")
    )
    rate: Decimal = Field(
        ..., ge=0, le=100, validation_alias=AliasChoices("rate", "percent")
    )

    @field_validator("bet_type", mode="before")
    @classmethod
    def _legacy_bet_type(cls, value: object) -> object:
        if isinstance(value, str):
            return _LEGACY_BET_TYPES.get(value.upper(), value.upper())
        return value


class CommissionPolicy(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: Literal[1] = 1
    effective_from: date | None = Field(
        None, validation_alias=AliasChoices("effective_from", "effectiveFrom")
    )
    effective_to: date | None = Field(
        None, validation_alias=AliasChoices("effective_to", "effectiveTo")
    )
    # Informational only: never authorizes a commission.
    default_rate: Decimal | None = Field(
        None, ge=0, le=100, validation_alias=AliasChoices("default_rate", "defaultPercent")
    )
    rules: list[CommissionRule] = Field(default_factory=list)

    @model_validator(mode="after")
    def _window_ordered(self) -> "CommissionPolicy":
        if (
            self.effective_from is not None
            and self.effective_to is not None
            and self.effective_from > self.effective_to
        ):
            raise ValueError("effective_from is after effective_to")
        return self

    @property
    def enforces_ranges(self) -> bool:
        """True when any rule declares a multiplier range."""
        return any(rule.multiplier_range is not None for rule in self.rules)

    def is_effective_on(self, day: date) -> bool:
        if self.effective_from is not None and day < self.effective_from:
            return False
        if self.effective_to is not None and day > self.effective_to:
            return False
        return True


@dataclass(frozen=True)
class CommissionContext:
    lottery_id: str
    bet_type: BetType
    multiplier: Decimal      # applied multiplier snapshotted at sale
    stake: Decimal
    currency: str = "CRC"


@dataclass(frozen=True)
class CommissionResult:
    rate: Decimal
    amount: Decimal
    origin: CommissionOrigin | None = None
    rule_id: str | None = None

    @classmethod
    def none(cls) -> "CommissionResult":
        return cls(rate=ZERO, amount=ZERO)


@dataclass(frozen=True)
class PolicyChain:
    """Parsed policies for one seller's hierarchy; any level may be absent."""

    seller: CommissionPolicy | None = None
    outlet: CommissionPolicy | None = None
    org: CommissionPolicy | None = None
