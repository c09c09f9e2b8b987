import logging

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Tuple, Union

# Internal Imports
from domain import (
    ACCOUNT_401K,
    ACCOUNT_HSA,
    ACCOUNT_IRA,
    ACCOUNT_OTHER,
    ACCOUNT_ROTH,
    ACCOUNT_TAXABLE,
    ACCOUNT_TYPES,
    TAX_DEFERRED_TYPES,
)


# first years of retirement treated as the sequence-of-returns danger zone
SEQUENCE_RISK_WINDOW = 10
# the early order also needs more than this many plan years left
SEQUENCE_RISK_MIN_HORIZON = 20
# tax_optimization fills ordinary brackets up to this rate before anything else
BRACKET_FILL_RATE = 0.12


class WithdrawalStrategy(Enum):
    DEFAULT = "default"
    LONGEVITY = "longevity"
    LEGACY = "legacy"
    TAX_OPTIMIZATION = "tax_optimization"
    STABLE_INCOME = "stable_income"
    SEQUENCE_RISK = "sequence_risk"
    LIQUIDITY = "liquidity"

    @classmethod
    def parse(cls, value: Union[str, "WithdrawalStrategy", None]) -> "WithdrawalStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            if value:
                logging.warning(
                    f"[Withdrawal] Unknown strategy '{value}', using {cls.DEFAULT.value}"
                )
            return cls.DEFAULT


@dataclass(frozen=True)
class WithdrawalContext:
    """
    State snapshot the selector ranks against. Built fresh every year.
    """

    balances: Mapping[str, int]
    age: int
    years_remaining: int
    years_since_retirement: int = 0
    is_retired: bool = True
    rmd_active: bool = False
    need: int = 0
    bracket_headroom: int = 0


@dataclass(frozen=True)
class WithdrawalStep:
    account_type: str
    max_amount: int


@dataclass(frozen=True)
class WithdrawalPlan:
    steps: Tuple[WithdrawalStep, ...] = field(default_factory=tuple)
    shortfall: int = 0

    @property
    def available(self) -> int:
        return sum(step.max_amount for step in self.steps)

    @property
    def order(self) -> List[str]:
        seen: List[str] = []
        for step in self.steps:
            if step.account_type not in seen:
                seen.append(step.account_type)
        return seen

    def draws_for(self, amount: int) -> Dict[str, int]:
        """
        Walk the steps in order until `amount` is covered or the plan is
        exhausted.
        """
        draws = {account_type: 0 for account_type in ACCOUNT_TYPES}
        left = max(0, int(amount))
        for step in self.steps:
            if left <= 0:
                break
            take = min(step.max_amount, left)
            draws[step.account_type] += take
            left -= take
        return draws


Ranking = Dict[str, int]

_POST_RMD: Ranking = {
    ACCOUNT_ROTH: 0,
    ACCOUNT_TAXABLE: 1,
    ACCOUNT_HSA: 2,
    ACCOUNT_OTHER: 3,
    ACCOUNT_401K: 4,
    ACCOUNT_IRA: 4,
}


def _rank_default(ctx: WithdrawalContext) -> Ranking:
    if ctx.rmd_active:
        return _POST_RMD
    return {
        ACCOUNT_TAXABLE: 0,
        ACCOUNT_HSA: 1,
        ACCOUNT_401K: 2,
        ACCOUNT_IRA: 2,
        ACCOUNT_ROTH: 3,
        ACCOUNT_OTHER: 4,
    }


def _rank_longevity(ctx: WithdrawalContext) -> Ranking:
    # tax-deferred money is kept compounding the longest
    if ctx.rmd_active:
        return _POST_RMD
    return {
        ACCOUNT_TAXABLE: 0,
        ACCOUNT_HSA: 1,
        ACCOUNT_OTHER: 1,
        ACCOUNT_ROTH: 2,
        ACCOUNT_401K: 3,
        ACCOUNT_IRA: 3,
    }


def _rank_legacy(ctx: WithdrawalContext) -> Ranking:
    # Roth and stepped-up taxable basis pass to heirs; spend tax-deferred first
    if ctx.rmd_active:
        return {
            ACCOUNT_ROTH: 0,
            ACCOUNT_HSA: 1,
            ACCOUNT_OTHER: 2,
            ACCOUNT_401K: 3,
            ACCOUNT_IRA: 3,
            ACCOUNT_TAXABLE: 4,
        }
    return {
        ACCOUNT_401K: 0,
        ACCOUNT_IRA: 0,
        ACCOUNT_HSA: 1,
        ACCOUNT_OTHER: 2,
        ACCOUNT_ROTH: 3,
        ACCOUNT_TAXABLE: 4,
    }


def _rank_tax_optimization(ctx: WithdrawalContext) -> Ranking:
    if ctx.rmd_active:
        return _POST_RMD
    return {
        ACCOUNT_TAXABLE: 0,
        ACCOUNT_HSA: 1,
        ACCOUNT_ROTH: 2,
        ACCOUNT_OTHER: 3,
        ACCOUNT_401K: 4,
        ACCOUNT_IRA: 4,
    }


def _rank_stable_income(ctx: WithdrawalContext) -> Ranking:
    if ctx.rmd_active:
        return _POST_RMD
    return {
        ACCOUNT_TAXABLE: 0,
        ACCOUNT_401K: 1,
        ACCOUNT_IRA: 1,
        ACCOUNT_HSA: 2,
        ACCOUNT_ROTH: 3,
        ACCOUNT_OTHER: 4,
    }


def _rank_sequence_risk(ctx: WithdrawalContext) -> Ranking:
    if ctx.rmd_active:
        return _POST_RMD
    early_retirement = (
        ctx.is_retired
        and ctx.years_since_retirement < SEQUENCE_RISK_WINDOW
        and ctx.years_remaining > SEQUENCE_RISK_MIN_HORIZON
    )
    if early_retirement:
        # equity-heavy long-horizon accounts are left alone early on
        return {
            ACCOUNT_OTHER: 0,
            ACCOUNT_TAXABLE: 1,
            ACCOUNT_HSA: 2,
            ACCOUNT_401K: 3,
            ACCOUNT_IRA: 3,
            ACCOUNT_ROTH: 4,
        }
    return _rank_default(ctx)


def _rank_liquidity(ctx: WithdrawalContext) -> Ranking:
    if ctx.rmd_active:
        return _POST_RMD
    return {
        ACCOUNT_TAXABLE: 0,
        ACCOUNT_ROTH: 1,
        ACCOUNT_HSA: 2,
        ACCOUNT_IRA: 3,
        ACCOUNT_401K: 4,
        ACCOUNT_OTHER: 5,
    }


RANKINGS: Dict[WithdrawalStrategy, Callable[[WithdrawalContext], Ranking]] = {
    WithdrawalStrategy.DEFAULT: _rank_default,
    WithdrawalStrategy.LONGEVITY: _rank_longevity,
    WithdrawalStrategy.LEGACY: _rank_legacy,
    WithdrawalStrategy.TAX_OPTIMIZATION: _rank_tax_optimization,
    WithdrawalStrategy.STABLE_INCOME: _rank_stable_income,
    WithdrawalStrategy.SEQUENCE_RISK: _rank_sequence_risk,
    WithdrawalStrategy.LIQUIDITY: _rank_liquidity,
}


def rank_accounts(
    ctx: WithdrawalContext,
    primary: WithdrawalStrategy,
    secondary: WithdrawalStrategy,
    account_types=ACCOUNT_TYPES,
) -> List[str]:
    """
    Order account types by the primary ranking; the secondary ranking only
    decides between types the primary ranks equally, then canonical order.
    """
    first = RANKINGS[primary](ctx)
    second = RANKINGS[secondary](ctx)
    return sorted(
        account_types,
        key=lambda t: (first[t], second[t], ACCOUNT_TYPES.index(t)),
    )


def choose_withdrawal_order(
    ctx: WithdrawalContext,
    primary: Union[str, WithdrawalStrategy] = WithdrawalStrategy.DEFAULT,
    secondary: Union[str, WithdrawalStrategy] = WithdrawalStrategy.TAX_OPTIMIZATION,
) -> WithdrawalPlan:
    """
    Ordered draw plan for this year. Step maximums never exceed balances; a
    type can appear more than once when a strategy splits it into passes.
    """
    primary = WithdrawalStrategy.parse(primary)
    secondary = WithdrawalStrategy.parse(secondary)

    balances = {t: max(0, int(ctx.balances.get(t, 0) or 0)) for t in ACCOUNT_TYPES}
    remaining = dict(balances)
    total = sum(balances.values())
    steps: List[WithdrawalStep] = []

    if primary is WithdrawalStrategy.TAX_OPTIMIZATION and ctx.bracket_headroom > 0:
        headroom = int(ctx.bracket_headroom)
        for t in rank_accounts(ctx, primary, secondary, TAX_DEFERRED_TYPES):
            take = min(remaining[t], headroom)
            if take > 0:
                steps.append(WithdrawalStep(t, take))
                remaining[t] -= take
                headroom -= take

    if primary is WithdrawalStrategy.STABLE_INCOME and ctx.need > 0 and total > 0:
        # spread the need across every funded account by balance share
        for t in rank_accounts(ctx, secondary, secondary):
            take = min(remaining[t], int(ctx.need * balances[t] / total))
            if take > 0:
                steps.append(WithdrawalStep(t, take))
                remaining[t] -= take

    for t in rank_accounts(ctx, primary, secondary):
        if remaining[t] > 0:
            steps.append(WithdrawalStep(t, remaining[t]))
            remaining[t] = 0

    shortfall = max(0, int(ctx.need) - total)
    if shortfall:
        logging.debug(
            f"[Withdrawal] age {ctx.age}: need ${ctx.need:,} exceeds available ${total:,}"
        )
    return WithdrawalPlan(steps=tuple(steps), shortfall=shortfall)
