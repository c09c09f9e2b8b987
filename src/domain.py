import logging
import math
import pandas as pd

from dataclasses import asdict, dataclass, replace
from typing import Dict, List, Optional, Tuple

# Internal Imports
from audit import FlowTracker


ACCOUNT_401K = "401k"
ACCOUNT_ROTH = "Roth"
ACCOUNT_TAXABLE = "Taxable"
ACCOUNT_HSA = "HSA"
ACCOUNT_IRA = "IRA"
ACCOUNT_OTHER = "Other"

# canonical order, also the final tie-break for withdrawal ordering
ACCOUNT_TYPES: Tuple[str, ...] = (
    ACCOUNT_401K,
    ACCOUNT_ROTH,
    ACCOUNT_TAXABLE,
    ACCOUNT_HSA,
    ACCOUNT_IRA,
    ACCOUNT_OTHER,
)
TAX_DEFERRED_TYPES = (ACCOUNT_401K, ACCOUNT_IRA)

_ACCOUNT_ALIASES = {
    "401k": ACCOUNT_401K,
    "401(k)": ACCOUNT_401K,
    "roth": ACCOUNT_ROTH,
    "roth ira": ACCOUNT_ROTH,
    "roth 401k": ACCOUNT_ROTH,
    "taxable": ACCOUNT_TAXABLE,
    "brokerage": ACCOUNT_TAXABLE,
    "hsa": ACCOUNT_HSA,
    "ira": ACCOUNT_IRA,
    "traditional ira": ACCOUNT_IRA,
}


def normalize_account_type(account_type: Optional[str]) -> str:
    if not account_type:
        return ACCOUNT_OTHER
    return _ACCOUNT_ALIASES.get(str(account_type).strip().lower(), ACCOUNT_OTHER)


@dataclass
class Account:
    account_name: str
    balance: float = 0.0
    account_type: str = ACCOUNT_OTHER
    owner: str = "planner"
    annual_contribution: float = 0.0

    @property
    def normalized_type(self) -> str:
        return normalize_account_type(self.account_type)


@dataclass
class Expense:
    """
    Monthly amounts; the engine annualizes them (x12).
    """

    expense_name: str
    amount_before_65: float = 0.0
    amount_after_65: float = 0.0

    def annual_amount(self, age: Optional[int]) -> float:
        monthly = (
            self.amount_after_65
            if age is not None and age >= 65
            else self.amount_before_65
        )
        return max(0.0, monthly or 0.0) * 12


@dataclass
class OtherIncome:
    income_name: str
    amount: float = 0.0
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    inflation_adjusted: bool = False

    def is_valid(self) -> bool:
        return not (
            self.start_year is not None
            and self.end_year is not None
            and self.start_year > self.end_year
        )

    def is_active(self, year: int) -> bool:
        if self.start_year is not None and year < self.start_year:
            return False
        if self.end_year is not None and year > self.end_year:
            return False
        return True


@dataclass
class CalculatorSettings:
    current_year: int
    retirement_age: int = 65
    years_to_retirement: int = 0
    annual_retirement_expenses: float = 0.0
    growth_rate_before_retirement: float = 0.1
    growth_rate_during_retirement: float = 0.05
    capital_gains_tax_rate: float = 0.2
    income_tax_rate_retirement: float = 0.25
    inflation_rate: float = 0.04
    enable_borrowing: bool = False
    debt_interest_rate: float = 0.06
    ssa_start_age: int = 62
    spouse_ssa_start_age: Optional[int] = None
    withdrawal_priority: str = "default"
    withdrawal_secondary_priority: str = "tax_optimization"
    filing_status: Optional[str] = None
    index_tax_brackets: bool = False

    # (field, default, low, high)
    _BOUNDS = (
        ("growth_rate_before_retirement", 0.1, -0.99, 1.0),
        ("growth_rate_during_retirement", 0.05, -0.99, 1.0),
        ("capital_gains_tax_rate", 0.2, 0.0, 1.0),
        ("income_tax_rate_retirement", 0.25, 0.0, 1.0),
        ("inflation_rate", 0.04, -0.99, 1.0),
        ("debt_interest_rate", 0.06, 0.0, 1.0),
    )

    def normalized(self) -> "CalculatorSettings":
        """
        Return a copy with degenerate rates and ages clamped into safe ranges.
        Never raises; every adjustment is logged.
        """
        changes = {}
        for name, default, low, high in self._BOUNDS:
            value = getattr(self, name)
            try:
                value = float(value)
            except (TypeError, ValueError):
                value = float("nan")
            if not math.isfinite(value):
                logging.warning(
                    f"[Settings] {name}={getattr(self, name)!r} is not finite, using {default}"
                )
                changes[name] = default
            elif value < low or value > high:
                clamped = min(high, max(low, value))
                logging.warning(
                    f"[Settings] {name}={value} outside [{low}, {high}], clamped to {clamped}"
                )
                changes[name] = clamped
            else:
                changes[name] = value

        changes["ssa_start_age"] = _clamp_ssa_age(self.ssa_start_age, 62)
        if self.spouse_ssa_start_age is not None:
            changes["spouse_ssa_start_age"] = _clamp_ssa_age(
                self.spouse_ssa_start_age, changes["ssa_start_age"]
            )
        changes["annual_retirement_expenses"] = max(
            0.0, float(self.annual_retirement_expenses or 0.0)
        )
        return replace(self, **changes)


def _clamp_ssa_age(age, default: int) -> int:
    if age is None:
        return default
    clamped = int(min(70, max(62, int(age))))
    if clamped != age:
        logging.warning(f"[Settings] SSA start age {age} clamped to {clamped}")
    return clamped


@dataclass
class Household:
    birth_year: Optional[int]
    life_expectancy: int = 90
    spouse_birth_year: Optional[int] = None
    spouse_life_expectancy: Optional[int] = None
    include_spouse: bool = False
    include_planner_ssa: bool = True
    include_spouse_ssa: bool = False
    planner_ssa_amount: Optional[float] = None
    spouse_ssa_amount: Optional[float] = None
    planner_annual_income: float = 0.0
    spouse_annual_income: float = 0.0

    @property
    def has_spouse(self) -> bool:
        return bool(self.include_spouse and self.spouse_birth_year)

    @property
    def final_year(self) -> Optional[int]:
        if self.birth_year is None:
            return None
        end = self.birth_year + self.life_expectancy
        if self.has_spouse:
            spouse_le = self.spouse_life_expectancy or self.life_expectancy
            end = max(end, self.spouse_birth_year + spouse_le)
        return end

    def planner_alive(self, year: int) -> bool:
        return year - self.birth_year <= self.life_expectancy

    def spouse_alive(self, year: int) -> bool:
        if not self.has_spouse:
            return False
        spouse_le = self.spouse_life_expectancy or self.life_expectancy
        return year - self.spouse_birth_year <= spouse_le


@dataclass(frozen=True)
class ProjectionDetail:
    year: int
    age: Optional[int]
    spouse_age: Optional[int] = None
    event: Optional[str] = None
    ssa_income: int = 0
    distribution_401k: int = 0
    distribution_roth: int = 0
    distribution_taxable: int = 0
    distribution_hsa: int = 0
    distribution_ira: int = 0
    distribution_other: int = 0
    rmd_amount: int = 0
    other_recurring_income: int = 0
    total_income: int = 0
    after_tax_income: int = 0
    living_expenses: int = 0
    special_expenses: int = 0
    total_expenses: int = 0
    gap_excess: int = 0
    cumulative_liability: int = 0
    debt_balance: int = 0
    debt_borrowed: int = 0
    debt_interest_paid: int = 0
    debt_principal_paid: int = 0
    surplus_reinvested: int = 0
    assets_remaining: int = 0
    networth: int = 0
    balance_401k: int = 0
    balance_roth: int = 0
    balance_investment: int = 0
    balance_hsa: int = 0
    balance_ira: int = 0
    balance_other_investments: int = 0
    taxable_income: int = 0
    realized_gains: int = 0
    tax: int = 0
    ordinary_tax: int = 0
    capital_gains_tax: int = 0
    filing_status: Optional[str] = None

    @property
    def total_distributions(self) -> int:
        return (
            self.distribution_401k
            + self.distribution_roth
            + self.distribution_taxable
            + self.distribution_hsa
            + self.distribution_ira
            + self.distribution_other
        )

    @property
    def total_balance(self) -> int:
        return (
            self.balance_401k
            + self.balance_roth
            + self.balance_investment
            + self.balance_hsa
            + self.balance_ira
            + self.balance_other_investments
        )


# row field names for each account type
DISTRIBUTION_FIELDS: Dict[str, str] = {
    ACCOUNT_401K: "distribution_401k",
    ACCOUNT_ROTH: "distribution_roth",
    ACCOUNT_TAXABLE: "distribution_taxable",
    ACCOUNT_HSA: "distribution_hsa",
    ACCOUNT_IRA: "distribution_ira",
    ACCOUNT_OTHER: "distribution_other",
}
BALANCE_FIELDS: Dict[str, str] = {
    ACCOUNT_401K: "balance_401k",
    ACCOUNT_ROTH: "balance_roth",
    ACCOUNT_TAXABLE: "balance_investment",
    ACCOUNT_HSA: "balance_hsa",
    ACCOUNT_IRA: "balance_ira",
    ACCOUNT_OTHER: "balance_other_investments",
}


def projections_to_dataframe(rows: List[ProjectionDetail]) -> pd.DataFrame:
    return pd.DataFrame([asdict(r) for r in rows])


class AccountBucket:
    """
    Working balance for one account type.
      - amount:     current dollar amount
      - cost_basis: basis for taxable gain tracking; deposits add to it,
                    growth does not, withdrawals reduce it pro rata
    """

    def __init__(
        self,
        account_type: str,
        amount: int = 0,
        flow_tracker: Optional[FlowTracker] = None,
        cost_basis: Optional[int] = None,
    ):
        self.account_type = account_type
        self.amount = max(0, int(amount))
        # default cost_basis to the current amount when not provided
        self.cost_basis = cost_basis if cost_basis is not None else self.amount
        self.flow_tracker = flow_tracker

    def balance(self) -> int:
        return self.amount

    def apply_growth(self, rate: float, year: Optional[int] = None) -> int:
        if self.amount <= 0:
            return 0
        growth = int(round(self.amount * rate))
        # a loss can never take the balance below zero
        growth = max(growth, -self.amount)
        self.amount += growth
        if self.flow_tracker and year is not None and growth:
            self.flow_tracker.record(
                "Market", self.account_type, growth, year, "growth"
            )
        return growth

    def deposit(
        self,
        amount: int,
        source: Optional[str] = None,
        year: Optional[int] = None,
        flow_type: str = "contribution",
    ) -> None:
        amount = int(amount)
        if amount <= 0:
            return
        self.amount += amount
        self.cost_basis += amount
        if self.flow_tracker and source and year is not None:
            self.flow_tracker.record(source, self.account_type, amount, year, flow_type)

    def withdraw(
        self,
        amount: int,
        target: Optional[str] = None,
        year: Optional[int] = None,
        flow_type: str = "withdraw",
    ) -> Tuple[int, int]:
        """
        Remove up to `amount`, never below zero.
        Returns (withdrawn, realized_gain) where realized_gain is the part of
        the withdrawal above its share of cost basis.
        """
        amount = int(amount)
        if amount <= 0 or self.amount <= 0:
            return 0, 0

        withdrawn = min(amount, self.amount)
        basis_share = (
            int(round(withdrawn * min(1.0, self.cost_basis / self.amount)))
            if self.cost_basis > 0
            else 0
        )
        self.amount -= withdrawn
        self.cost_basis = max(0, self.cost_basis - basis_share)
        if self.amount == 0:
            self.cost_basis = 0

        if self.flow_tracker and target and year is not None:
            self.flow_tracker.record(
                self.account_type, target, withdrawn, year, flow_type
            )
        return withdrawn, max(0, withdrawn - basis_share)

    def unrealized_gain_fraction(self) -> float:
        if self.amount <= 0:
            return 0.0
        return max(0.0, 1.0 - self.cost_basis / self.amount)


def build_buckets(
    accounts: List[Account], flow_tracker: Optional[FlowTracker] = None
) -> Dict[str, AccountBucket]:
    """
    Pool the caller's accounts into one bucket per account type. The caller's
    records are left untouched.
    """
    totals = {account_type: 0 for account_type in ACCOUNT_TYPES}
    for acc in accounts:
        balance = acc.balance or 0
        if balance < 0:
            logging.warning(
                f"[Accounts] '{acc.account_name}' has negative balance {balance}, using 0"
            )
            balance = 0
        totals[acc.normalized_type] += int(round(balance))

    return {
        account_type: AccountBucket(account_type, amount, flow_tracker)
        for account_type, amount in totals.items()
    }


def snapshot_balances(buckets: Dict[str, AccountBucket]) -> Dict[str, int]:
    return {name: bucket.balance() for name, bucket in buckets.items()}


def contributions_for_year(
    accounts: List[Account], planner_alive: bool, spouse_alive: bool
) -> Dict[str, int]:
    """
    Annual contributions by account type for an accumulation year. A
    deceased owner's accounts stop receiving contributions.
    """
    contributions = {account_type: 0 for account_type in ACCOUNT_TYPES}
    for acc in accounts:
        owner = (acc.owner or "planner").strip().lower()
        if owner == "spouse" and not spouse_alive:
            continue
        if owner not in ("spouse", "joint") and not planner_alive:
            continue
        contributions[acc.normalized_type] += max(
            0, int(round(acc.annual_contribution or 0))
        )
    return contributions
