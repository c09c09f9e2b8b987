import logging

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

# Internal Imports
from domain import ACCOUNT_TAXABLE, TAX_DEFERRED_TYPES, AccountBucket


RMD_START_AGE = 73

# IRS Uniform Lifetime Table (distribution period by age)
UNIFORM_LIFETIME_TABLE: Dict[int, float] = {
    72: 27.4,
    73: 26.5,
    74: 25.5,
    75: 24.6,
    76: 23.7,
    77: 22.9,
    78: 22.0,
    79: 21.1,
    80: 20.2,
    81: 19.4,
    82: 18.5,
    83: 17.7,
    84: 16.8,
    85: 16.0,
    86: 15.2,
    87: 14.4,
    88: 13.7,
    89: 12.9,
    90: 12.2,
    91: 11.5,
    92: 10.8,
    93: 10.1,
    94: 9.5,
    95: 8.9,
    96: 8.4,
    97: 7.8,
    98: 7.3,
    99: 6.8,
    100: 6.4,
    101: 6.0,
    102: 5.6,
    103: 5.2,
    104: 4.9,
    105: 4.6,
}


class RequiredMinimumDistributionPolicy:
    """
    Mandatory yearly draw from tax-deferred buckets once the owner reaches
    `start_age`: prior year-end 401k + IRA balance over the Uniform Lifetime
    divisor, split pro rata across the two.
    """

    def __init__(
        self,
        start_age: int = RMD_START_AGE,
        table: Optional[Dict[int, float]] = None,
    ):
        self.start_age = start_age
        self.table = table or UNIFORM_LIFETIME_TABLE

    def is_active(self, age: Optional[int]) -> bool:
        return age is not None and age >= self.start_age

    def divisor(self, age: int) -> float:
        if age in self.table:
            return self.table[age]
        oldest = max(self.table)
        if age > oldest:
            return self.table[oldest]
        return self.table[min(self.table)]

    def required_amounts(
        self, prior_balances: Dict[str, int], age: Optional[int]
    ) -> Dict[str, int]:
        if not self.is_active(age):
            return {}
        divisor = self.divisor(age)
        amounts = {}
        for account_type in TAX_DEFERRED_TYPES:
            balance = max(0, prior_balances.get(account_type, 0))
            if balance > 0:
                amounts[account_type] = int(round(balance / divisor))
        return amounts

    def apply(
        self,
        buckets: Dict[str, AccountBucket],
        prior_balances: Dict[str, int],
        age: Optional[int],
        year: int,
    ) -> Dict[str, int]:
        """
        Withdraw the year's RMD, clamped to what each bucket holds now.
        Returns the amounts actually distributed by type.
        """
        taken = {}
        for account_type, amount in self.required_amounts(prior_balances, age).items():
            bucket = buckets.get(account_type)
            if bucket is None:
                continue
            withdrawn, _ = bucket.withdraw(
                amount, target="Household", year=year, flow_type="rmd"
            )
            if withdrawn:
                taken[account_type] = withdrawn
        if taken:
            logging.debug(
                f"[RMD] {year} age {age}: ${sum(taken.values()):,} "
                f"(divisor {self.divisor(age)})"
            )
        return taken


@dataclass(frozen=True)
class DebtState:
    balance: int = 0
    borrowed: int = 0


class BorrowingPolicy:
    """
    Models shortfalls as debt. Existing debt accrues interest yearly; a
    negative gap becomes new principal and unpaid interest capitalizes; a
    positive gap pays interest first, then principal.
    """

    def __init__(self, interest_rate: float = 0.06):
        self.interest_rate = max(0.0, interest_rate or 0.0)

    def apply_shortfall(
        self, debt_state: DebtState, gap: int, enable_borrowing: bool
    ) -> Tuple[DebtState, int, int]:
        """
        Returns (new debt state, interest paid, principal paid). With
        borrowing disabled the state passes through untouched.
        """
        if not enable_borrowing:
            return DebtState(balance=debt_state.balance), 0, 0

        balance = max(0, int(debt_state.balance))
        interest_due = int(round(balance * self.interest_rate))
        gap = int(gap)

        if gap < 0:
            borrowed = -gap
            new_balance = balance + interest_due + borrowed
            logging.debug(
                f"[Debt] borrowed ${borrowed:,}, capitalized interest ${interest_due:,}, "
                f"balance ${new_balance:,}"
            )
            return DebtState(balance=new_balance, borrowed=borrowed), 0, 0

        interest_paid = min(gap, interest_due)
        balance += interest_due - interest_paid
        principal_paid = min(gap - interest_paid, balance)
        balance -= principal_paid
        if interest_paid or principal_paid:
            logging.debug(
                f"[Debt] paid interest ${interest_paid:,}, principal ${principal_paid:,}, "
                f"balance ${balance:,}"
            )
        return DebtState(balance=balance), interest_paid, principal_paid


class SurplusSweepPolicy:
    """
    Reinvests the year's remaining surplus into the taxable bucket once debt
    is fully retired. Recorded as a "surplus" flow, apart from contributions.
    """

    def __init__(self, target: str = ACCOUNT_TAXABLE):
        self.target = target

    def sweep(
        self,
        buckets: Dict[str, AccountBucket],
        surplus: int,
        debt_state: DebtState,
        year: int,
    ) -> int:
        surplus = int(surplus)
        if surplus <= 0 or debt_state.balance > 0:
            return 0
        bucket = buckets.get(self.target)
        if bucket is None:
            logging.warning(f"[Surplus] {year} no '{self.target}' bucket, surplus dropped")
            return 0
        bucket.deposit(surplus, source="Surplus", year=year, flow_type="surplus")
        return surplus
