import logging

from typing import Any, Dict, List, Optional, Tuple

# Internal Imports
from audit import FlowTracker
from domain import (
    ACCOUNT_TAXABLE,
    ACCOUNT_TYPES,
    BALANCE_FIELDS,
    DISTRIBUTION_FIELDS,
    TAX_DEFERRED_TYPES,
    Account,
    AccountBucket,
    CalculatorSettings,
    Expense,
    Household,
    OtherIncome,
    ProjectionDetail,
    build_buckets,
    contributions_for_year,
    snapshot_balances,
)
from economic_factors import InflationGenerator, apply_distributions, grow_and_contribute
from policies import (
    BorrowingPolicy,
    DebtState,
    RequiredMinimumDistributionPolicy,
    SurplusSweepPolicy,
)
from social_security import SocialSecurityModel
from strategies import BRACKET_FILL_RATE, WithdrawalContext, choose_withdrawal_order
from taxes import TaxCalculator, resolve_filing_status


# gross-up solve: stop within $1 of the need, never loop more than this
SOLVE_TOLERANCE = 1
SOLVE_MAX_ITERATIONS = 50

MEDICARE_AGE = 65
FULL_SSA_AGE = 67
MAX_SSA_AGE = 70


class ProjectionEngine:
    """
    Year-by-year retirement simulator for one or two lives.

    Each year: ages and survivorship, household SSA, other income, expenses,
    then either an accumulation step (growth and contributions, tax on
    guaranteed income only) or a retirement step (growth, RMDs, and a bounded
    gross-up solve that re-runs the withdrawal selector against the tax
    calculator until after-tax income covers expenses). Debt and surplus
    rules run on the resulting gap and one frozen row is appended.
    """

    def __init__(
        self,
        household: Optional[Household],
        accounts: List[Account],
        expenses: List[Expense],
        other_income: List[OtherIncome],
        settings: Optional[CalculatorSettings],
        tax_calc: Optional[TaxCalculator] = None,
        flow_tracker: Optional[FlowTracker] = None,
    ):
        self.household = household
        self.accounts = list(accounts or [])
        self.expenses = list(expenses or [])
        self.other_income = [inc for inc in (other_income or []) if self._valid(inc)]
        self.settings = settings.normalized() if settings is not None else None
        self.tax_calc = tax_calc
        self.flow_tracker = flow_tracker

        self.rmd_policy = RequiredMinimumDistributionPolicy()
        self.borrowing = BorrowingPolicy(
            self.settings.debt_interest_rate if self.settings else 0.06
        )
        self.surplus_sweep = SurplusSweepPolicy()

    @staticmethod
    def _valid(income: OtherIncome) -> bool:
        if not income.is_valid():
            logging.warning(
                f"[Income] '{income.income_name}' starts {income.start_year} after it "
                f"ends {income.end_year}, ignoring"
            )
            return False
        return True

    def run(self) -> List[ProjectionDetail]:
        if self.household is None or self.household.birth_year is None:
            logging.warning("[Projection] No birth year configured, nothing to project")
            return []
        if self.settings is None:
            logging.warning("[Projection] No calculator settings configured, nothing to project")
            return []

        hh = self.household
        settings = self.settings
        start_year = settings.current_year
        final_year = hh.final_year
        if final_year < start_year:
            logging.warning(
                f"[Projection] Horizon {final_year} ends before {start_year}, nothing to project"
            )
            return []

        years = list(range(start_year, final_year + 1))
        self.inflation = InflationGenerator(years, settings.inflation_rate).generate()
        if self.tax_calc is None:
            self.tax_calc = TaxCalculator(
                base_inflation=self.inflation if settings.index_tax_brackets else None
            )
        self.ssa = SocialSecurityModel(hh, settings)

        buckets = build_buckets(self.accounts, self.flow_tracker)
        debt = DebtState()
        cumulative_liability = 0
        rows: List[ProjectionDetail] = []

        logging.info(
            f"[Projection] {start_year}-{final_year}, retire at {settings.retirement_age}, "
            f"strategy {settings.withdrawal_priority}/{settings.withdrawal_secondary_priority}"
        )

        for year in years:
            row, debt = self._simulate_year(year, buckets, debt, cumulative_liability)
            cumulative_liability = row.cumulative_liability
            rows.append(row)

        return rows

    def _ages(self, year: int) -> Tuple[Optional[int], Optional[int]]:
        hh = self.household
        age = year - hh.birth_year if hh.planner_alive(year) else None
        spouse_age = year - hh.spouse_birth_year if hh.spouse_alive(year) else None
        return age, spouse_age

    def _modifier(self, year: int) -> float:
        return self.inflation.get(year, {}).get("modifier", 1.0)

    def _other_income_for(self, year: int) -> int:
        total = 0.0
        for inc in self.other_income:
            if not inc.is_active(year):
                continue
            amount = max(0.0, inc.amount or 0.0)
            if inc.inflation_adjusted:
                amount *= self._modifier(year)
            total += amount
        return int(round(total))

    def _expenses_for(self, year: int, lead_age: Optional[int]) -> int:
        if self.expenses:
            annual = sum(exp.annual_amount(lead_age) for exp in self.expenses)
        else:
            annual = self.settings.annual_retirement_expenses
        return int(round(annual * self._modifier(year)))

    def _events_for(self, year: int, age: Optional[int], spouse_age: Optional[int]) -> Optional[str]:
        hh = self.household
        settings = self.settings
        events = []
        if age is not None:
            if age == settings.retirement_age:
                events.append("Retirement")
            if hh.include_planner_ssa and age == settings.ssa_start_age:
                events.append("SSA Start")
            if age == MEDICARE_AGE:
                events.append("Medicare Eligibility")
            if age == FULL_SSA_AGE:
                events.append("Full SSA")
            if age == MAX_SSA_AGE:
                events.append("Max SSA")
            if age == self.rmd_policy.start_age:
                events.append("RMD Starts")
        if (
            spouse_age is not None
            and hh.include_spouse_ssa
            and spouse_age == self.ssa.spouse_start_age
        ):
            events.append("Spouse SSA Start")
        if hh.has_spouse:
            if age is None and spouse_age is not None and hh.planner_alive(year - 1):
                events.append("Planner Deceased")
            if spouse_age is None and age is not None and hh.spouse_alive(year - 1):
                events.append("Spouse Deceased")
        return ", ".join(events) if events else None

    def _tax(
        self,
        status: str,
        ordinary: int,
        gains: int,
        ssa: int,
        year: int,
    ) -> Dict[str, Any]:
        return self.tax_calc.calculate_tax(
            status, ordinary_income=ordinary, gains=gains, ss_benefits=ssa, year=year
        )

    def _simulate_year(
        self,
        year: int,
        buckets: Dict[str, AccountBucket],
        debt: DebtState,
        cumulative_liability: int,
    ) -> Tuple[ProjectionDetail, DebtState]:
        hh = self.household
        settings = self.settings

        age, spouse_age = self._ages(year)
        lead_age = age if age is not None else spouse_age
        planner_alive = age is not None
        spouse_alive = spouse_age is not None
        # the survivor's household is always drawing down
        is_retired = (not planner_alive) or age >= settings.retirement_age
        retirement_year = hh.birth_year + settings.retirement_age
        years_since_retirement = max(0, year - retirement_year)

        status = resolve_filing_status(
            settings.filing_status, self.ssa.spouse_ssa_active(year)
        )
        ssa = self.ssa.benefits(year, self._modifier(year))["total"]
        other = self._other_income_for(year)
        living = self._expenses_for(year, lead_age)

        prior_balances = snapshot_balances(buckets)

        # (1) growth and (2) contributions
        growth_rate = (
            settings.growth_rate_during_retirement
            if is_retired
            else settings.growth_rate_before_retirement
        )
        contributions = (
            {}
            if is_retired
            else contributions_for_year(self.accounts, planner_alive, spouse_alive)
        )
        grow_and_contribute(buckets, contributions, growth_rate, year)

        distributions = {t: 0 for t in ACCOUNT_TYPES}
        rmd_total = 0
        realized_gains = 0

        if is_retired:
            # (3) RMDs first, then the gross-up solve for the rest
            rmds = self.rmd_policy.apply(buckets, prior_balances, lead_age, year)
            for t, amount in rmds.items():
                distributions[t] += amount
            rmd_total = sum(rmds.values())

            draws = self._solve_withdrawals(
                buckets,
                year=year,
                age=lead_age,
                years_since_retirement=years_since_retirement,
                status=status,
                ssa=ssa,
                ordinary_base=other + rmd_total,
                cash_base=ssa + other + rmd_total,
                expenses=living,
            )
            _, realized_gains = apply_distributions(buckets, draws, year)
            for t, amount in draws.items():
                distributions[t] += amount

        total_distributions = sum(distributions.values())
        ordinary = other + sum(distributions[t] for t in TAX_DEFERRED_TYPES)
        tax = self._tax(status, ordinary, realized_gains, ssa, year)

        total_income = ssa + other + total_distributions
        after_tax = total_income - tax["total_tax"]
        total_expenses = living
        # before retirement expenses are funded by earnings
        gap = after_tax - total_expenses if is_retired else after_tax

        debt, interest_paid, principal_paid = self.borrowing.apply_shortfall(
            debt, gap, settings.enable_borrowing
        )
        surplus_reinvested = 0
        if gap > 0:
            surplus_reinvested = self.surplus_sweep.sweep(
                buckets, gap - interest_paid - principal_paid, debt, year
            )

        if gap < 0:
            cumulative_liability += -gap
        else:
            cumulative_liability = max(0, cumulative_liability - gap)

        balances = snapshot_balances(buckets)
        assets = sum(balances.values())

        fields = {
            "year": year,
            "age": age,
            "spouse_age": spouse_age,
            "event": self._events_for(year, age, spouse_age),
            "ssa_income": ssa,
            "rmd_amount": rmd_total,
            "other_recurring_income": other,
            "total_income": total_income,
            "after_tax_income": after_tax,
            "living_expenses": living,
            "special_expenses": 0,
            "total_expenses": total_expenses,
            "gap_excess": gap,
            "cumulative_liability": cumulative_liability,
            "debt_balance": debt.balance,
            "debt_borrowed": debt.borrowed,
            "debt_interest_paid": interest_paid,
            "debt_principal_paid": principal_paid,
            "surplus_reinvested": surplus_reinvested,
            "assets_remaining": assets,
            "networth": assets - debt.balance,
            "taxable_income": tax["agi"],
            "realized_gains": realized_gains,
            "tax": tax["total_tax"],
            "ordinary_tax": tax["ordinary_tax"],
            "capital_gains_tax": tax["capital_gains_tax"],
            "filing_status": status,
        }
        for t in ACCOUNT_TYPES:
            fields[DISTRIBUTION_FIELDS[t]] = distributions[t]
            fields[BALANCE_FIELDS[t]] = balances[t]

        logging.debug(
            f"[Projection] {year} age {age}: income ${total_income:,} tax ${tax['total_tax']:,} "
            f"gap ${gap:,} networth ${assets - debt.balance:,}"
        )
        return ProjectionDetail(**fields), debt

    def _solve_withdrawals(
        self,
        buckets: Dict[str, AccountBucket],
        year: int,
        age: int,
        years_since_retirement: int,
        status: str,
        ssa: int,
        ordinary_base: int,
        cash_base: int,
        expenses: int,
    ) -> Dict[str, int]:
        """
        Fixed-point search for the gross draw whose after-tax proceeds cover
        the year's expenses. Each pass re-ranks accounts for the current
        estimate and re-taxes the resulting draws.
        """
        settings = self.settings
        balances = snapshot_balances(buckets)
        gain_fraction = buckets[ACCOUNT_TAXABLE].unrealized_gain_fraction()
        no_draws = {t: 0 for t in ACCOUNT_TYPES}

        base_tax = self._tax(status, ordinary_base, 0, ssa, year)["total_tax"]
        net_need = expenses + base_tax - cash_base
        if net_need <= 0 or sum(balances.values()) <= 0:
            return no_draws

        taxable_ss = self.tax_calc.taxable_social_security(ssa, ordinary_base, status)
        headroom = self.tax_calc.bracket_headroom(
            ordinary_base + taxable_ss, status, BRACKET_FILL_RATE, year
        )
        years_remaining = self.household.final_year - year

        seed_rate = min(0.9, settings.income_tax_rate_retirement)
        gross = int(round(net_need / (1 - seed_rate)))
        draws = no_draws
        residual = net_need

        for _ in range(SOLVE_MAX_ITERATIONS):
            ctx = WithdrawalContext(
                balances=balances,
                age=age,
                years_remaining=years_remaining,
                years_since_retirement=years_since_retirement,
                is_retired=True,
                rmd_active=self.rmd_policy.is_active(age),
                need=gross,
                bracket_headroom=headroom,
            )
            plan = choose_withdrawal_order(
                ctx, settings.withdrawal_priority, settings.withdrawal_secondary_priority
            )
            draws = plan.draws_for(gross)
            drawn = sum(draws.values())

            ordinary = ordinary_base + sum(draws[t] for t in TAX_DEFERRED_TYPES)
            gains = int(round(draws[ACCOUNT_TAXABLE] * gain_fraction))
            tax = self._tax(status, ordinary, gains, ssa, year)["total_tax"]
            residual = expenses - (cash_base + drawn - tax)

            if abs(residual) <= SOLVE_TOLERANCE:
                break
            if residual > 0 and drawn >= plan.available:
                logging.debug(
                    f"[Withdrawal] {year} accounts exhausted, ${residual:,} uncovered"
                )
                break
            gross = max(0, gross + residual)
        else:
            logging.debug(
                f"[Withdrawal] {year} no convergence after {SOLVE_MAX_ITERATIONS} "
                f"iterations, residual ${residual:,}"
            )

        return draws


def calculate_retirement_projections(
    household: Optional[Household],
    accounts: List[Account],
    expenses: List[Expense],
    other_income: List[OtherIncome],
    settings: Optional[CalculatorSettings],
    tax_calc: Optional[TaxCalculator] = None,
    flow_tracker: Optional[FlowTracker] = None,
) -> List[ProjectionDetail]:
    return ProjectionEngine(
        household,
        accounts,
        expenses,
        other_income,
        settings,
        tax_calc=tax_calc,
        flow_tracker=flow_tracker,
    ).run()
