import logging
from typing import Dict

from domain import CalculatorSettings, Household


FULL_RETIREMENT_AGE = 67
EARLIEST_CLAIM_AGE = 62
LATEST_CLAIM_AGE = 70

# the benefit heuristic: a proxy, not the bend-point PIA formula
DEFAULT_PRIMARY_BENEFIT = 20000
DEFAULT_SPOUSE_BENEFIT = 15000
WAGE_BASE = 168600
SPOUSE_FACTOR = 0.75
BENEFIT_BOUNDS = {
    True: (15000, 45000),
    False: (10000, 35000),
}
REPLACEMENT_TIERS = [
    # (upper income, replacement rate)
    (50000, 0.40),
    (100000, 0.30),
    (float("inf"), 0.20),
]

EARLY_REDUCTION_PER_YEAR = 1 / 15
MAX_EARLY_REDUCTION = 0.30
DELAY_CREDIT_PER_YEAR = 0.08
MAX_DELAY_CREDIT = 0.24


def estimate_ssa(annual_income: float, is_primary: bool = True) -> float:
    """
    Annual benefit at full retirement age, in today's dollars, from a
    pre-retirement income. Zero income falls back to a flat default.
    """
    if not annual_income or annual_income <= 0:
        return DEFAULT_PRIMARY_BENEFIT if is_primary else DEFAULT_SPOUSE_BENEFIT

    capped = min(annual_income, WAGE_BASE)
    benefit = 0.0
    floor = 0.0
    for upper, rate in REPLACEMENT_TIERS:
        if capped <= floor:
            break
        benefit += (min(capped, upper) - floor) * rate
        floor = upper

    if not is_primary:
        benefit *= SPOUSE_FACTOR

    low, high = BENEFIT_BOUNDS[bool(is_primary)]
    return max(low, min(high, benefit))


def start_age_adjustment(start_age: int) -> float:
    """
    Multiplier applied to the full-retirement-age benefit for claiming at
    `start_age`: about -6.67%/yr early (at most -30% at 62), +8%/yr delayed
    (at most +24% at 70).
    """
    age = min(LATEST_CLAIM_AGE, max(EARLIEST_CLAIM_AGE, int(start_age)))
    if age < FULL_RETIREMENT_AGE:
        reduction = min(
            MAX_EARLY_REDUCTION, (FULL_RETIREMENT_AGE - age) * EARLY_REDUCTION_PER_YEAR
        )
        return 1.0 - reduction
    return 1.0 + min(MAX_DELAY_CREDIT, (age - FULL_RETIREMENT_AGE) * DELAY_CREDIT_PER_YEAR)


class SocialSecurityModel:
    """
    Household benefit stream. Each party's benefit is fixed at claim time by
    the start-age adjustment and grows with inflation from the plan's base
    year; it stops the year after that party's life expectancy.
    """

    def __init__(self, household: Household, settings: CalculatorSettings):
        self.household = household
        self.planner_start_age = settings.ssa_start_age
        self.spouse_start_age = settings.spouse_ssa_start_age or settings.ssa_start_age

        self.planner_base = 0.0
        if household.include_planner_ssa:
            base = (
                household.planner_ssa_amount
                if household.planner_ssa_amount is not None
                else estimate_ssa(household.planner_annual_income, True)
            )
            self.planner_base = max(0.0, base) * start_age_adjustment(
                self.planner_start_age
            )

        self.spouse_base = 0.0
        if household.include_spouse_ssa and household.has_spouse:
            base = (
                household.spouse_ssa_amount
                if household.spouse_ssa_amount is not None
                else estimate_ssa(household.spouse_annual_income, False)
            )
            self.spouse_base = max(0.0, base) * start_age_adjustment(
                self.spouse_start_age
            )

        logging.debug(
            f"[SSA] planner base ${self.planner_base:,.0f} from age {self.planner_start_age}, "
            f"spouse base ${self.spouse_base:,.0f} from age {self.spouse_start_age}"
        )

    def spouse_ssa_active(self, year: int) -> bool:
        """
        True while spousal SSA is modelled and both parties are alive.
        """
        return (
            self.household.include_spouse_ssa
            and self.household.has_spouse
            and self.household.planner_alive(year)
            and self.household.spouse_alive(year)
        )

    def benefits(self, year: int, inflation_multiplier: float) -> Dict[str, int]:
        planner = 0
        spouse = 0
        hh = self.household

        planner_age = year - hh.birth_year
        if (
            self.planner_base > 0
            and hh.planner_alive(year)
            and planner_age >= self.planner_start_age
        ):
            planner = int(round(self.planner_base * inflation_multiplier))

        if self.spouse_base > 0 and hh.spouse_alive(year):
            spouse_age = year - hh.spouse_birth_year
            if spouse_age >= self.spouse_start_age:
                spouse = int(round(self.spouse_base * inflation_multiplier))

        return {"planner": planner, "spouse": spouse, "total": planner + spouse}


def household_ssa(
    household: Household,
    settings: CalculatorSettings,
    year: int,
    inflation_multiplier: float = 1.0,
) -> int:
    return SocialSecurityModel(household, settings).benefits(year, inflation_multiplier)["total"]
