import logging
import numpy as np

from typing import Dict, List, Optional, Tuple

# Internal Imports
from domain import ACCOUNT_TAXABLE, AccountBucket


class InflationGenerator:
    """
    Yearly inflation schedule {year: {"rate", "modifier"}}. The first year is
    the plan's base year and carries modifier 1.0; each later modifier
    compounds that year's rate. With std == 0 every rate equals avg.
    """

    def __init__(self, years: List[int], avg: float, std: float = 0.0, seed: int = 42):
        self.years = list(years)
        self.avg = avg
        self.std = std
        self.seed = seed

    def generate(self) -> Dict[int, Dict[str, float]]:
        rng = np.random.default_rng(self.seed)
        modifier = 1.0
        out = {}
        for i, y in enumerate(self.years):
            if self.std > 0:
                rate = max(0.0, float(rng.normal(self.avg, self.std)))
            else:
                rate = float(self.avg)
            if i > 0:
                modifier *= 1 + rate
            out[y] = {"rate": rate, "modifier": modifier}
        return out


def grow_and_contribute(
    buckets: Dict[str, AccountBucket],
    contributions: Optional[Dict[str, int]],
    growth_rate: float,
    year: Optional[int] = None,
) -> Dict[str, int]:
    """
    Steps (1) and (2) of a year: growth on the prior balance, then
    contributions. Returns growth by account type.
    """
    growth = {}
    for name, bucket in buckets.items():
        growth[name] = bucket.apply_growth(growth_rate, year)

    for name, amount in (contributions or {}).items():
        if amount <= 0:
            continue
        bucket = buckets.get(name)
        if bucket is None:
            logging.warning(f"[Contribution] {year} no bucket for '{name}', skipping")
            continue
        bucket.deposit(amount, source="Contribution", year=year)
    return growth


def apply_distributions(
    buckets: Dict[str, AccountBucket],
    distributions: Optional[Dict[str, int]],
    year: Optional[int] = None,
) -> Tuple[Dict[str, int], int]:
    """
    Step (3): subtract distributions, clamped at zero.
    Returns (unmet amount by type, realized gains from the taxable bucket).
    """
    unmet = {}
    realized_gains = 0
    for name, amount in (distributions or {}).items():
        amount = int(amount)
        if amount <= 0:
            continue
        bucket = buckets.get(name)
        if bucket is None:
            unmet[name] = amount
            continue
        withdrawn, gain = bucket.withdraw(amount, target="Household", year=year)
        if name == ACCOUNT_TAXABLE:
            realized_gains += gain
        if withdrawn < amount:
            unmet[name] = amount - withdrawn
            logging.debug(
                f"[Distribution] {year} {name} short ${amount - withdrawn:,} of ${amount:,}"
            )
    return unmet, realized_gains


def advance_year(
    buckets: Dict[str, AccountBucket],
    contributions: Optional[Dict[str, int]],
    distributions: Optional[Dict[str, int]],
    growth_rate: float,
    year: Optional[int] = None,
) -> Tuple[Dict[str, int], int]:
    """
    One full balance update in the fixed order growth, contributions,
    distributions. Returns (new balances, unmet residual).
    """
    grow_and_contribute(buckets, contributions, growth_rate, year)
    unmet, _ = apply_distributions(buckets, distributions, year)
    balances = {name: bucket.balance() for name, bucket in buckets.items()}
    return balances, sum(unmet.values())
