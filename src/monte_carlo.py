import logging
import numpy as np

from dataclasses import replace
from tqdm import tqdm
from typing import Any, Dict, List, Optional

# Internal Imports
from domain import (
    Account,
    CalculatorSettings,
    Expense,
    Household,
    OtherIncome,
    ProjectionDetail,
)
from forecast_engine import calculate_retirement_projections
from taxes import TaxCalculator


PRE_RETIREMENT_STD = 0.15
RETIREMENT_STD = 0.12
# a trial fails once this share of its years run a negative gap
NEGATIVE_YEAR_LIMIT = 0.2
SEQUENCE_WINDOW = 10


def run_monte_carlo(
    household: Household,
    accounts: List[Account],
    expenses: List[Expense],
    other_income: List[OtherIncome],
    settings: CalculatorSettings,
    num_simulations: int = 1000,
    seed: int = 42,
    tax_calc: Optional[TaxCalculator] = None,
    progress: bool = False,
) -> List[Dict[str, Any]]:
    """
    Re-run the projection with sampled growth rates: N(base, 15%) before
    retirement and N(base, 12%) during, both floored at zero. The same seed
    always yields the same trials.
    """
    rng = np.random.default_rng(seed)
    results = []

    trials = range(num_simulations)
    if progress:
        trials = tqdm(trials, total=num_simulations, desc="Running Monte Carlo Simulation")

    for trial in trials:
        before = max(0.0, float(rng.normal(settings.growth_rate_before_retirement, PRE_RETIREMENT_STD)))
        during = max(0.0, float(rng.normal(settings.growth_rate_during_retirement, RETIREMENT_STD)))
        trial_settings = replace(
            settings,
            growth_rate_before_retirement=before,
            growth_rate_during_retirement=during,
        )
        rows = calculate_retirement_projections(
            household, accounts, expenses, other_income, trial_settings, tax_calc=tax_calc
        )
        if not rows:
            logging.warning(f"[MonteCarlo] trial {trial} produced no projections")
            continue

        final_networth = rows[-1].networth
        negative_years = sum(1 for r in rows if r.gap_excess < 0)
        results.append(
            {
                "simulation": trial + 1,
                "growth_before": before,
                "growth_during": during,
                "success": final_networth > 0
                and negative_years < len(rows) * NEGATIVE_YEAR_LIMIT,
                "final_networth": final_networth,
                "min_networth": min(r.networth for r in rows),
                "years_negative_cash_flow": negative_years,
                "total_taxes": sum(r.tax for r in rows),
            }
        )

    return results


def summarize_monte_carlo(results: List[Dict[str, Any]]) -> Dict[str, float]:
    if not results:
        return {
            "success_rate": 0.0,
            "average_final_networth": 0.0,
            "median_final_networth": 0.0,
            "min_final_networth": 0.0,
            "max_final_networth": 0.0,
            "average_min_networth": 0.0,
            "average_years_negative_cash_flow": 0.0,
            "average_total_taxes": 0.0,
            "percentile_25": 0.0,
            "percentile_75": 0.0,
            "percentile_90": 0.0,
            "percentile_95": 0.0,
        }

    finals = np.array([r["final_networth"] for r in results], dtype=float)
    return {
        "success_rate": 100.0 * sum(1 for r in results if r["success"]) / len(results),
        "average_final_networth": float(finals.mean()),
        "median_final_networth": float(np.median(finals)),
        "min_final_networth": float(finals.min()),
        "max_final_networth": float(finals.max()),
        "average_min_networth": float(np.mean([r["min_networth"] for r in results])),
        "average_years_negative_cash_flow": float(
            np.mean([r["years_negative_cash_flow"] for r in results])
        ),
        "average_total_taxes": float(np.mean([r["total_taxes"] for r in results])),
        "percentile_25": float(np.percentile(finals, 25)),
        "percentile_75": float(np.percentile(finals, 75)),
        "percentile_90": float(np.percentile(finals, 90)),
        "percentile_95": float(np.percentile(finals, 95)),
    }


def analyze_sequence_of_returns_risk(
    rows: List[ProjectionDetail], retirement_age: int
) -> Dict[str, Any]:
    """
    Approximate yearly portfolio returns over the first decade of
    retirement, adding back that year's distributions and removing
    reinvested surplus. Returns are reported as percentages.
    """
    start = next(
        (i for i, r in enumerate(rows) if r.age is not None and r.age >= retirement_age),
        None,
    )
    if start is None:
        return {
            "worst_case_sequence": 0.0,
            "best_case_sequence": 0.0,
            "average_sequence": 0.0,
            "risk_level": "Low",
            "description": "Retirement not reached within the projection",
        }

    window = rows[start : start + SEQUENCE_WINDOW]
    returns = []
    for prev, cur in zip(window, window[1:]):
        if prev.assets_remaining <= 0:
            continue
        flow = cur.total_distributions - cur.surplus_reinvested
        returns.append(
            (cur.assets_remaining - prev.assets_remaining + flow) / prev.assets_remaining
        )
    returns = [r for r in returns if r != 0]

    worst = min(returns) if returns else 0.0
    best = max(returns) if returns else 0.0
    average = float(np.mean(returns)) if returns else 0.0

    if worst < -0.2:
        risk_level = "High"
        description = "Poor returns early in retirement could significantly impact the plan"
    elif worst < -0.1:
        risk_level = "Medium"
        description = "Downturns early in retirement could affect the plan"
    else:
        risk_level = "Low"
        description = "Plan appears resilient to early-retirement volatility"

    return {
        "worst_case_sequence": worst * 100,
        "best_case_sequence": best * 100,
        "average_sequence": average * 100,
        "risk_level": risk_level,
        "description": description,
    }
