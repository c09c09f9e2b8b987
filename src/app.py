import logging
import pandas as pd
import time

from concurrent.futures import ProcessPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import replace
from tqdm import tqdm
from typing import Any, Dict, List, Optional


# Internal Imports
from audit import FlowTracker
from economic_factors import InflationGenerator
from forecast_engine import calculate_retirement_projections
from load_data import EXPORT, export_projections, load_plan
from monte_carlo import (
    analyze_sequence_of_returns_risk,
    run_monte_carlo,
    summarize_monte_carlo,
)
from taxes import TaxCalculator

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    filename="app.log",
)

# Simulation settings
SIM_SIZE = 500
SIM_SEED = 42
SHOW_SCENARIO_SWEEP = True
SHOW_MONTE_CARLO = True
SHOW_FLOW_BREAKDOWN = False

# Scenario sweep settings
SWEEP_GROWTH_RATES = [0.04, 0.06, 0.08, 0.10]
SWEEP_LAST_RETIREMENT_AGE = 65
SWEEP_RETIREMENT_GROWTH_FACTOR = 0.7
SAFE_WITHDRAWAL_RATE = 0.04


@contextmanager
def timed(label):
    start = time.time()
    yield
    logging.info(f"{label} completed in {(time.time() - start):.1f} seconds.")


def build_tax_calculator(plan: Dict[str, Any]) -> Optional[TaxCalculator]:
    """
    Calculator for a plan with its own bracket tables; None lets the engine
    use the reference-year tables.
    """
    brackets = plan.get("tax_brackets")
    if not brackets:
        return None
    settings = plan["settings"]
    household = plan["household"]
    base_inflation = None
    if settings.index_tax_brackets and household.final_year:
        years = list(range(settings.current_year, household.final_year + 1))
        base_inflation = InflationGenerator(years, settings.inflation_rate).generate()
    return TaxCalculator(base_brackets=brackets, base_inflation=base_inflation)


def run_scenario(
    plan: Dict[str, Any], retirement_age: int, growth_rate: float
) -> Dict[str, Any]:
    """
    One projection for a retirement age and pre-retirement growth rate;
    retirement growth is 70% of it. Reports ending net worth and the
    4%-rule monthly income at retirement.
    """
    household = plan["household"]
    base = plan["settings"]
    current_age = base.current_year - household.birth_year
    settings = replace(
        base,
        retirement_age=retirement_age,
        years_to_retirement=max(0, retirement_age - current_age),
        growth_rate_before_retirement=growth_rate,
        growth_rate_during_retirement=growth_rate * SWEEP_RETIREMENT_GROWTH_FACTOR,
        withdrawal_priority="default",
        withdrawal_secondary_priority="tax_optimization",
    )
    rows = calculate_retirement_projections(
        household,
        plan["accounts"],
        plan["expenses"],
        plan["other_income"],
        settings,
        tax_calc=build_tax_calculator(plan),
    )
    at_retirement = next((r for r in rows if r.age == retirement_age), None)
    portfolio = at_retirement.assets_remaining if at_retirement else 0
    return {
        "retirement_age": retirement_age,
        "growth_rate": growth_rate,
        "ending_networth": rows[-1].networth if rows else 0,
        "monthly_income": int(round(portfolio * SAFE_WITHDRAWAL_RATE / 12)),
    }


def run_scenario_sweep(
    plan: Dict[str, Any],
    growth_rates: List[float] = SWEEP_GROWTH_RATES,
    max_workers: Optional[int] = None,
) -> pd.DataFrame:
    """
    Every retirement age from next year's age through 65 against every
    growth rate, one process-pool task per combination.
    """
    household = plan["household"]
    current_age = plan["settings"].current_year - household.birth_year
    ages = range(current_age + 1, SWEEP_LAST_RETIREMENT_AGE + 1)
    combos = [(age, rate) for age in ages for rate in growth_rates]
    results = []

    with ProcessPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(run_scenario, plan, age, rate): (age, rate)
            for age, rate in combos
        }
        for future in tqdm(
            as_completed(futures), total=len(futures), desc="Running Scenario Sweep"
        ):
            age, rate = futures[future]
            try:
                results.append(future.result())
            except Exception as e:
                logging.error(f"[Sweep] retirement age {age} at {rate:.0%} failed: {e}")
                results.append(
                    {
                        "retirement_age": age,
                        "growth_rate": rate,
                        "ending_networth": 0,
                        "monthly_income": 0,
                    }
                )

    columns = ["retirement_age", "growth_rate", "ending_networth", "monthly_income"]
    df = pd.DataFrame(results, columns=columns)
    return df.sort_values(["retirement_age", "growth_rate"]).reset_index(drop=True)


def main():
    with timed("Projection"):
        plan = load_plan()
        household = plan["household"]
        settings = plan["settings"]
        tax_calc = build_tax_calculator(plan)
        flow_tracker = FlowTracker()

        rows = calculate_retirement_projections(
            household,
            plan["accounts"],
            plan["expenses"],
            plan["other_income"],
            settings,
            tax_calc=tax_calc,
            flow_tracker=flow_tracker,
        )
        if not rows:
            logging.error("No projections produced, check profile.json and settings.json")
            return

        export_projections(rows)
        logging.info(
            f"[Projection] final net worth ${rows[-1].networth:,}, "
            f"total tax ${sum(r.tax for r in rows):,}"
        )
        if SHOW_FLOW_BREAKDOWN:
            flow_tracker.breakdown().to_csv(EXPORT / "flows.csv")

        risk = analyze_sequence_of_returns_risk(rows, settings.retirement_age)
        logging.info(
            f"[SequenceRisk] {risk['risk_level']}: worst {risk['worst_case_sequence']:.1f}%, "
            f"average {risk['average_sequence']:.1f}%"
        )

    if SHOW_SCENARIO_SWEEP:
        with timed("Scenario sweep"):
            sweep_df = run_scenario_sweep(plan)
            sweep_df.to_csv(EXPORT / "scenarios.csv", index=False)

    if SHOW_MONTE_CARLO:
        with timed(f"Monte Carlo with {SIM_SIZE} trials"):
            results = run_monte_carlo(
                household,
                plan["accounts"],
                plan["expenses"],
                plan["other_income"],
                settings,
                num_simulations=SIM_SIZE,
                seed=SIM_SEED,
                tax_calc=tax_calc,
                progress=True,
            )
            summary = summarize_monte_carlo(results)
            logging.info(
                f"[MonteCarlo] success {summary['success_rate']:.1f}%, "
                f"median final net worth ${summary['median_final_networth']:,.0f}"
            )
            pd.DataFrame(results).to_csv(EXPORT / "monte_carlo.csv", index=False)


if __name__ == "__main__":
    main()
