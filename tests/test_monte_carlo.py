from dataclasses import replace

import pytest

from domain import Account, Expense
from forecast_engine import calculate_retirement_projections
from monte_carlo import (
    analyze_sequence_of_returns_risk,
    run_monte_carlo,
    summarize_monte_carlo,
)


@pytest.fixture
def plan(household, accounts, expenses, settings):
    return dict(
        household=household,
        accounts=accounts,
        expenses=expenses,
        other_income=[],
        settings=settings,
    )


class TestRunMonteCarlo:
    def test_reproducible_with_seed(self, plan):
        first = run_monte_carlo(**plan, num_simulations=5, seed=7)
        second = run_monte_carlo(**plan, num_simulations=5, seed=7)
        assert first == second
        assert len(first) == 5

    def test_different_seeds_differ(self, plan):
        a = run_monte_carlo(**plan, num_simulations=3, seed=1)
        b = run_monte_carlo(**plan, num_simulations=3, seed=2)
        assert [r["growth_before"] for r in a] != [r["growth_before"] for r in b]

    def test_sampled_rates_floored_at_zero(self, plan):
        settings = replace(
            plan["settings"],
            growth_rate_before_retirement=-2.0,
            growth_rate_during_retirement=-2.0,
        )
        results = run_monte_carlo(**dict(plan, settings=settings), num_simulations=5)
        assert all(r["growth_before"] == 0.0 for r in results)
        assert all(r["growth_during"] == 0.0 for r in results)

    def test_result_fields(self, plan):
        result = run_monte_carlo(**plan, num_simulations=1)[0]
        assert result["simulation"] == 1
        assert isinstance(result["success"], bool)
        assert result["min_networth"] <= result["final_networth"]
        assert result["total_taxes"] >= 0

    def test_missing_birth_year_skips_trials(self, plan):
        household = replace(plan["household"], birth_year=None)
        assert run_monte_carlo(**dict(plan, household=household), num_simulations=2) == []


class TestSummarizeMonteCarlo:
    def test_empty(self):
        summary = summarize_monte_carlo([])
        assert summary["success_rate"] == 0.0
        assert summary["percentile_95"] == 0.0

    def test_statistics(self):
        results = [
            {
                "success": i >= 2,
                "final_networth": i * 100000,
                "min_networth": i * 10000,
                "years_negative_cash_flow": 10 - i,
                "total_taxes": 1000,
            }
            for i in range(10)
        ]
        summary = summarize_monte_carlo(results)
        assert summary["success_rate"] == 80.0
        assert summary["average_final_networth"] == 450000.0
        assert summary["min_final_networth"] == 0.0
        assert summary["max_final_networth"] == 900000.0
        assert summary["average_total_taxes"] == 1000.0
        assert (
            summary["percentile_25"]
            <= summary["median_final_networth"]
            <= summary["percentile_75"]
            <= summary["percentile_90"]
            <= summary["percentile_95"]
        )


class TestSequenceOfReturnsRisk:
    def test_steady_growth_is_low_risk(self, retiree, settings):
        accounts = [Account("401k", 1500000, "401k"), Account("Brokerage", 300000, "Taxable")]
        expenses = [Expense("Living", 4000, 4000)]
        rows = calculate_retirement_projections(retiree, accounts, expenses, [], settings)
        risk = analyze_sequence_of_returns_risk(rows, 65)
        assert risk["risk_level"] == "Low"
        assert risk["average_sequence"] == pytest.approx(5.0, abs=0.1)

    def test_retirement_not_reached(self, household, accounts, expenses, settings):
        rows = calculate_retirement_projections(household, accounts, expenses, [], settings)
        risk = analyze_sequence_of_returns_risk(rows[:5], 65)
        assert risk["risk_level"] == "Low"
        assert risk["worst_case_sequence"] == 0.0

    def test_no_rows(self):
        assert analyze_sequence_of_returns_risk([], 65)["risk_level"] == "Low"
