import pytest

from audit import FlowTracker
from domain import AccountBucket
from economic_factors import (
    InflationGenerator,
    advance_year,
    apply_distributions,
    grow_and_contribute,
)


class TestInflationGenerator:
    def test_base_year_modifier_is_one(self):
        out = InflationGenerator([2025, 2026, 2027], avg=0.04).generate()
        assert out[2025]["modifier"] == 1.0
        assert out[2026]["modifier"] == pytest.approx(1.04)
        assert out[2027]["modifier"] == pytest.approx(1.04**2)

    def test_deterministic_without_std(self):
        out = InflationGenerator(list(range(2025, 2035)), avg=0.03).generate()
        assert all(v["rate"] == 0.03 for v in out.values())

    def test_seeded_sampling(self):
        years = list(range(2025, 2045))
        a = InflationGenerator(years, avg=0.03, std=0.01, seed=7).generate()
        b = InflationGenerator(years, avg=0.03, std=0.01, seed=7).generate()
        assert a == b
        assert all(v["rate"] >= 0 for v in a.values())


class TestAdvanceYear:
    def test_fixed_update_order(self):
        buckets = {"401k": AccountBucket("401k", 100000)}
        balances, unmet = advance_year(buckets, {"401k": 10000}, {"401k": 5000}, 0.10)
        # growth applies to the prior balance only
        assert balances["401k"] == 115000
        assert unmet == 0

    def test_overdraw_drains_to_zero(self):
        buckets = {"Roth": AccountBucket("Roth", 1000)}
        balances, unmet = advance_year(buckets, {}, {"Roth": 5000}, 0.0)
        assert balances["Roth"] == 0
        assert unmet == 4000

    def test_loss_never_goes_negative(self):
        buckets = {"Other": AccountBucket("Other", 1000)}
        grow_and_contribute(buckets, {}, -0.99, 2025)
        assert buckets["Other"].balance() == 10
        grow_and_contribute(buckets, {}, -1.5, 2026)
        assert buckets["Other"].balance() == 0


class TestApplyDistributions:
    def test_realized_gain_from_taxable(self):
        buckets = {"Taxable": AccountBucket("Taxable", 100000, cost_basis=50000)}
        unmet, gains = apply_distributions(buckets, {"Taxable": 10000}, 2025)
        assert unmet == {}
        assert gains == 5000
        assert buckets["Taxable"].cost_basis == 45000

    def test_tax_deferred_has_no_gain(self):
        buckets = {"401k": AccountBucket("401k", 100000, cost_basis=0)}
        _, gains = apply_distributions(buckets, {"401k": 10000}, 2025)
        assert gains == 0

    def test_missing_bucket_is_unmet(self):
        unmet, _ = apply_distributions({}, {"HSA": 500}, 2025)
        assert unmet == {"HSA": 500}

    def test_flows_recorded(self):
        tracker = FlowTracker()
        buckets = {"401k": AccountBucket("401k", 1000, tracker)}
        grow_and_contribute(buckets, {"401k": 500}, 0.1, 2025)
        apply_distributions(buckets, {"401k": 200}, 2025)
        assert tracker.totals_by_type(2025) == {
            "growth": 100,
            "contribution": 500,
            "withdraw": 200,
        }
