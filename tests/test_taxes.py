"""
Tests for the federal tax calculator: brackets, deductions, capital gains,
Social Security taxability and filing-status resolution.
"""

import pytest

from taxes import (
    HEAD_OF_HOUSEHOLD,
    MARRIED_FILING_JOINTLY,
    MARRIED_FILING_SEPARATELY,
    SINGLE,
    FILING_STATUSES,
    TaxCalculator,
    resolve_filing_status,
)


@pytest.fixture
def calc():
    return TaxCalculator()


class TestStandardDeduction:
    def test_two_tiers(self, calc):
        assert calc.standard_deduction(MARRIED_FILING_JOINTLY) == 29200
        assert calc.standard_deduction(SINGLE) == 14600
        assert calc.standard_deduction(HEAD_OF_HOUSEHOLD) == 14600
        assert calc.standard_deduction(MARRIED_FILING_SEPARATELY) == 14600

    def test_indexed_by_year(self):
        calc = TaxCalculator(base_inflation={2030: {"rate": 0.03, "modifier": 1.5}})
        assert calc.standard_deduction(SINGLE, 2030) == 21900
        # years outside the schedule use the reference tables
        assert calc.standard_deduction(SINGLE, 2031) == 14600


class TestProgressiveTax:
    def test_income_below_deduction_is_untaxed(self, calc):
        assert calc.progressive_tax(14600, SINGLE) == 0
        assert calc.progressive_tax(0, SINGLE) == 0

    def test_negative_income_clamps_to_zero(self, calc):
        assert calc.progressive_tax(-5000, SINGLE) == 0

    def test_first_bracket(self, calc):
        assert calc.progressive_tax(14600 + 11600, SINGLE) == pytest.approx(1160, abs=1)

    def test_spans_brackets(self, calc):
        # 85,400 taxable: 1,160 + 4,266 + 8,415
        assert calc.progressive_tax(100000, SINGLE) == pytest.approx(13841, abs=1)

    def test_joint_filers_pay_less(self, calc):
        assert calc.progressive_tax(150000, MARRIED_FILING_JOINTLY) < calc.progressive_tax(
            150000, SINGLE
        )

    @pytest.mark.parametrize("status", FILING_STATUSES)
    def test_monotonic_in_income(self, calc, status):
        incomes = range(0, 1000001, 12500)
        taxes = [calc.progressive_tax(i, status) for i in incomes]
        assert all(a <= b for a, b in zip(taxes, taxes[1:]))
        assert all(isinstance(t, int) and t >= 0 for t in taxes)

    def test_indexed_brackets_lower_tax(self):
        indexed = TaxCalculator(base_inflation={2030: {"rate": 0.03, "modifier": 1.5}})
        assert indexed.progressive_tax(21900, SINGLE, 2030) == 0
        assert indexed.progressive_tax(21900, SINGLE) > 0


class TestCapitalGains:
    def test_zero_rate_band(self, calc):
        assert calc.capital_gains_tax(40000, SINGLE) == 0

    def test_fifteen_percent_band(self, calc):
        assert calc.capital_gains_tax(100000, SINGLE) == pytest.approx(7946, abs=1)

    def test_independent_of_ordinary_income(self, calc):
        result = calc.calculate_tax(SINGLE, ordinary_income=200000, gains=40000)
        assert result["capital_gains_tax"] == 0

    def test_rate_estimate(self, calc):
        assert calc.estimate_capital_gains_rate(0, SINGLE) == 0.0
        assert calc.estimate_capital_gains_rate(100000, SINGLE) == 0.15
        assert calc.estimate_capital_gains_rate(600000, MARRIED_FILING_JOINTLY) == 0.20


class TestMarginalRate:
    def test_below_deduction(self, calc):
        assert calc.estimate_marginal_rate(10000, SINGLE) == 0.0

    def test_bracket_lookup(self, calc):
        assert calc.estimate_marginal_rate(100000, SINGLE) == 0.22
        assert calc.estimate_marginal_rate(100000, MARRIED_FILING_JOINTLY) == 0.12

    def test_bracket_headroom(self, calc):
        # top of the 12% bracket plus the deduction, less what is already used
        assert calc.bracket_headroom(20000, SINGLE, 0.12) == 47150 + 14600 - 20000
        assert calc.bracket_headroom(500000, SINGLE, 0.12) == 0


class TestSocialSecurityTaxability:
    def test_low_provisional_income(self, calc):
        assert calc.taxable_social_security(20000, 0, SINGLE) == 0

    def test_middle_tier(self, calc):
        # provisional 30,000: half of the excess over 25,000
        assert calc.taxable_social_security(20000, 20000, SINGLE) == 2500

    def test_upper_tier(self, calc):
        assert calc.taxable_social_security(30000, 40000, SINGLE) == 22350

    def test_capped_at_85_percent(self, calc):
        assert calc.taxable_social_security(30000, 500000, SINGLE) == 25500

    def test_joint_thresholds(self, calc):
        assert calc.taxable_social_security(20000, 20000, MARRIED_FILING_JOINTLY) == 0


class TestCalculateTax:
    def test_combined_result(self, calc):
        result = calc.calculate_tax(
            SINGLE, ordinary_income=60000, gains=10000, ss_benefits=0, year=2025
        )
        assert result["total_tax"] == result["ordinary_tax"] + result["capital_gains_tax"]
        assert result["agi"] == 70000
        assert result["ordinary_income"] == 60000 - 14600
        assert result["marginal_rate"] == 0.12
        assert 0 < result["effective_tax_rate"] < 0.12

    def test_zero_everything(self, calc):
        result = calc.calculate_tax(SINGLE)
        assert result["total_tax"] == 0
        assert result["effective_tax_rate"] == 0.0

    def test_custom_brackets(self):
        flat = {
            "Standard Deduction": {"default": 0},
            "Ordinary": {SINGLE: [{"min_income": 0, "tax_rate": 0.10}]},
        }
        calc = TaxCalculator(base_brackets=flat)
        assert calc.progressive_tax(50000, SINGLE) == 5000
        # unlisted tables fall back to the defaults
        assert calc.capital_gains_tax(40000, SINGLE) == 0


class TestResolveFilingStatus:
    def test_spousal_ssa_forces_joint(self):
        assert resolve_filing_status(None, True) == MARRIED_FILING_JOINTLY
        assert resolve_filing_status(SINGLE, True) == MARRIED_FILING_JOINTLY

    def test_configured_status(self):
        assert resolve_filing_status(HEAD_OF_HOUSEHOLD, False) == HEAD_OF_HOUSEHOLD

    def test_defaults_to_single(self):
        assert resolve_filing_status(None, False) == SINGLE
        assert resolve_filing_status("", False) == SINGLE

    def test_unknown_status_warns(self, caplog):
        assert resolve_filing_status("Widowed", False) == SINGLE
        assert "Unknown filing status" in caplog.text
