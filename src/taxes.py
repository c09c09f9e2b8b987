import logging
from typing import Any, Dict, List, Optional


SINGLE = "Single"
MARRIED_FILING_JOINTLY = "Married Filing Jointly"
MARRIED_FILING_SEPARATELY = "Married Filing Separately"
HEAD_OF_HOUSEHOLD = "Head of Household"

FILING_STATUSES = (
    SINGLE,
    MARRIED_FILING_JOINTLY,
    MARRIED_FILING_SEPARATELY,
    HEAD_OF_HOUSEHOLD,
)

# 2024 reference-year tables
DEFAULT_TAX_BRACKETS: Dict[str, Any] = {
    "Standard Deduction": {
        MARRIED_FILING_JOINTLY: 29200,
        "default": 14600,
    },
    "Ordinary": {
        SINGLE: [
            {"min_income": 0, "tax_rate": 0.10},
            {"min_income": 11600, "tax_rate": 0.12},
            {"min_income": 47150, "tax_rate": 0.22},
            {"min_income": 100525, "tax_rate": 0.24},
            {"min_income": 191950, "tax_rate": 0.32},
            {"min_income": 243725, "tax_rate": 0.35},
            {"min_income": 609350, "tax_rate": 0.37},
        ],
        MARRIED_FILING_JOINTLY: [
            {"min_income": 0, "tax_rate": 0.10},
            {"min_income": 23200, "tax_rate": 0.12},
            {"min_income": 94300, "tax_rate": 0.22},
            {"min_income": 201050, "tax_rate": 0.24},
            {"min_income": 383900, "tax_rate": 0.32},
            {"min_income": 487450, "tax_rate": 0.35},
            {"min_income": 731200, "tax_rate": 0.37},
        ],
        MARRIED_FILING_SEPARATELY: [
            {"min_income": 0, "tax_rate": 0.10},
            {"min_income": 11600, "tax_rate": 0.12},
            {"min_income": 47150, "tax_rate": 0.22},
            {"min_income": 100525, "tax_rate": 0.24},
            {"min_income": 191950, "tax_rate": 0.32},
            {"min_income": 243725, "tax_rate": 0.35},
            {"min_income": 365600, "tax_rate": 0.37},
        ],
        HEAD_OF_HOUSEHOLD: [
            {"min_income": 0, "tax_rate": 0.10},
            {"min_income": 16550, "tax_rate": 0.12},
            {"min_income": 63100, "tax_rate": 0.22},
            {"min_income": 100500, "tax_rate": 0.24},
            {"min_income": 191950, "tax_rate": 0.32},
            {"min_income": 243700, "tax_rate": 0.35},
            {"min_income": 609350, "tax_rate": 0.37},
        ],
    },
    "Capital Gains": {
        SINGLE: [
            {"min_income": 0, "tax_rate": 0.0},
            {"min_income": 47025, "tax_rate": 0.15},
            {"min_income": 518900, "tax_rate": 0.20},
        ],
        MARRIED_FILING_JOINTLY: [
            {"min_income": 0, "tax_rate": 0.0},
            {"min_income": 94050, "tax_rate": 0.15},
            {"min_income": 583750, "tax_rate": 0.20},
        ],
        MARRIED_FILING_SEPARATELY: [
            {"min_income": 0, "tax_rate": 0.0},
            {"min_income": 47025, "tax_rate": 0.15},
            {"min_income": 291850, "tax_rate": 0.20},
        ],
        HEAD_OF_HOUSEHOLD: [
            {"min_income": 0, "tax_rate": 0.0},
            {"min_income": 63000, "tax_rate": 0.15},
            {"min_income": 551350, "tax_rate": 0.20},
        ],
    },
    # provisional-income thresholds (not indexed by law)
    "Social Security Taxability": {
        SINGLE: {"base": 25000, "adjusted": 34000},
        MARRIED_FILING_JOINTLY: {"base": 32000, "adjusted": 44000},
        MARRIED_FILING_SEPARATELY: {"base": 0, "adjusted": 0},
        HEAD_OF_HOUSEHOLD: {"base": 25000, "adjusted": 34000},
    },
}


def resolve_filing_status(
    settings_status: Optional[str], spouse_ssa_active: bool
) -> str:
    """
    Filing status used for every tax call of one simulated year. A household
    modelling spousal SSA files jointly; otherwise the configured status,
    defaulting to Single.
    """
    if spouse_ssa_active:
        return MARRIED_FILING_JOINTLY
    if settings_status in FILING_STATUSES:
        return settings_status
    if settings_status:
        logging.warning(
            f"[Tax] Unknown filing status '{settings_status}', using {SINGLE}"
        )
    return SINGLE


class TaxCalculator:
    """
    Federal income tax on retirement income: progressive ordinary brackets
    after the standard deduction, an independent capital-gains schedule for
    realized taxable-account gains, and the provisional-income rule for
    Social Security benefits.

    When `base_inflation` ({year: {"rate", "modifier"}}) is given, deductions
    and bracket floors for a year are indexed by that year's modifier;
    otherwise the reference-year tables are used for every year.
    """

    def __init__(
        self,
        base_brackets: Optional[Dict[str, Any]] = None,
        base_inflation: Optional[Dict[int, Dict[str, float]]] = None,
    ):
        brackets = base_brackets or DEFAULT_TAX_BRACKETS
        self.base_inflation = base_inflation or {}
        self.standard_deductions: Dict[str, int] = dict(
            brackets.get(
                "Standard Deduction", DEFAULT_TAX_BRACKETS["Standard Deduction"]
            )
        )
        self.ordinary_brackets: Dict[str, List[Dict[str, float]]] = brackets.get(
            "Ordinary", DEFAULT_TAX_BRACKETS["Ordinary"]
        )
        self.capital_gains_brackets: Dict[str, List[Dict[str, float]]] = (
            brackets.get("Capital Gains", DEFAULT_TAX_BRACKETS["Capital Gains"])
        )
        self.social_security_thresholds: Dict[str, Dict[str, int]] = brackets.get(
            "Social Security Taxability",
            DEFAULT_TAX_BRACKETS["Social Security Taxability"],
        )
        self.ordinary_brackets_by_year = self._inflate_brackets_by_year(
            self.ordinary_brackets
        )
        self.capital_gains_brackets_by_year = self._inflate_brackets_by_year(
            self.capital_gains_brackets
        )

    def _modifier(self, year: Optional[int]) -> float:
        if year is None:
            return 1.0
        return self.base_inflation.get(year, {}).get("modifier", 1.0)

    def _inflate_brackets_by_year(
        self, brackets_by_status: Dict[str, List[Dict[str, float]]]
    ) -> Dict[str, List[Dict[str, float]]]:
        inflated = {}
        for status, bracket_list in brackets_by_status.items():
            for year, inflation in self.base_inflation.items():
                modifier = inflation.get("modifier", 1.0)
                inflated[f"{status} {year}"] = [
                    {**b, "min_income": int(round(b["min_income"] * modifier))}
                    for b in bracket_list
                ]
        return inflated

    def _brackets(
        self,
        table: Dict[str, List[Dict[str, float]]],
        by_year: Dict[str, List[Dict[str, float]]],
        filing_status: str,
        year: Optional[int],
    ) -> List[Dict[str, float]]:
        status = filing_status if filing_status in table else SINGLE
        if year is not None:
            indexed = by_year.get(f"{status} {year}")
            if indexed:
                return indexed
        return table.get(status) or table[SINGLE]

    def standard_deduction(self, filing_status: str, year: Optional[int] = None) -> int:
        # two tiers: joint filers, everyone else
        key = filing_status if filing_status == MARRIED_FILING_JOINTLY else "default"
        base = self.standard_deductions.get(
            key, self.standard_deductions.get("default", 0)
        )
        return int(round(base * self._modifier(year)))

    def progressive_tax(
        self,
        taxable_ordinary_income: float,
        filing_status: str,
        year: Optional[int] = None,
    ) -> int:
        income = max(0.0, taxable_ordinary_income or 0.0) - self.standard_deduction(
            filing_status, year
        )
        if income <= 0:
            return 0
        brackets = self._brackets(
            self.ordinary_brackets, self.ordinary_brackets_by_year, filing_status, year
        )
        return _tax_over_brackets(brackets, income)

    def capital_gains_tax(
        self, taxable_gains: float, filing_status: str, year: Optional[int] = None
    ) -> int:
        gains = max(0.0, taxable_gains or 0.0)
        if gains <= 0:
            return 0
        brackets = self._brackets(
            self.capital_gains_brackets,
            self.capital_gains_brackets_by_year,
            filing_status,
            year,
        )
        return _tax_over_brackets(brackets, gains)

    def estimate_marginal_rate(
        self, income: float, filing_status: str, year: Optional[int] = None
    ) -> float:
        taxable = max(0.0, income or 0.0) - self.standard_deduction(filing_status, year)
        if taxable <= 0:
            return 0.0
        brackets = self._brackets(
            self.ordinary_brackets, self.ordinary_brackets_by_year, filing_status, year
        )
        return _rate_at(brackets, taxable)

    def estimate_capital_gains_rate(
        self, gains: float, filing_status: str, year: Optional[int] = None
    ) -> float:
        gains = max(0.0, gains or 0.0)
        if gains <= 0:
            return 0.0
        brackets = self._brackets(
            self.capital_gains_brackets,
            self.capital_gains_brackets_by_year,
            filing_status,
            year,
        )
        return _rate_at(brackets, gains)

    def bracket_headroom(
        self,
        ordinary_income: float,
        filing_status: str,
        ceiling_rate: float = 0.12,
        year: Optional[int] = None,
    ) -> int:
        """
        Extra gross ordinary income that can be realized while staying at or
        below `ceiling_rate`.
        """
        brackets = self._brackets(
            self.ordinary_brackets, self.ordinary_brackets_by_year, filing_status, year
        )
        ceiling = next(
            (b["min_income"] for b in brackets if b["tax_rate"] > ceiling_rate),
            None,
        )
        if ceiling is None:
            return 0
        gross_limit = ceiling + self.standard_deduction(filing_status, year)
        return int(max(0, gross_limit - max(0.0, ordinary_income or 0.0)))

    def taxable_social_security(
        self, ss_benefits: float, other_income: float, filing_status: str
    ) -> int:
        benefits = max(0.0, ss_benefits or 0.0)
        if benefits <= 0:
            return 0

        thresholds = self.social_security_thresholds.get(
            filing_status, self.social_security_thresholds.get(SINGLE)
        )
        base = thresholds["base"]
        adjusted = thresholds["adjusted"]
        provisional = max(0.0, other_income or 0.0) + 0.5 * benefits

        if provisional <= base:
            return 0
        if provisional <= adjusted:
            return int(round(min(0.5 * (provisional - base), 0.5 * benefits)))

        first_tier = min(0.5 * benefits, 0.5 * (adjusted - base))
        taxable = 0.85 * (provisional - adjusted) + first_tier
        return int(round(min(taxable, 0.85 * benefits)))

    def calculate_tax(
        self,
        filing_status: str,
        ordinary_income: float = 0,
        gains: float = 0,
        ss_benefits: float = 0,
        year: Optional[int] = None,
    ) -> Dict[str, Any]:
        ordinary_income = max(0, int(round(ordinary_income or 0)))
        gains = max(0, int(round(gains or 0)))
        ss_benefits = max(0, int(round(ss_benefits or 0)))

        taxable_ss = self.taxable_social_security(
            ss_benefits, ordinary_income + gains, filing_status
        )
        gross_ordinary = ordinary_income + taxable_ss
        deduction = self.standard_deduction(filing_status, year)

        ordinary_tax = self.progressive_tax(gross_ordinary, filing_status, year)
        gains_tax = self.capital_gains_tax(gains, filing_status, year)
        total_tax = int(ordinary_tax + gains_tax)

        gross_income = ordinary_income + gains + ss_benefits
        logging.debug(
            f"[Tax:{year}] {filing_status} ordinary=${gross_ordinary:,} "
            f"gains=${gains:,} tax=${total_tax:,}"
        )

        return {
            "agi": gross_ordinary + gains,
            "taxable_ss": taxable_ss,
            "ordinary_income": max(0, gross_ordinary - deduction),
            "ordinary_tax": ordinary_tax,
            "capital_gains_tax": gains_tax,
            "total_tax": total_tax,
            "effective_tax_rate": total_tax / gross_income if gross_income > 0 else 0.0,
            "marginal_rate": self.estimate_marginal_rate(
                gross_ordinary, filing_status, year
            ),
        }


def _tax_over_brackets(bracket_list: List[Dict[str, float]], income: float) -> int:
    tax = 0.0
    for i, bracket in enumerate(bracket_list):
        if income <= bracket["min_income"]:
            break
        upper = (
            bracket_list[i + 1]["min_income"]
            if i + 1 < len(bracket_list)
            else float("inf")
        )
        tax += (min(income, upper) - bracket["min_income"]) * bracket["tax_rate"]
    return int(tax)


def _rate_at(bracket_list: List[Dict[str, float]], income: float) -> float:
    rate = 0.0
    for bracket in bracket_list:
        if income > bracket["min_income"]:
            rate = bracket["tax_rate"]
    return rate
