import pytest

from domain import Account, CalculatorSettings, Expense, Household


CURRENT_YEAR = 2025


@pytest.fixture
def settings():
    return CalculatorSettings(
        current_year=CURRENT_YEAR, retirement_age=65, years_to_retirement=10
    )


@pytest.fixture
def household():
    """Single planner aged 55 in the base year."""
    return Household(birth_year=CURRENT_YEAR - 55, life_expectancy=90)


@pytest.fixture
def accounts():
    return [
        Account(
            account_name="Employer 401k",
            balance=100000,
            account_type="401k",
            annual_contribution=23000,
        )
    ]


@pytest.fixture
def expenses():
    """$60,000/yr before 65, $48,000/yr after."""
    return [Expense("Living", amount_before_65=5000, amount_after_65=4000)]


@pytest.fixture
def retiree():
    """Planner already 65 in the base year."""
    return Household(birth_year=CURRENT_YEAR - 65, life_expectancy=90)
