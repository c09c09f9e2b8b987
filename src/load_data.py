import json
import logging
import pandas as pd
from pathlib import Path
from typing import Any, Dict, List, Optional

# Internal Imports
from domain import (
    Account,
    CalculatorSettings,
    Expense,
    Household,
    OtherIncome,
    ProjectionDetail,
    projections_to_dataframe,
)

BASE = Path(__file__).parent.parent
DATA = BASE / "data"
CONFIG = BASE / "config"
EXPORT = BASE / "export"

ACCOUNT_COLUMNS = ["Name", "Type", "Balance"]
EXPENSE_COLUMNS = ["Name", "Monthly Before 65", "Monthly After 65"]
INCOME_COLUMNS = ["Name", "Amount"]

# settings.json key -> CalculatorSettings field
SETTINGS_KEYS = {
    "Retirement Age": "retirement_age",
    "Annual Retirement Expenses": "annual_retirement_expenses",
    "Growth Rate Before Retirement": "growth_rate_before_retirement",
    "Growth Rate During Retirement": "growth_rate_during_retirement",
    "Capital Gains Tax Rate": "capital_gains_tax_rate",
    "Income Tax Rate Retirement": "income_tax_rate_retirement",
    "Inflation Rate": "inflation_rate",
    "Enable Borrowing": "enable_borrowing",
    "Debt Interest Rate": "debt_interest_rate",
    "SSA Start Age": "ssa_start_age",
    "Spouse SSA Start Age": "spouse_ssa_start_age",
    "Withdrawal Priority": "withdrawal_priority",
    "Withdrawal Secondary Priority": "withdrawal_secondary_priority",
    "Filing Status": "filing_status",
    "Index Tax Brackets": "index_tax_brackets",
}

# profile.json key -> Household field
PROFILE_KEYS = {
    "Birth Year": "birth_year",
    "Life Expectancy": "life_expectancy",
    "Spouse Birth Year": "spouse_birth_year",
    "Spouse Life Expectancy": "spouse_life_expectancy",
    "Include Spouse": "include_spouse",
    "Include Planner SSA": "include_planner_ssa",
    "Include Spouse SSA": "include_spouse_ssa",
    "Planner SSA Amount": "planner_ssa_amount",
    "Spouse SSA Amount": "spouse_ssa_amount",
    "Planner Annual Income": "planner_annual_income",
    "Spouse Annual Income": "spouse_annual_income",
}


def load_csv() -> dict[str, pd.DataFrame]:
    if (DATA / "accounts.csv").exists() and (DATA / "expenses.csv").exists():
        other_income = (
            pd.read_csv(DATA / "other_income.csv")
            if (DATA / "other_income.csv").exists()
            else pd.DataFrame(columns=INCOME_COLUMNS)
        )
        return {
            "accounts": pd.read_csv(DATA / "accounts.csv"),
            "expenses": pd.read_csv(DATA / "expenses.csv"),
            "other_income": other_income,
        }
    else:
        logging.error(
            "Required: `accounts.csv` and `expenses.csv` in the `data` directory."
        )
        exit(1)


def load_json() -> dict[str, dict]:
    files = {f.stem: json.loads(f.read_text()) for f in CONFIG.glob("*.json")}
    if "profile" not in files:
        logging.error("Required: `profile.json` in the `config` directory.")
        exit(1)
    files.setdefault("settings", {})
    return files


def _value(row: pd.Series, column: str, default: Any = None) -> Any:
    if column not in row.index:
        return default
    value = row[column]
    if pd.isna(value):
        return default
    return value.item() if hasattr(value, "item") else value


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "y", "1")
    return bool(value)


def _require_columns(df: pd.DataFrame, columns: List[str], name: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"{name} is missing required columns: {', '.join(missing)}")


def build_accounts(df: pd.DataFrame) -> List[Account]:
    _require_columns(df, ACCOUNT_COLUMNS, "accounts.csv")
    return [
        Account(
            account_name=str(_value(row, "Name", "")),
            balance=float(_value(row, "Balance", 0.0)),
            account_type=str(_value(row, "Type", "Other")),
            owner=str(_value(row, "Owner", "planner")),
            annual_contribution=float(_value(row, "Annual Contribution", 0.0)),
        )
        for _, row in df.iterrows()
    ]


def build_expenses(df: pd.DataFrame) -> List[Expense]:
    _require_columns(df, EXPENSE_COLUMNS, "expenses.csv")
    return [
        Expense(
            expense_name=str(_value(row, "Name", "")),
            amount_before_65=float(_value(row, "Monthly Before 65", 0.0)),
            amount_after_65=float(_value(row, "Monthly After 65", 0.0)),
        )
        for _, row in df.iterrows()
    ]


def build_other_income(df: pd.DataFrame) -> List[OtherIncome]:
    _require_columns(df, INCOME_COLUMNS, "other_income.csv")
    records = []
    for _, row in df.iterrows():
        start = _value(row, "Start Year")
        end = _value(row, "End Year")
        records.append(
            OtherIncome(
                income_name=str(_value(row, "Name", "")),
                amount=float(_value(row, "Amount", 0.0)),
                start_year=int(start) if start is not None else None,
                end_year=int(end) if end is not None else None,
                inflation_adjusted=_flag(_value(row, "Inflation Adjusted", False)),
            )
        )
    return records


def build_household(profile: Dict[str, Any]) -> Household:
    fields = {
        field: profile[key] for key, field in PROFILE_KEYS.items() if key in profile
    }
    if "birth_year" not in fields:
        logging.warning("[Profile] No `Birth Year` in profile.json")
        fields["birth_year"] = None
    return Household(**fields)


def build_calculator_settings(
    settings: Dict[str, Any],
    birth_year: Optional[int],
    current_year: Optional[int] = None,
) -> CalculatorSettings:
    """
    Settings record from settings.json. Missing keys keep their defaults;
    years-to-retirement is derived from the birth year.
    """
    current_year = int(
        settings.get("Current Year") or current_year or pd.Timestamp.now().year
    )
    fields = {
        field: settings[key] for key, field in SETTINGS_KEYS.items() if key in settings
    }
    for key in ("enable_borrowing", "index_tax_brackets"):
        if key in fields:
            fields[key] = _flag(fields[key])

    retirement_age = int(fields.get("retirement_age", 65))
    years_to_retirement = 0
    if birth_year is not None:
        years_to_retirement = max(0, retirement_age - (current_year - birth_year))

    return CalculatorSettings(
        current_year=current_year,
        years_to_retirement=years_to_retirement,
        **fields,
    )


def load_plan() -> Dict[str, Any]:
    """
    Everything one projection run needs, built from config/ and data/.
    """
    json_data = load_json()
    dfs = load_csv()

    household = build_household(json_data["profile"])
    settings_cfg = json_data["settings"]
    return {
        "household": household,
        "accounts": build_accounts(dfs["accounts"]),
        "expenses": build_expenses(dfs["expenses"]),
        "other_income": build_other_income(dfs["other_income"]),
        "settings": build_calculator_settings(settings_cfg, household.birth_year),
        "tax_brackets": settings_cfg.get("Tax Brackets"),
    }


def export_projections(
    rows: List[ProjectionDetail], path: Optional[Path] = None
) -> Path:
    """
    Write the projection to CSV, replacing any previous export.
    """
    path = path or EXPORT / "projections.csv"
    path.parent.mkdir(parents=True, exist_ok=True)
    projections_to_dataframe(rows).to_csv(path, index=False)
    logging.info(f"[Export] {len(rows)} rows written to {path}")
    return path
