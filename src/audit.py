import pandas as pd

from typing import Dict, Optional


class FlowTracker:
    """
    Records every money movement of a run so contributions, growth, surplus
    sweeps and withdrawals stay separable after the fact.
    """

    def __init__(self):
        self.records = []

    def record(
        self,
        source: str,
        target: str,
        amount: int,
        year: int,
        flow_type: str,
    ):
        self.records.append(
            {
                "year": year,
                "source": source,
                "target": target,
                "amount": amount,
                "type": flow_type,
            }
        )

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            self.records, columns=["year", "source", "target", "amount", "type"]
        )

    def totals_by_type(self, year: Optional[int] = None) -> Dict[str, int]:
        df = self.to_dataframe()
        if year is not None:
            df = df[df["year"] == year]
        if df.empty:
            return {}
        return {k: int(v) for k, v in df.groupby("type")["amount"].sum().items()}

    def breakdown(self) -> pd.DataFrame:
        """
        Year x flow-type table of summed amounts.
        """
        df = self.to_dataframe()
        if df.empty:
            return pd.DataFrame()
        return (
            df.pivot_table(
                index="year", columns="type", values="amount", aggfunc="sum"
            )
            .fillna(0)
            .astype(int)
        )
