from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

CHART_TYPES = ("bar", "stacked-bar", "line", "pie")


class SQLAnalysisResult(BaseModel):
    """Model reasoning plus generated SQL, or an explanation of missing data."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    schema_comment: str = Field(default="", alias="schema")
    applicability: str = ""
    sql: str = ""
    is_currency: bool = False
    missing_data: str = ""

    @model_validator(mode="before")
    @classmethod
    def _exactly_one_outcome(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        sql = str(data.get("sql") or "").strip()
        missing = str(data.get("missing_data") or "").strip()

        if sql:
            absent = [
                key for key, alias in (("schema_comment", "schema"), ("applicability", None), ("is_currency", None))
                if key not in data and (alias is None or alias not in data)
            ]
            if absent:
                raise ValueError(f"sql analysis missing required fields: {', '.join(absent)}")
            data["sql"] = sql
            # SQL wins when the model fills both
            data["missing_data"] = ""
        elif missing:
            data["sql"] = ""
            data["missing_data"] = missing
        else:
            raise ValueError("sql analysis needs either sql or missing_data")
        return data

    @property
    def has_sql(self) -> bool:
        return bool(self.sql)


class DataPoint(BaseModel):
    name: Optional[str] = None
    date: Optional[int] = None
    value: float


class ChartSelection(BaseModel):
    """Chart type, title and chart-ready data chosen by the model."""

    model_config = ConfigDict(populate_by_name=True)

    chart: str = Field(alias="type")
    title: str
    data: list[DataPoint]
    is_currency: bool

    @property
    def is_supported(self) -> bool:
        return self.chart.strip().lower() in CHART_TYPES


# --- API models ---

class AskRequest(BaseModel):
    question: str
    user_id: str = ""


class AskResponse(BaseModel):
    question: str
    table: str | None = None
    answer: str
    schema_comment: str = ""
    applicability: str = ""
    sql: str | None = None
    is_currency: bool = False
    result: str | None = None
    query_id: int | None = None
    warnings: list[str] = Field(default_factory=list)


class ChartResponse(BaseModel):
    query_id: int
    supported: bool
    message: str
    chart: dict[str, Any] | None = None
    locator: str | None = None
