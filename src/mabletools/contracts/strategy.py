"""Pydantic specs for reconciliation strategy tags.

A model column is tagged with exactly one of these specs. Tagging performs no
computation; the numeric work happens when the column is forecast.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from mabletools.core.config import MIN_TRACE_METHODS, MinTraceMethod, ReconciliationConfig
from mabletools.core.errors import UnknownMethodError


class BaseSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class Unreconciled(BaseSpec):
    """Models are forecast independently."""

    kind: Literal["unreconciled"] = "unreconciled"


class BottomUp(BaseSpec):
    """Aggregates are the sums of the bottom-level forecasts."""

    kind: Literal["bottom_up"] = "bottom_up"


class MinTrace(BaseSpec):
    """Minimum trace reconciliation with the given weighting method."""

    kind: Literal["min_trace"] = "min_trace"
    method: MinTraceMethod = "wls_var"
    sparse: bool | None = None

    @field_validator("method", mode="before")
    @classmethod
    def _known_method(cls, value: str) -> str:
        if value not in MIN_TRACE_METHODS:
            raise UnknownMethodError(
                f"Unknown reconciliation method '{value}'",
                context={"method": value, "available": list(MIN_TRACE_METHODS)},
            )
        return value

    def config(self) -> ReconciliationConfig:
        return ReconciliationConfig(method=self.method, sparse=self.sparse)


ReconciliationStrategy = Annotated[
    Union[Unreconciled, BottomUp, MinTrace],
    Field(discriminator="kind"),
]

STRATEGY_KINDS: tuple[str, ...] = ("unreconciled", "bottom_up", "min_trace")

_STRATEGY_ADAPTER: TypeAdapter[ReconciliationStrategy] = TypeAdapter(ReconciliationStrategy)


def parse_strategy(payload: dict) -> Unreconciled | BottomUp | MinTrace:
    """Rebuild a strategy tag from its ``model_dump()`` payload."""
    return _STRATEGY_ADAPTER.validate_python(payload)


__all__ = [
    "BottomUp",
    "MinTrace",
    "STRATEGY_KINDS",
    "ReconciliationStrategy",
    "Unreconciled",
    "parse_strategy",
]
