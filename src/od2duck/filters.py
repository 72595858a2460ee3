"""
Row filters built from a column -> accepted-values mapping.

A filter specification such as

    {"id_origin": ["01059", "02003"], "id_destination": ["03014"]}

becomes one IN node per column, combined with an explicit FilterMode:

    OR:  "id_origin" IN ('01059', '02003') OR "id_destination" IN ('03014')
    AND: "id_origin" IN ('01059', '02003') AND "id_destination" IN ('03014')

The tree renders to a DuckDB SQL expression so it can be pushed into a lazy
relation before anything is materialized.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional, Union

from .domain.enums import FilterMode
from .duck import quote_identifier
from .types import FilterColumnError

FilterSpec = Mapping[str, Iterable[Any]]


def sql_literal(value: Any) -> str:
    """Render a Python scalar as a DuckDB literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"Cannot filter on non-finite value {value!r}")
        return repr(value)
    if isinstance(value, datetime):
        return f"TIMESTAMP '{value.isoformat(sep=' ')}'"
    if isinstance(value, date):
        return f"DATE '{value.isoformat()}'"
    return "'" + str(value).replace("'", "''") + "'"


@dataclass(frozen=True)
class InPredicate:
    """Column value is a member of a value set."""
    column: str
    values: tuple[Any, ...]

    @classmethod
    def of(cls, column: str, values: Iterable[Any]) -> InPredicate:
        if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
            values = [values]
        unique = {v for v in values}
        return cls(column=column, values=tuple(sorted(unique, key=lambda v: (type(v).__name__, str(v)))))

    def to_sql(self) -> str:
        if not self.values:
            return "FALSE"
        rendered = ", ".join(sql_literal(v) for v in self.values)
        return f"{quote_identifier(self.column)} IN ({rendered})"


@dataclass(frozen=True)
class CompoundPredicate:
    """Children joined with a single combinator."""
    mode: FilterMode
    children: tuple[Predicate, ...]

    def to_sql(self) -> str:
        joiner = f" {self.mode.value.upper()} "
        return joiner.join(f"({child.to_sql()})" for child in self.children)


Predicate = Union[InPredicate, CompoundPredicate]


def validate_filter_columns(filter_spec: FilterSpec, columns: Iterable[str]) -> None:
    """Fail on the first filter key that is not a dataset column."""
    available = list(columns)
    known = set(available)
    for column in filter_spec:
        if column not in known:
            raise FilterColumnError(column, available)


def build_filter(filter_spec: FilterSpec, mode: FilterMode | str = FilterMode.OR) -> Optional[Predicate]:
    """
    Build the predicate tree for a filter specification.

    Returns:
        None for an empty specification, the single IN node for one column,
        otherwise a CompoundPredicate using `mode`
    """
    mode = FilterMode(mode)
    nodes = tuple(InPredicate.of(column, values) for column, values in filter_spec.items())
    if not nodes:
        return None
    if len(nodes) == 1:
        return nodes[0]
    return CompoundPredicate(mode=mode, children=nodes)
