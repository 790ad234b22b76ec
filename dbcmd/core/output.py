"""
Result rows: the streaming sink contract and simple formatters
(table, json, yaml, csv) used by the CLI.
"""

import csv
import io
import json
from collections.abc import Iterable
from typing import Any, Protocol

import yaml


class RowSink(Protocol):
    """Consumer of result rows, one dict per row in column order."""

    def process(self, row: dict[str, Any]) -> None: ...


class CollectingSink:
    """RowSink that keeps every row in memory."""

    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []

    def process(self, row: dict[str, Any]) -> None:
        self.rows.append(row)


def _select_fields(rows: list[dict[str, Any]], fields: Iterable[str] | None) -> list[dict[str, Any]]:
    if not fields:
        return rows
    wanted = list(fields)
    return [{f: row.get(f) for f in wanted} for row in rows]


def _columns(rows: list[dict[str, Any]]) -> list[str]:
    cols: list[str] = []
    for row in rows:
        for k in row:
            if k not in cols:
                cols.append(k)
    return cols


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _format_table(rows: list[dict[str, Any]]) -> str:
    cols = _columns(rows)
    if not cols:
        return ""
    cells = [[_cell(row.get(c)) for c in cols] for row in rows]
    widths = [max([len(c), *(len(r[i]) for r in cells)]) for i, c in enumerate(cols)]

    def line(values: list[str]) -> str:
        return "| " + " | ".join(v.ljust(w) for v, w in zip(values, widths, strict=True)) + " |"

    sep = "+-" + "-+-".join("-" * w for w in widths) + "-+"
    out = [sep, line(cols), sep, *(line(r) for r in cells), sep]
    return "\n".join(out)


def _format_csv(rows: list[dict[str, Any]]) -> str:
    cols = _columns(rows)
    if not cols:
        return ""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=cols, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue().rstrip("\n")


def format_rows(
    rows: list[dict[str, Any]],
    output: str = "table",
    fields: Iterable[str] | None = None,
) -> str:
    """Render *rows* in the *output* format, keeping only *fields* when given."""
    selected = _select_fields(rows, fields)
    if output == "json":
        return json.dumps(selected, indent=2, default=str)
    if output == "yaml":
        # round-trip through json so dates and decimals become plain scalars
        plain = json.loads(json.dumps(selected, default=str))
        return yaml.safe_dump(plain, sort_keys=False, allow_unicode=True).rstrip("\n")
    if output == "csv":
        return _format_csv(selected)
    if output == "table":
        return _format_table(selected)
    raise ValueError(f"unknown output format {output!r}")
