"""
Jinja2 filters and helpers for SQL templates.

Escape/validate to avoid SQL injection; handle None appropriately. String
quoting depends on the dialect of the connection the query is rendered for
(MySQL also escapes backslashes and quotes identifiers with backticks).

All filters return ``SqlSafe`` so the auto-escape ``finalize`` callback
knows the value has already been sanitised and will not double-escape it.
"""

import json
from datetime import date, datetime
from functools import partial
from typing import Any

from dbcmd.models import ProductTypeEnum


class SqlSafe(str):
    """String subclass marking a value as already SQL-escaped.

    When Jinja2's ``finalize`` sees a ``SqlSafe`` instance it passes it
    through unchanged.  Use ``| safe`` in templates as an alias.
    """


def _safe(v: str) -> SqlSafe:
    return SqlSafe(v)


# ---------------------------------------------------------------------------
# Dialects
# ---------------------------------------------------------------------------


class Dialect:
    """Literal and identifier quoting rules of one SQL dialect."""

    def __init__(
        self,
        name: str,
        *,
        backslash_escapes: bool = False,
        identifier_quote: str = '"',
    ) -> None:
        self.name = name
        self.backslash_escapes = backslash_escapes
        self.identifier_quote = identifier_quote

    def __repr__(self) -> str:
        return f"Dialect({self.name})"

    def quote_string(self, value: str) -> str:
        s = value
        if self.backslash_escapes:
            s = s.replace("\\", "\\\\")
        s = s.replace("'", "''")
        return f"'{s}'"

    def quote_identifier(self, value: str) -> str:
        q = self.identifier_quote
        return ".".join(q + part.replace(q, q + q) + q for part in value.split("."))


ANSI = Dialect("ansi")

_DIALECTS: dict[ProductTypeEnum, Dialect] = {
    ProductTypeEnum.POSTGRES: Dialect("postgres"),
    ProductTypeEnum.MYSQL: Dialect("mysql", backslash_escapes=True, identifier_quote="`"),
    ProductTypeEnum.TRINO: Dialect("trino"),
    ProductTypeEnum.SQLITE: Dialect("sqlite"),
}


def get_dialect(product_type: ProductTypeEnum | str | None) -> Dialect:
    """Dialect for a product type; ANSI quoting when unknown or None."""
    if product_type is None:
        return ANSI
    try:
        return _DIALECTS[ProductTypeEnum(product_type)]
    except (KeyError, ValueError):
        return ANSI


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def sql_string(value: Any, dialect: Dialect = ANSI) -> SqlSafe:
    """
    Escape string for SQL. None -> 'NULL' (literal); otherwise quote for the dialect.
    """
    if value is None:
        return _safe("NULL")
    return _safe(dialect.quote_string(str(value)))


def sql_int(value: Any) -> SqlSafe:
    """
    Validate and format as integer. None -> 'NULL'.

    Raises ValueError for anything that is not a whole number.
    """
    if value is None:
        return _safe("NULL")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"sql_int: expected an integer, got {value!r}")
    try:
        return _safe(str(int(value)))
    except (TypeError, ValueError) as e:
        raise ValueError(f"sql_int: expected an integer, got {value!r}") from e


def sql_float(value: Any) -> SqlSafe:
    if value is None:
        return _safe("NULL")
    if isinstance(value, bool):
        raise ValueError(f"sql_float: expected a number, got {value!r}")
    try:
        return _safe(str(float(value)))
    except (TypeError, ValueError) as e:
        raise ValueError(f"sql_float: expected a number, got {value!r}") from e


def sql_bool(value: Any) -> SqlSafe:
    """
    Format as SQL boolean. None -> 'NULL'. TRUE/FALSE works in every supported dialect.
    """
    if value is None:
        return _safe("NULL")
    return _safe("TRUE" if bool(value) else "FALSE")


def sql_date(value: Any) -> SqlSafe:
    """
    Format as ISO date 'YYYY-MM-DD'. None -> 'NULL'.
    """
    if value is None:
        return _safe("NULL")
    d = value
    if isinstance(d, datetime):
        d = d.date()
    if isinstance(d, date):
        return _safe(f"'{d.isoformat()}'")
    if isinstance(d, str):
        # YYYY-MM-DD, optionally followed by a time part
        try:
            return _safe(f"'{date.fromisoformat(d[:10]).isoformat()}'")
        except ValueError as e:
            raise ValueError(f"sql_date: expected an ISO date, got {value!r}") from e
    raise TypeError(f"sql_date: expected a date, got {type(value).__name__}")


def sql_datetime(value: Any, dialect: Dialect = ANSI) -> SqlSafe:
    """
    Format as ISO datetime. None -> 'NULL'.
    """
    if value is None:
        return _safe("NULL")
    dt = value
    if isinstance(dt, str):
        return sql_string(dt, dialect)
    if isinstance(dt, (datetime, date)):
        if isinstance(dt, date) and not isinstance(dt, datetime):
            dt = datetime.combine(dt, datetime.min.time())
        return _safe(f"'{dt.isoformat(sep=' ')}'")
    raise TypeError(f"sql_datetime: expected a datetime, got {type(value).__name__}")


def _literal(v: Any, dialect: Dialect) -> str:
    if v is None:
        return "NULL"
    if isinstance(v, bool):
        return "TRUE" if v else "FALSE"
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, datetime):
        return sql_datetime(v, dialect)
    if isinstance(v, date):
        return sql_date(v)
    return dialect.quote_string(str(v))


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (str, bytes, dict)):
        raise TypeError(f"expected a list of values, got {type(value).__name__}")
    return list(value)


def sql_in(value: Any, dialect: Dialect = ANSI) -> SqlSafe:
    """
    Comma-separated literals for use inside ``IN (...)``: ``1, 'a', NULL``.
    Numbers stay numbers; everything else is quoted. Empty -> 'NULL'.
    """
    parts = [_literal(v, dialect) for v in _as_list(value)]
    return _safe(", ".join(parts) if parts else "NULL")


def sql_string_in(value: Any, dialect: Dialect = ANSI) -> SqlSafe:
    """
    Like ``sql_in`` but quotes every element as a string: ``'a', 'b'``.
    """
    parts = [dialect.quote_string(str(v)) for v in _as_list(value) if v is not None]
    return _safe(", ".join(parts) if parts else "NULL")


def in_list(value: Any, dialect: Dialect = ANSI) -> SqlSafe:
    """
    Turn list/iterable into SQL IN clause: (1, 2, 3). Empty or None ->
    (SELECT 1 WHERE 1=0). A plain string or mapping is a TypeError.
    """
    it = _as_list(value)
    if not it:
        return _safe("(SELECT 1 WHERE 1=0)")
    return _safe("(" + ", ".join(_literal(v, dialect) for v in it) + ")")


def sql_identifier(value: Any, dialect: Dialect = ANSI) -> SqlSafe:
    """Quote a (possibly dotted) table or column name."""
    if value is None:
        raise ValueError("identifier must not be None")
    return _safe(dialect.quote_identifier(str(value)))


def _escape_like(s: str) -> str:
    """Escape % and _ for use in LIKE patterns."""
    return s.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def sql_like(value: Any, dialect: Dialect = ANSI) -> SqlSafe:
    """
    Escape % and _ for LIKE; wrap in quotes. None -> 'NULL'.
    """
    if value is None:
        return _safe("NULL")
    return sql_string(_escape_like(str(value)), dialect)


def sql_like_start(value: Any, dialect: Dialect = ANSI) -> SqlSafe:
    """Prefix match: escape user input and add trailing %."""
    if value is None:
        return _safe("NULL")
    return sql_string(_escape_like(str(value)) + "%", dialect)


def sql_like_end(value: Any, dialect: Dialect = ANSI) -> SqlSafe:
    """Suffix match: escape user input and add leading %."""
    if value is None:
        return _safe("NULL")
    return sql_string("%" + _escape_like(str(value)), dialect)


def _json_filter(value: Any, dialect: Dialect = ANSI) -> SqlSafe:
    """
    JSON/JSONB: serialize to string and quote. None -> 'NULL'.
    """
    if value is None:
        return _safe("NULL")
    try:
        s = json.dumps(value, default=str)
    except (TypeError, ValueError) as e:
        raise ValueError(f"json: cannot serialize {type(value).__name__} value: {e}") from e
    return sql_string(s, dialect)


def sql_raw(value: Any) -> SqlSafe:
    """Mark a value as raw SQL: bypass auto-escape entirely.

    Use for trusted identifiers like table/column names that the command
    author controls.  NEVER use on untrusted user input.

    Template usage: ``{{ table_name | sql_raw }}``
    """
    if value is None:
        return _safe("NULL")
    return _safe(str(value))


# ---------------------------------------------------------------------------
# Finalize callback – auto-escape for {{ }} without explicit filter
# ---------------------------------------------------------------------------


def sql_finalize(value: Any, dialect: Dialect = ANSI) -> str:
    """Jinja2 ``finalize`` callback: auto-escape any ``{{ }}`` output that
    was *not* processed by an explicit SQL filter (i.e. not ``SqlSafe``).

    * ``SqlSafe`` → pass through (already escaped by filter).
    * ``None`` → ``"NULL"``.
    * ``int`` / ``float`` → str (safe numeric literal).
    * ``bool`` → ``"TRUE"`` / ``"FALSE"``.
    * ``list`` / ``tuple`` → ``in_list()`` (e.g. ``(1, 2, 3)``).
    * ``dict`` → ``_json_filter()`` (JSON-serialised + quoted).
    * ``date`` / ``datetime`` → ``sql_datetime()`` / ``sql_date()``.
    * Everything else → ``sql_string()``.
    """
    if isinstance(value, SqlSafe):
        return str(value)
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return in_list(value, dialect)
    if isinstance(value, dict):
        return _json_filter(value, dialect)
    if isinstance(value, datetime):
        return sql_datetime(value, dialect)
    if isinstance(value, date):
        return sql_date(value)
    return sql_string(value, dialect)


def sql_filters(dialect: Dialect = ANSI) -> dict[str, Any]:
    """All filters to register in a Jinja2 Environment, bound to *dialect*."""
    return {
        "sql_string": partial(sql_string, dialect=dialect),
        "sql_int": sql_int,
        "sql_float": sql_float,
        "sql_bool": sql_bool,
        "sql_date": sql_date,
        "sql_datetime": partial(sql_datetime, dialect=dialect),
        "in_list": partial(in_list, dialect=dialect),
        "sql_in": partial(sql_in, dialect=dialect),
        "sql_string_in": partial(sql_string_in, dialect=dialect),
        "sql_identifier": partial(sql_identifier, dialect=dialect),
        "sql_like": partial(sql_like, dialect=dialect),
        "sql_like_start": partial(sql_like_start, dialect=dialect),
        "sql_like_end": partial(sql_like_end, dialect=dialect),
        "json": partial(_json_filter, dialect=dialect),
        "sql_raw": sql_raw,
        "safe": sql_raw,
    }
