"""
SQL template engine with Jinja2.

Renders a command's query template plus its named sub-queries into one SQL
string; parses parameter names from templates.

Security: ``sql_finalize`` auto-escapes every ``{{ }}`` output that was
not already processed by an explicit SQL filter.  This means ``{{ name }}``
is safe by default (escaped as a quoted string).  Use type-specific
filters (``| sql_int``, ``| sql_string``, etc.) for explicit control.

Undefined names are errors (``StrictUndefined``), never empty strings.

Performance: Compiled Jinja2 ``Template`` objects are cached in an LRU
dict keyed by dialect and template source hash so repeated calls with the
same SQL template skip the parse phase entirely. Rendered SQL is never
cached.

Line cleanup (``clean_query``) only touches the template's own text.
Printed values that hold a line break or trailing whitespace, such as a
multi-line string literal, are swapped for a placeholder while the
template renders and put back after the cleanup.
"""

import hashlib
import logging
import re
import threading
from collections import OrderedDict
from contextvars import ContextVar
from functools import partial
from typing import Any

from jinja2 import (
    Environment,
    StrictUndefined,
    Template,
    TemplateError,
    TemplateSyntaxError,
    UndefinedError,
    meta,
)

from dbcmd.core.db import DatabaseHandle
from dbcmd.engines.sql.filters import (
    ANSI,
    Dialect,
    SqlSafe,
    get_dialect,
    sql_filters,
    sql_finalize,
    sql_in,
    sql_string_in,
)

_log = logging.getLogger(__name__)

# Names every template can call; reserved, they shadow parameters of the same name.
HELPER_NAMES = frozenset({"subquery", "sql_in", "sql_string_in"})

_CACHE_MAX_SIZE = 512
_envs: dict[str, Environment] = {}
_template_cache: OrderedDict[tuple[str, str], Template] = OrderedDict()
_cache_lock = threading.Lock()

# Printed values kept out of line cleanup for the render in progress.
_held_values: ContextVar[list[str] | None] = ContextVar("_held_values", default=None)
_HELD_RE = re.compile(r"\x00(\d+)\x00")


class RenderError(ValueError):
    """Raised when a SQL template cannot be parsed or rendered."""

    pass


def _get_sql_env(dialect: Dialect) -> Environment:
    """Return the shared Jinja2 Environment for *dialect* (filters and
    auto-escape bound to its quoting rules)."""
    with _cache_lock:
        env = _envs.get(dialect.name)
        if env is None:
            env = Environment(
                autoescape=False,
                undefined=StrictUndefined,
                finalize=partial(_finalize, dialect=dialect),
            )
            env.filters.update(sql_filters(dialect))
            _envs[dialect.name] = env
        return env


def _finalize(value: Any, dialect: Dialect) -> str:
    text = sql_finalize(value, dialect)
    held = _held_values.get()
    if held is None or not (text != text.rstrip() or "\n" in text or "\x00" in text):
        return text
    held.append(text)
    return f"\x00{len(held) - 1}\x00"


def _compile_cached(env: Environment, dialect: Dialect, source: str) -> Template:
    """Return a compiled ``Template`` from cache or compile & cache it."""
    key = (dialect.name, hashlib.md5(source.encode(), usedforsecurity=False).hexdigest())
    with _cache_lock:
        tpl = _template_cache.get(key)
        if tpl is not None:
            _template_cache.move_to_end(key)
            return tpl
    tpl = env.from_string(source)
    with _cache_lock:
        _template_cache[key] = tpl
        if len(_template_cache) > _CACHE_MAX_SIZE:
            _template_cache.popitem(last=False)
    return tpl


def clean_query(query: str) -> str:
    """Drop blank lines and trailing whitespace left behind by template blocks."""
    lines = [line.rstrip() for line in query.splitlines()]
    return "\n".join(line for line in lines if line.strip()).strip()


class SQLTemplateEngine:
    """Renders Jinja2 SQL templates and parses parameter names."""

    def __init__(self, dialect: Dialect | None = None) -> None:
        self.dialect = dialect or ANSI

    def render(
        self,
        template: str,
        params: dict[str, Any],
        *,
        sub_queries: dict[str, str] | None = None,
        name: str = "query",
    ) -> str:
        """
        Render *template* with *params*; ``subquery(name)`` inlines *sub_queries*.

        The result has gone through ``clean_query``; printed values are left
        exactly as the filters produced them.
        """
        return self._render(name, template, params, sub_queries or {}, ())

    def _render(
        self,
        name: str,
        source: str,
        params: dict[str, Any],
        sub_queries: dict[str, str],
        stack: tuple[str, ...],
    ) -> str:
        env = _get_sql_env(self.dialect)
        try:
            t = _compile_cached(env, self.dialect, source)
        except TemplateSyntaxError as e:
            raise RenderError(
                f"could not parse {name} template (line {e.lineno}): {e.message}"
            ) from e

        def subquery(sub_name: str) -> SqlSafe:
            if sub_name in stack:
                chain = " -> ".join([*stack, sub_name])
                raise RenderError(f"cyclic sub-query reference: {chain}")
            if sub_name not in sub_queries:
                raise RenderError(f"unknown sub-query {sub_name!r} referenced from {name}")
            return SqlSafe(
                self._render(
                    f"subquery {sub_name}",
                    sub_queries[sub_name],
                    params,
                    sub_queries,
                    (*stack, sub_name),
                )
            )

        context = dict(params)
        context.update(
            subquery=subquery,
            sql_in=partial(sql_in, dialect=self.dialect),
            sql_string_in=partial(sql_string_in, dialect=self.dialect),
        )
        held: list[str] = []
        token = _held_values.set(held)
        try:
            rendered = t.render(context)
        except RenderError:
            raise
        except UndefinedError as e:
            raise RenderError(
                f"could not render {name} template: {e}. "
                f"Available params: {sorted(params)}."
            ) from e
        except TemplateError as e:
            raise RenderError(f"could not render {name} template: {e}") from e
        except (TypeError, ValueError) as e:
            raise RenderError(f"could not render {name} template: {e}") from e
        finally:
            _held_values.reset(token)
        return _HELD_RE.sub(lambda m: held[int(m.group(1))], clean_query(rendered))

    def parse_parameters(self, template: str) -> list[str]:
        """Extract variable names used in ``{{ }}`` and ``{% %}`` (undeclared, minus helpers)."""
        env = _get_sql_env(self.dialect)
        try:
            ast = env.parse(template)
        except TemplateSyntaxError as e:
            raise RenderError(f"could not parse template (line {e.lineno}): {e.message}") from e
        names = meta.find_undeclared_variables(ast)
        return sorted(names - HELPER_NAMES)


def render_query(
    db: DatabaseHandle | None,
    query: str,
    sub_queries: dict[str, str] | None,
    params: dict[str, Any],
) -> str:
    """
    Render *query* for the dialect of *db* (ANSI quoting when None).

    Pure apart from logging: identical inputs give identical output.
    """
    dialect = get_dialect(db.product_type if db is not None else None)
    rendered = SQLTemplateEngine(dialect).render(query, params, sub_queries=sub_queries)
    _log.debug("Rendered SQL: %s", rendered)
    return rendered
