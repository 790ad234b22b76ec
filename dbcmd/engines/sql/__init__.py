"""
SQL template engine (Jinja2) and executor.

Exports: SQLTemplateEngine, RenderError, render_query, clean_query,
ExecutionError, run_query_into_sink.
"""

from dbcmd.engines.sql.executor import ExecutionError, run_query_into_sink
from dbcmd.engines.sql.template_engine import (
    RenderError,
    SQLTemplateEngine,
    clean_query,
    render_query,
)

__all__ = [
    "SQLTemplateEngine",
    "RenderError",
    "render_query",
    "clean_query",
    "ExecutionError",
    "run_query_into_sink",
]
