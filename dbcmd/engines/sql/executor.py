"""
Execute rendered SQL on an open DatabaseHandle and stream rows to a sink.

One statement per call; rows are fetched in batches and handed to the sink
as dicts keyed by column name. Driver errors are logged and re-raised as
ExecutionError with the driver's message.
"""

import logging
import sqlite3
from typing import Any

import psycopg
import pymysql
from trino.exceptions import TrinoExternalError, TrinoUserError

from dbcmd.core.db import DatabaseHandle
from dbcmd.core.output import RowSink

_log = logging.getLogger(__name__)

FETCH_BATCH_SIZE = 500


class ExecutionError(ValueError):
    """Raised when the database rejects or fails a query."""

    pass


def _wrap_driver_error(e: Exception, sql: str) -> ExecutionError:
    if isinstance(e, psycopg.errors.QueryCanceled):
        _log.warning("SQL query timed out: %s", e)
        return ExecutionError("SQL query timed out (statement_timeout)")
    if isinstance(e, psycopg.Error):
        _log.error("PostgreSQL error: %s. SQL: %s", e, sql, exc_info=True)
    elif isinstance(e, pymysql.err.ProgrammingError):
        _log.warning("MySQL programming error: %s", e)
        return ExecutionError(f"SQL error: {e}")
    elif isinstance(e, pymysql.Error):
        _log.error("MySQL error: %s. SQL: %s", e, sql, exc_info=True)
    elif isinstance(e, (TrinoUserError, TrinoExternalError)):
        _log.error("Trino error: %s. SQL: %s", e, sql, exc_info=True)
    elif isinstance(e, sqlite3.Error):
        _log.error("SQLite error: %s. SQL: %s", e, sql, exc_info=True)
    else:
        _log.error("SQL execution failed: %s. SQL: %s", e, sql, exc_info=True)
    return ExecutionError(f"SQL execution failed: {e}")


def run_query_into_sink(
    db: DatabaseHandle,
    sql: str,
    params: dict | list | tuple | None,
    sink: RowSink,
) -> int:
    """
    Execute *sql* (binding *params* when given) and pass each row to *sink*.

    Returns the number of rows streamed. Statements without a result set
    stream nothing. Errors raised by the sink itself propagate unchanged.
    """
    try:
        cur = db.execute(sql, params)
    except Exception as e:
        raise _wrap_driver_error(e, sql) from e

    try:
        desc = cur.description
        if not desc:
            return 0
        names = [d[0] for d in desc]
        count = 0
        while True:
            try:
                batch: list[Any] = cur.fetchmany(FETCH_BATCH_SIZE)
            except Exception as e:
                raise _wrap_driver_error(e, sql) from e
            if not batch:
                break
            for row in batch:
                sink.process(dict(zip(names, row, strict=True)))
                count += 1
        _log.debug("streamed %d row(s)", count)
        return count
    finally:
        try:
            cur.close()
        except Exception:
            _log.debug("could not close cursor", exc_info=True)
