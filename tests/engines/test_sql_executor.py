"""Unit tests for engines.sql.executor (sqlite end to end, mocked drivers for errors)."""

import sqlite3
from unittest.mock import MagicMock

import psycopg
import pymysql
import pytest

from dbcmd.core.db import DatabaseHandle, connect
from dbcmd.core.output import CollectingSink
from dbcmd.engines.sql import ExecutionError, run_query_into_sink
from dbcmd.engines.sql.executor import FETCH_BATCH_SIZE
from dbcmd.models import ConnectionSettings, ProductTypeEnum


def _sqlite_db(tmp_path, rows: int = 3) -> DatabaseHandle:
    path = tmp_path / "jobs.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE jobs (id INTEGER PRIMARY KEY, name TEXT)")
    conn.executemany(
        "INSERT INTO jobs (id, name) VALUES (?, ?)", [(i, f"job{i}") for i in range(1, rows + 1)]
    )
    conn.commit()
    conn.close()
    return connect(ConnectionSettings(product_type=ProductTypeEnum.SQLITE, database=str(path)))


def test_streams_rows_as_dicts(tmp_path) -> None:
    sink = CollectingSink()
    with _sqlite_db(tmp_path) as db:
        n = run_query_into_sink(db, "SELECT id, name FROM jobs ORDER BY id", None, sink)
    assert n == 3
    assert sink.rows[0] == {"id": 1, "name": "job1"}
    assert list(sink.rows[2]) == ["id", "name"]


def test_more_rows_than_one_batch(tmp_path) -> None:
    sink = CollectingSink()
    total = FETCH_BATCH_SIZE * 2 + 7
    with _sqlite_db(tmp_path, rows=total) as db:
        assert run_query_into_sink(db, "SELECT id FROM jobs", None, sink) == total
    assert len(sink.rows) == total


def test_bound_params(tmp_path) -> None:
    sink = CollectingSink()
    with _sqlite_db(tmp_path) as db:
        run_query_into_sink(db, "SELECT name FROM jobs WHERE id = ?", (2,), sink)
    assert sink.rows == [{"name": "job2"}]


def test_statement_without_result_set(tmp_path) -> None:
    sink = CollectingSink()
    with _sqlite_db(tmp_path) as db:
        assert run_query_into_sink(db, "UPDATE jobs SET name = 'x'", None, sink) == 0
    assert sink.rows == []


def test_sqlite_error_wrapped(tmp_path) -> None:
    with _sqlite_db(tmp_path) as db:
        with pytest.raises(ExecutionError, match="SQL execution failed: no such table"):
            run_query_into_sink(db, "SELECT * FROM nope", None, CollectingSink())


def test_sink_error_propagates_unchanged(tmp_path) -> None:
    sink = MagicMock()
    sink.process.side_effect = RuntimeError("sink full")
    with _sqlite_db(tmp_path) as db:
        with pytest.raises(RuntimeError, match="sink full"):
            run_query_into_sink(db, "SELECT id FROM jobs", None, sink)


def test_postgres_timeout() -> None:
    db = MagicMock()
    db.execute.side_effect = psycopg.errors.QueryCanceled("canceling statement")
    with pytest.raises(ExecutionError, match="timed out"):
        run_query_into_sink(db, "SELECT pg_sleep(10)", None, CollectingSink())


def test_mysql_programming_error() -> None:
    db = MagicMock()
    db.execute.side_effect = pymysql.err.ProgrammingError(1064, "syntax")
    with pytest.raises(ExecutionError, match="SQL error"):
        run_query_into_sink(db, "SELEC 1", None, CollectingSink())


def test_cursor_closed_after_streaming() -> None:
    db = MagicMock()
    cur = db.execute.return_value
    cur.description = [("n",)]
    cur.fetchmany.side_effect = [[(1,), (2,)], []]
    sink = CollectingSink()
    assert run_query_into_sink(db, "SELECT n", None, sink) == 2
    assert sink.rows == [{"n": 1}, {"n": 2}]
    cur.close.assert_called_once()
