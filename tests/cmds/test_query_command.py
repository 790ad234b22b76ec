"""Unit tests for cmds.query.QueryCommand."""

import sqlite3
from unittest.mock import MagicMock

import pytest

from dbcmd.cmds import QueryCommand
from dbcmd.core.db import DatabaseConnectionError, DatabaseHandle, connect
from dbcmd.core.output import CollectingSink
from dbcmd.core.param_type import ParamTypeError
from dbcmd.engines.sql import ExecutionError
from dbcmd.models import ConnectionSettings, ProductTypeEnum


@pytest.fixture
def db_path(tmp_path) -> str:
    path = str(tmp_path / "q.db")
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE t (n INTEGER)")
    conn.executemany("INSERT INTO t VALUES (?)", [(1,), (2,), (3,)])
    conn.commit()
    conn.close()
    return path


def _factory(path: str):
    return lambda parsed: connect(
        ConnectionSettings(product_type=ProductTypeEnum.SQLITE, database=path)
    )


def test_description() -> None:
    qc = QueryCommand()
    assert qc.description.name == "query"
    assert [a.name for a in qc.description.arguments] == ["query"]
    assert [layer.slug for layer in qc.description.layers] == ["output", "sql-connection", "dbt"]


def test_run_uses_query_argument(db_path) -> None:
    qc = QueryCommand(_factory(db_path))
    sink = CollectingSink()
    parsed = qc.parse_layers({"query": "SELECT n FROM t WHERE n > 1 ORDER BY n"})
    assert qc.run(parsed, None, sink) == 2
    assert sink.rows == [{"n": 2}, {"n": 3}]


def test_query_text_is_not_templated(db_path) -> None:
    qc = QueryCommand(_factory(db_path))
    sink = CollectingSink()
    qc.execute(qc.parse_layers({"query": "x"}), "SELECT '{{ n }}' AS v", sink)
    assert sink.rows == [{"v": "{{ n }}"}]


def test_bind_params(db_path) -> None:
    qc = QueryCommand(_factory(db_path))
    sink = CollectingSink()
    qc.execute(qc.parse_layers({"query": "x"}), "SELECT n FROM t WHERE n = ?", sink, (3,))
    assert sink.rows == [{"n": 3}]


def test_query_required() -> None:
    with pytest.raises(ParamTypeError, match="Parameter 'query' is required"):
        QueryCommand().parse_layers({})


def test_connection_closed_after_run() -> None:
    handle = DatabaseHandle(MagicMock(), ProductTypeEnum.SQLITE)
    cur = handle.conn.cursor.return_value
    cur.description = [("n",)]
    cur.fetchmany.side_effect = [[(1,)], []]
    qc = QueryCommand(lambda parsed: handle)
    sink = CollectingSink()
    qc.execute(qc.parse_layers({"query": "x"}), "SELECT 1 AS n", sink)
    assert sink.rows == [{"n": 1}]
    handle.conn.close.assert_called_once()


def test_factory_failure_wrapped() -> None:
    def factory(parsed):
        raise OSError("refused")

    qc = QueryCommand(factory)
    with pytest.raises(DatabaseConnectionError, match="could not open database: refused"):
        qc.execute(qc.parse_layers({"query": "x"}), "SELECT 1", CollectingSink())


def test_execution_error_has_context(db_path) -> None:
    qc = QueryCommand(_factory(db_path))
    with pytest.raises(ExecutionError, match="^could not run query: SQL execution failed: .*no such table"):
        qc.execute(qc.parse_layers({"query": "x"}), "SELECT * FROM missing", CollectingSink())
