"""
DB connection helpers.

Uses psycopg (PostgreSQL), pymysql (MySQL), trino (Trino) or sqlite3 based
on product_type. A connection is wrapped in a DatabaseHandle that remembers
its product type, so the SQL renderer can pick the matching dialect.
"""

import logging
import sqlite3
from typing import Any

import psycopg
import pymysql
from trino.auth import BasicAuthentication
from trino.dbapi import connect as trino_connect

from dbcmd.core.config import settings
from dbcmd.models import ConnectionSettings, ProductTypeEnum

_log = logging.getLogger(__name__)


class DatabaseConnectionError(ValueError):
    """Raised when a connection cannot be opened or does not answer a ping."""

    pass


class DatabaseHandle:
    """An open DB-API connection plus the product type it talks to."""

    def __init__(self, conn: Any, product_type: ProductTypeEnum) -> None:
        self.conn = conn
        self.product_type = ProductTypeEnum(product_type)

    def __repr__(self) -> str:
        return f"DatabaseHandle({self.product_type.value})"

    def __enter__(self) -> "DatabaseHandle":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def ping(self) -> None:
        """Run SELECT 1; raise DatabaseConnectionError if it fails."""
        cur = None
        try:
            cur = self.conn.cursor()
            cur.execute("SELECT 1")
            cur.fetchone()
        except Exception as e:
            raise DatabaseConnectionError(f"could not ping database: {e}") from e
        finally:
            if cur is not None:
                try:
                    cur.close()
                except Exception:
                    pass

    def execute(self, sql: str, params: dict | list | tuple | None = None) -> Any:
        """
        Execute SQL and return the cursor.

        Applies EXTERNAL_DB_STATEMENT_TIMEOUT (Postgres: statement_timeout,
        MySQL: max_execution_time, Trino: query_max_execution_time) before
        the query and resets it after. Empty params are not bound.
        """
        timeout_sec = settings.EXTERNAL_DB_STATEMENT_TIMEOUT
        use_timeout = (
            timeout_sec is not None
            and timeout_sec > 0
            and self.product_type != ProductTypeEnum.SQLITE
        )

        if use_timeout:
            self._set_statement_timeout(timeout_sec)

        cur = self.conn.cursor()
        try:
            if params:
                cur.execute(sql, params)
            else:
                cur.execute(sql)
        finally:
            if use_timeout:
                try:
                    self._set_statement_timeout(0)
                except Exception:
                    _log.debug("could not reset statement timeout", exc_info=True)
        return cur

    def _set_statement_timeout(self, timeout_sec: float) -> None:
        timeout_ms = int(timeout_sec * 1000)
        cur = self.conn.cursor()
        try:
            if self.product_type == ProductTypeEnum.POSTGRES:
                cur.execute("SET statement_timeout = %s", (str(timeout_ms),))
            elif self.product_type == ProductTypeEnum.MYSQL:
                cur.execute("SET SESSION max_execution_time = %s", (timeout_ms,))
            elif self.product_type == ProductTypeEnum.TRINO:
                cur.execute("SET SESSION query_max_execution_time = '%ss'" % timeout_sec)
        finally:
            try:
                cur.close()
            except Exception:
                pass

    def close(self) -> None:
        try:
            self.conn.close()
        except Exception:
            _log.debug("error while closing %r", self, exc_info=True)


def connect(conn_settings: ConnectionSettings) -> DatabaseHandle:
    """
    Open a connection described by *conn_settings*.

    Raises DatabaseConnectionError when required fields are missing or the
    driver fails to connect.
    """
    pt = conn_settings.product_type
    timeout = settings.EXTERNAL_DB_CONNECT_TIMEOUT

    if pt == ProductTypeEnum.SQLITE:
        if not conn_settings.database:
            raise DatabaseConnectionError("sqlite requires a database file path")
        try:
            return DatabaseHandle(
                sqlite3.connect(conn_settings.database, timeout=timeout), pt
            )
        except sqlite3.Error as e:
            raise DatabaseConnectionError(f"could not open database: {e}") from e

    host = conn_settings.host
    port = conn_settings.effective_port()
    database = conn_settings.database
    username = conn_settings.username
    password = conn_settings.password if conn_settings.password is not None else ""

    for name, val in [
        ("host", host),
        ("database", database),
        ("user", username),
    ]:
        if not val:
            raise DatabaseConnectionError(f"{pt.value} connection requires {name}")

    if pt == ProductTypeEnum.TRINO and conn_settings.use_ssl and not password.strip():
        raise DatabaseConnectionError("Password is required for Trino when using SSL/HTTPS.")

    _log.debug("connecting to %s at %s:%s/%s", pt.value, host, port, database)
    try:
        if pt == ProductTypeEnum.POSTGRES:
            extra: dict[str, Any] = {}
            if conn_settings.schema_name:
                extra["options"] = f"-c search_path={conn_settings.schema_name}"
            conn: Any = psycopg.connect(
                host=host,
                port=int(port),
                dbname=database,
                user=username,
                password=password,
                connect_timeout=timeout,
                **extra,
            )
        elif pt == ProductTypeEnum.MYSQL:
            conn = pymysql.connect(
                host=host,
                port=int(port),
                database=database,
                user=username,
                password=password,
                connect_timeout=timeout,
            )
        elif pt == ProductTypeEnum.TRINO:
            conn = trino_connect(
                host=host,
                port=int(port),
                user=username,
                auth=BasicAuthentication(username, password) if password else None,
                catalog=database,
                schema=conn_settings.schema_name or "default",
                source="dbcmd",
                http_scheme="https" if conn_settings.use_ssl else "http",
                request_timeout=timeout,
            )
        else:
            raise DatabaseConnectionError(f"Unsupported product_type: {pt}")
    except DatabaseConnectionError:
        raise
    except Exception as e:
        raise DatabaseConnectionError(f"could not open database: {e}") from e

    return DatabaseHandle(conn, pt)
