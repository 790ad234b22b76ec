"""
Database connections (psycopg, pymysql, trino, sqlite3).

No pooling: every invocation opens one handle and closes it when done.
"""

from .connection import DatabaseConnectionError, DatabaseHandle, connect
from .factory import connection_factory_from_layers, connection_settings_from_layers

__all__ = [
    "DatabaseConnectionError",
    "DatabaseHandle",
    "connect",
    "connection_factory_from_layers",
    "connection_settings_from_layers",
]
