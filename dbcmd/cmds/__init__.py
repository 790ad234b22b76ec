"""
Commands: declarative SQL commands, their loader, and the built-in
query/select commands.
"""

from dbcmd.cmds.description import CommandDescription
from dbcmd.cmds.loader import SqlCommandLoader
from dbcmd.cmds.query import QueryCommand
from dbcmd.cmds.select import SelectOptions, build_select_query, create_select_command
from dbcmd.cmds.sql_command import (
    DBConnectionFactory,
    ExitWithoutOutput,
    LoadError,
    SqlCommand,
    SqlCommandDescription,
)

__all__ = [
    "CommandDescription",
    "DBConnectionFactory",
    "ExitWithoutOutput",
    "LoadError",
    "QueryCommand",
    "SelectOptions",
    "SqlCommand",
    "SqlCommandDescription",
    "SqlCommandLoader",
    "build_select_query",
    "create_select_command",
]
