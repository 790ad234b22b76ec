"""
QueryCommand: run SQL text given on the command line, without templating.
"""

import logging
from typing import Any

from dbcmd.cmds.description import CommandDescription
from dbcmd.cmds.sql_command import DBConnectionFactory
from dbcmd.core.db import DatabaseConnectionError, connection_factory_from_layers
from dbcmd.core.layers import (
    ParsedLayers,
    new_dbt_layer,
    new_output_layer,
    new_sql_connection_layer,
    parse_layers,
)
from dbcmd.core.output import RowSink
from dbcmd.core.param_type import ParameterDefinition
from dbcmd.engines.sql import ExecutionError, run_query_into_sink

_log = logging.getLogger(__name__)


class QueryCommand:
    def __init__(self, db_connection_factory: DBConnectionFactory | None = None) -> None:
        self.db_connection_factory = db_connection_factory or connection_factory_from_layers
        self.description = CommandDescription(
            name="query",
            short="Run a SQL query passed as a CLI argument",
            arguments=[
                ParameterDefinition(
                    name="query", help="The SQL query to run", required=True
                ),
            ],
            layers=[new_output_layer(), new_sql_connection_layer(), new_dbt_layer()],
        )

    def parse_layers(self, raw: dict[str, Any] | None) -> ParsedLayers:
        return parse_layers(self.description, raw)

    def execute(
        self,
        parsed_layers: ParsedLayers,
        query: str,
        sink: RowSink,
        bind_params: dict | list | tuple | None = None,
    ) -> int:
        """Open, ping, run *query* with optional driver-bound parameters, close."""
        try:
            db = self.db_connection_factory(parsed_layers)
        except DatabaseConnectionError:
            raise
        except Exception as e:
            raise DatabaseConnectionError(f"could not open database: {e}") from e
        with db:
            db.ping()
            try:
                return run_query_into_sink(db, query, bind_params, sink)
            except ExecutionError as e:
                raise ExecutionError(f"could not run query: {e}") from e

    def run(self, parsed_layers: ParsedLayers, params: dict[str, Any] | None, sink: RowSink) -> int:
        values = parsed_layers.merged() if params is None else params
        return self.execute(parsed_layers, values["query"], sink)
