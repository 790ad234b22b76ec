"""
SqlCommand: a declarative, templated SQL command bound to a connection
factory.

Run sequence per invocation: validate, open a connection, ping, render,
then either print the query (``print-query``) and raise ExitWithoutOutput,
or execute and stream rows into a sink. The connection is closed on every
path once opened.
"""

import logging
from typing import Any, Callable

import yaml
from pydantic import BaseModel, ConfigDict, Field

from dbcmd.cmds.description import CommandDescription
from dbcmd.core.db import (
    DatabaseConnectionError,
    DatabaseHandle,
    connection_factory_from_layers,
)
from dbcmd.core.layers import (
    DBT_SLUG,
    OUTPUT_SLUG,
    SQL_CONNECTION_SLUG,
    SQL_HELPERS_SLUG,
    ParameterLayer,
    ParsedLayers,
    new_standard_layers,
    parse_layers,
)
from dbcmd.core.output import RowSink
from dbcmd.core.param_type import ParameterDefinition
from dbcmd.engines.sql import (
    ExecutionError,
    RenderError,
    SQLTemplateEngine,
    render_query,
    run_query_into_sink,
)

_log = logging.getLogger(__name__)

STANDARD_LAYER_SLUGS = (SQL_HELPERS_SLUG, OUTPUT_SLUG, SQL_CONNECTION_SLUG, DBT_SLUG)

DBConnectionFactory = Callable[[ParsedLayers], DatabaseHandle]

# name first, query last
_DOCUMENT_KEYS = ("name", "short", "long", "layout", "flags", "arguments", "layers", "subqueries")


class _BlockDumper(yaml.SafeDumper):
    pass


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    # multi-line SQL as literal blocks
    style = "|" if "\n" in data else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", data, style=style)


_BlockDumper.add_representer(str, _represent_str)


class LoadError(ValueError):
    """Raised when a command document is malformed or describes an invalid command."""

    pass


class ExitWithoutOutput(Exception):
    """
    The query was printed instead of run; there are no rows to show.

    Not a ValueError: callers must not treat it as a failure.
    """

    def __init__(self, query: str) -> None:
        super().__init__("exit without output")
        self.query = query


class SqlCommandDescription(BaseModel):
    """Shape of one command document."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    short: str = ""
    long: str = ""
    layout: list[Any] = Field(default_factory=list)
    flags: list[ParameterDefinition] = Field(default_factory=list)
    arguments: list[ParameterDefinition] = Field(default_factory=list)
    layers: list[ParameterLayer] = Field(default_factory=list)
    sub_queries: dict[str, str] = Field(default_factory=dict, alias="subqueries")
    query: str = ""


class SqlCommand:
    def __init__(
        self,
        description: CommandDescription,
        query: str,
        sub_queries: dict[str, str] | None = None,
        db_connection_factory: DBConnectionFactory | None = None,
    ) -> None:
        self.description = description
        self.query = query
        self.sub_queries = dict(sub_queries or {})
        self.db_connection_factory = db_connection_factory or connection_factory_from_layers
        self.description.add_layers(*new_standard_layers())

    def __str__(self) -> str:
        return f"SqlCommand{{Name: {self.name}, Parents: {' '.join(self.description.parents)}}}"

    __repr__ = __str__

    @property
    def name(self) -> str:
        return self.description.name

    def is_valid(self) -> bool:
        return bool(self.description.name and self.description.short and self.query)

    def check_valid(self) -> None:
        if not self.is_valid():
            missing = [
                field
                for field, value in (
                    ("name", self.description.name),
                    ("short", self.description.short),
                    ("query", self.query),
                )
                if not value
            ]
            raise LoadError(
                f"invalid command {self.name or '<unnamed>'!r}: "
                f"missing required field(s): {', '.join(missing)}"
            )

    def parse_layers(self, raw: dict[str, Any] | None) -> ParsedLayers:
        return parse_layers(self.description, raw)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_query(self, db: DatabaseHandle | None, params: dict[str, Any]) -> str:
        """Render with every declared parameter present (None when unset)."""
        values = dict(params)
        for d in self.description.all_parameters():
            values.setdefault(d.name, None)
        return render_query(db, self.query, self.sub_queries, values)

    def _open(self, parsed_layers: ParsedLayers) -> DatabaseHandle:
        try:
            return self.db_connection_factory(parsed_layers)
        except DatabaseConnectionError:
            raise
        except Exception as e:
            raise DatabaseConnectionError(f"could not open database: {e}") from e

    def _ping_and_render(self, db: DatabaseHandle, params: dict[str, Any]) -> str:
        db.ping()
        try:
            return self.render_query(db, params)
        except RenderError as e:
            raise RenderError(f"could not generate query: {e}") from e

    def render_query_full(self, parsed_layers: ParsedLayers, params: dict[str, Any] | None = None) -> str:
        """Open a connection, ping, render and close without executing."""
        with self._open(parsed_layers) as db:
            return self._ping_and_render(db, parsed_layers.merged() if params is None else params)

    def metadata(self, parsed_layers: ParsedLayers, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return {"query": self.render_query_full(parsed_layers, params)}

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(
        self,
        parsed_layers: ParsedLayers,
        params: dict[str, Any] | None,
        sink: RowSink,
    ) -> int:
        """
        Run the command and stream rows into *sink*; returns the row count.

        *params* defaults to ``parsed_layers.merged()``. Raises
        ExitWithoutOutput after printing the query when ``print-query`` is set.
        """
        self.check_valid()
        values = parsed_layers.merged() if params is None else params
        with self._open(parsed_layers) as db:
            query = self._ping_and_render(db, values)
            if parsed_layers.get(SQL_HELPERS_SLUG, "print-query", False):
                print(query)
                raise ExitWithoutOutput(query)
            _log.debug("running %s", self.name)
            try:
                return run_query_into_sink(db, query, None, sink)
            except ExecutionError as e:
                raise ExecutionError(f"could not run query: {e}") from e

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def undeclared_parameters(self) -> list[str]:
        """Template names that no flag, argument or layer declares."""
        engine = SQLTemplateEngine()
        used: set[str] = set(engine.parse_parameters(self.query))
        for sub in self.sub_queries.values():
            used.update(engine.parse_parameters(sub))
        declared = {d.name for d in self.description.all_parameters()}
        return sorted(used - declared)

    def to_document(self) -> SqlCommandDescription:
        d = self.description
        return SqlCommandDescription(
            name=d.name,
            short=d.short,
            long=d.long,
            layout=list(d.layout),
            flags=list(d.flags),
            arguments=list(d.arguments),
            layers=[layer for layer in d.layers if layer.slug not in STANDARD_LAYER_SLUGS],
            sub_queries=dict(self.sub_queries),
            query=self.query,
        )

    def to_yaml(self) -> str:
        """Serialize back to a command document (standard layers omitted)."""
        data = self.to_document().model_dump(by_alias=True, exclude_defaults=True)
        ordered = {k: data[k] for k in _DOCUMENT_KEYS if k in data}
        ordered["query"] = self.query
        return yaml.dump(ordered, Dumper=_BlockDumper, sort_keys=False, allow_unicode=True)
