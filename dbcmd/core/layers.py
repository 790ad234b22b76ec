"""
Parameter layers: named groups of parameter definitions attached to a
command (SQL helpers, output, connection, dbt), and the parsed values of
every layer for one invocation.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, model_validator

from dbcmd.core.config import settings
from dbcmd.core.param_type import (
    ParameterDefinition,
    ParameterKind,
    check_unique_names,
    resolve_parameters,
)
from dbcmd.models import ProductTypeEnum

if TYPE_CHECKING:
    from dbcmd.cmds.description import CommandDescription

DEFAULT_SLUG = "default"
SQL_HELPERS_SLUG = "sql-helpers"
OUTPUT_SLUG = "output"
SQL_CONNECTION_SLUG = "sql-connection"
DBT_SLUG = "dbt"

OUTPUT_FORMATS = ["table", "json", "yaml", "csv"]


class ParameterLayer(BaseModel):
    """A named, ordered collection of parameter definitions."""

    slug: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""
    flags: list[ParameterDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_flags(self) -> ParameterLayer:
        check_unique_names(self.flags, f"'{self.slug}' layer flag")
        return self


def new_sql_helpers_layer() -> ParameterLayer:
    return ParameterLayer(
        slug=SQL_HELPERS_SLUG,
        name="SQL helpers",
        flags=[
            ParameterDefinition(
                name="print-query",
                type=ParameterKind.BOOL.value,
                help="Print the rendered query instead of running it",
                default=False,
            ),
        ],
    )


def new_output_layer() -> ParameterLayer:
    return ParameterLayer(
        slug=OUTPUT_SLUG,
        name="Output",
        flags=[
            ParameterDefinition(
                name="output",
                type=ParameterKind.CHOICE.value,
                help="Output format",
                choices=OUTPUT_FORMATS,
                default="table",
            ),
            ParameterDefinition(
                name="fields",
                type=ParameterKind.STRING_LIST.value,
                help="Only output these columns (comma-separated)",
            ),
        ],
    )


def new_sql_connection_layer() -> ParameterLayer:
    """Connection flags; defaults come from ``DBCMD_DB_*`` settings."""
    return ParameterLayer(
        slug=SQL_CONNECTION_SLUG,
        name="SQL connection",
        flags=[
            ParameterDefinition(
                name="db-type",
                type=ParameterKind.CHOICE.value,
                help="Database type",
                choices=[p.value for p in ProductTypeEnum],
                default=settings.DB_TYPE.value,
            ),
            ParameterDefinition(name="host", help="Database host", default=settings.DB_HOST),
            ParameterDefinition(
                name="port",
                type=ParameterKind.INTEGER.value,
                help="Database port",
                default=settings.DB_PORT,
            ),
            ParameterDefinition(
                name="database",
                help="Database name (file path for sqlite)",
                default=settings.DB_DATABASE,
            ),
            ParameterDefinition(name="user", help="Database user", default=settings.DB_USER),
            ParameterDefinition(
                name="password", help="Database password", default=settings.DB_PASSWORD
            ),
            ParameterDefinition(name="schema", help="Database schema", default=settings.DB_SCHEMA),
        ],
    )


def new_dbt_layer() -> ParameterLayer:
    return ParameterLayer(
        slug=DBT_SLUG,
        name="dbt",
        flags=[
            ParameterDefinition(
                name="use-dbt-profiles",
                type=ParameterKind.BOOL.value,
                help="Read connection settings from a dbt profiles.yml",
                default=False,
            ),
            ParameterDefinition(
                name="dbt-profiles-path",
                help="Path to dbt profiles.yml",
                default=settings.DBT_PROFILES_PATH,
            ),
            ParameterDefinition(
                name="dbt-profile",
                help="dbt profile to use (profile or profile.target)",
            ),
        ],
    )


def new_standard_layers() -> list[ParameterLayer]:
    """Layers every SQL command carries, in their fixed order."""
    return [
        new_sql_helpers_layer(),
        new_output_layer(),
        new_sql_connection_layer(),
        new_dbt_layer(),
    ]


class ParsedLayers:
    """Resolved parameter values per layer slug for one invocation."""

    def __init__(self, layers: dict[str, dict[str, Any]] | None = None) -> None:
        self._layers: dict[str, dict[str, Any]] = {
            slug: dict(values) for slug, values in (layers or {}).items()
        }

    def __contains__(self, slug: object) -> bool:
        return slug in self._layers

    def __repr__(self) -> str:
        return f"ParsedLayers({self._layers!r})"

    def slugs(self) -> list[str]:
        return list(self._layers)

    def layer(self, slug: str) -> dict[str, Any]:
        """Copy of one layer's values (empty if the layer was not parsed)."""
        return dict(self._layers.get(slug, {}))

    def get(self, slug: str, name: str, default: Any = None) -> Any:
        value = self._layers.get(slug, {}).get(name)
        return default if value is None else value

    def set_layer(self, slug: str, values: dict[str, Any]) -> None:
        self._layers[slug] = dict(values)

    def merged(self) -> dict[str, Any]:
        """All values in one map; the default layer wins on name clashes."""
        out: dict[str, Any] = {}
        for slug, values in self._layers.items():
            if slug != DEFAULT_SLUG:
                out.update(values)
        out.update(self._layers.get(DEFAULT_SLUG, {}))
        return out


def parse_layers(
    description: CommandDescription,
    raw: dict[str, Any] | None,
    layers: Iterable[ParameterLayer] | None = None,
) -> ParsedLayers:
    """
    Resolve one flat raw value map against a command's default layer
    (flags + arguments) and each of its auxiliary layers.
    """
    _raw = raw or {}
    parsed = ParsedLayers()
    parsed.set_layer(
        DEFAULT_SLUG,
        resolve_parameters([*description.flags, *description.arguments], _raw),
    )
    for layer in description.layers if layers is None else layers:
        parsed.set_layer(layer.slug, resolve_parameters(layer.flags, _raw))
    return parsed
