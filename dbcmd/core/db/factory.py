"""
Default connection factory: parsed layer values -> open DatabaseHandle.
"""

from pydantic import ValidationError

from dbcmd.core.db.connection import DatabaseConnectionError, DatabaseHandle, connect
from dbcmd.core.db.dbt import load_dbt_profile
from dbcmd.core.layers import DBT_SLUG, SQL_CONNECTION_SLUG, ParsedLayers
from dbcmd.models import ConnectionSettings


def connection_settings_from_layers(parsed_layers: ParsedLayers) -> ConnectionSettings:
    """Build ConnectionSettings from the dbt layer (if enabled) or the sql-connection layer."""
    if parsed_layers.get(DBT_SLUG, "use-dbt-profiles", False):
        return load_dbt_profile(
            parsed_layers.get(DBT_SLUG, "dbt-profiles-path"),
            parsed_layers.get(DBT_SLUG, "dbt-profile"),
        )

    values = parsed_layers.layer(SQL_CONNECTION_SLUG)
    try:
        return ConnectionSettings(
            product_type=values.get("db-type"),
            host=values.get("host"),
            port=values.get("port"),
            database=values.get("database"),
            username=values.get("user"),
            password=values.get("password"),
            schema_name=values.get("schema"),
        )
    except ValidationError as e:
        raise DatabaseConnectionError(f"invalid connection settings: {e}") from e


def connection_factory_from_layers(parsed_layers: ParsedLayers) -> DatabaseHandle:
    return connect(connection_settings_from_layers(parsed_layers))
