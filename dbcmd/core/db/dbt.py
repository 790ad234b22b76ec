"""
Read connection settings from a dbt ``profiles.yml``.

Profiles are addressed as ``profile`` (uses the profile's ``target``) or
``profile.target``.
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from dbcmd.core.db.connection import DatabaseConnectionError
from dbcmd.models import ConnectionSettings, ProductTypeEnum

_log = logging.getLogger(__name__)

_DBT_TYPES = {
    "postgres": ProductTypeEnum.POSTGRES,
    "redshift": ProductTypeEnum.POSTGRES,
    "mysql": ProductTypeEnum.MYSQL,
    "trino": ProductTypeEnum.TRINO,
    "sqlite": ProductTypeEnum.SQLITE,
}


def _load_profiles(path: str) -> dict[str, Any]:
    p = Path(path).expanduser()
    try:
        with p.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as e:
        raise DatabaseConnectionError(f"could not read dbt profiles {str(p)!r}: {e}") from e
    except yaml.YAMLError as e:
        raise DatabaseConnectionError(f"could not parse dbt profiles {str(p)!r}: {e}") from e
    if not isinstance(data, dict):
        raise DatabaseConnectionError(f"dbt profiles {str(p)!r} must be a mapping")
    # "config" holds global dbt settings, not a profile
    return {k: v for k, v in data.items() if k != "config" and isinstance(v, dict)}


def load_dbt_profile(path: str, profile: str | None = None) -> ConnectionSettings:
    profiles = _load_profiles(path)
    if not profile:
        if len(profiles) != 1:
            raise DatabaseConnectionError(
                f"dbt-profile is required when {path!r} holds {len(profiles)} profiles"
            )
        profile = next(iter(profiles))

    name, _, target = profile.partition(".")
    prof = profiles.get(name)
    if prof is None:
        raise DatabaseConnectionError(f"dbt profile {name!r} not found in {path!r}")
    outputs = prof.get("outputs") or {}
    target = target or prof.get("target") or next(iter(outputs), "")
    out = outputs.get(target)
    if not isinstance(out, dict):
        raise DatabaseConnectionError(f"dbt target {target!r} not found in profile {name!r}")

    dbt_type = str(out.get("type", "")).lower()
    product_type = _DBT_TYPES.get(dbt_type)
    if product_type is None:
        raise DatabaseConnectionError(f"unsupported dbt adapter type {dbt_type!r}")

    _log.debug("using dbt profile %s.%s (%s)", name, target, dbt_type)
    try:
        return ConnectionSettings(
            product_type=product_type,
            host=out.get("host"),
            port=out.get("port"),
            database=out.get("dbname") or out.get("database") or out.get("path"),
            username=out.get("user") or out.get("username"),
            password=out.get("password") or out.get("pass"),
            schema_name=out.get("schema"),
        )
    except ValidationError as e:
        raise DatabaseConnectionError(f"invalid dbt target {name}.{target}: {e}") from e
