"""Unit tests for core.db.dbt profile loading."""

import pytest

from dbcmd.core.db import DatabaseConnectionError
from dbcmd.core.db.dbt import load_dbt_profile
from dbcmd.models import ProductTypeEnum

PROFILES = """\
config:
  send_anonymous_usage_stats: false
warehouse:
  target: dev
  outputs:
    dev:
      type: postgres
      host: localhost
      port: 5433
      user: analyst
      pass: secret
      dbname: wh
      schema: staging
    prod:
      type: redshift
      host: prod.example.com
      user: etl
      password: pw
      dbname: wh
"""


def _write(tmp_path, text: str = PROFILES) -> str:
    p = tmp_path / "profiles.yml"
    p.write_text(text)
    return str(p)


def test_default_target(tmp_path) -> None:
    cs = load_dbt_profile(_write(tmp_path), "warehouse")
    assert cs.product_type == ProductTypeEnum.POSTGRES
    assert cs.port == 5433
    assert cs.username == "analyst"
    assert cs.password == "secret"
    assert cs.database == "wh"
    assert cs.schema_name == "staging"


def test_explicit_target(tmp_path) -> None:
    cs = load_dbt_profile(_write(tmp_path), "warehouse.prod")
    assert cs.host == "prod.example.com"
    assert cs.password == "pw"


def test_single_profile_needs_no_name(tmp_path) -> None:
    # "config" is not a profile
    cs = load_dbt_profile(_write(tmp_path))
    assert cs.database == "wh"


def test_unknown_profile(tmp_path) -> None:
    with pytest.raises(DatabaseConnectionError, match="not found"):
        load_dbt_profile(_write(tmp_path), "nope")


def test_unknown_target(tmp_path) -> None:
    with pytest.raises(DatabaseConnectionError, match="target 'qa' not found"):
        load_dbt_profile(_write(tmp_path), "warehouse.qa")


def test_unsupported_adapter(tmp_path) -> None:
    text = "p:\n  target: t\n  outputs:\n    t:\n      type: bigquery\n"
    with pytest.raises(DatabaseConnectionError, match="unsupported dbt adapter"):
        load_dbt_profile(_write(tmp_path, text), "p")


def test_missing_file(tmp_path) -> None:
    with pytest.raises(DatabaseConnectionError, match="could not read dbt profiles"):
        load_dbt_profile(str(tmp_path / "missing.yml"), "p")


def test_malformed_yaml(tmp_path) -> None:
    with pytest.raises(DatabaseConnectionError, match="could not parse"):
        load_dbt_profile(_write(tmp_path, "a: [1, 2"), "a")
