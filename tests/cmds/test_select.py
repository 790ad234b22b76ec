"""Unit tests for cmds.select: ad-hoc SELECT building and --create-query."""

import pytest
import yaml

from dbcmd.cmds import SelectOptions, build_select_query, create_select_command


class TestBuildSelectQuery:
    def test_defaults(self):
        assert build_select_query(SelectOptions(table="jobs")) == "SELECT * FROM jobs LIMIT 50"

    def test_all_clauses(self):
        opts = SelectOptions(
            table="jobs",
            columns=["id", "name"],
            where="status = 'done'",
            order_by="id DESC",
            limit=5,
            offset=10,
        )
        assert build_select_query(opts) == (
            "SELECT id, name FROM jobs WHERE status = 'done' ORDER BY id DESC LIMIT 5 OFFSET 10"
        )

    def test_count_drops_limit_and_columns(self):
        opts = SelectOptions(table="jobs", columns=["id"], count=True)
        assert build_select_query(opts) == "SELECT COUNT(*) AS count FROM jobs"

    def test_zero_limit(self):
        assert build_select_query(SelectOptions(table="jobs", limit=0)) == "SELECT * FROM jobs"

    def test_table_required(self):
        with pytest.raises(ValueError, match="table is required"):
            build_select_query(SelectOptions(table=""))


class TestCreateSelectCommand:
    def test_where_becomes_flag(self):
        cmd = create_select_command("ls-jobs", SelectOptions(table="jobs"))
        assert [f.name for f in cmd.description.flags] == ["where", "limit", "offset", "order_by"]
        assert cmd.description.short == "Select columns from jobs"
        assert cmd.render_query(None, {"limit": 50, "offset": 0}) == "SELECT * FROM jobs\nLIMIT 50"

    def test_flags_render(self):
        cmd = create_select_command("ls-jobs", SelectOptions(table="jobs", order_by="id"))
        parsed = cmd.parse_layers({"where": "status = 'done'", "offset": "5"})
        assert cmd.render_query(None, parsed.merged()) == (
            "SELECT * FROM jobs\nWHERE status = 'done'\nORDER BY id\nLIMIT 50\nOFFSET 5"
        )

    def test_baked_where(self):
        cmd = create_select_command("done-jobs", SelectOptions(table="jobs", where="status = 'done'"))
        assert "where" not in [f.name for f in cmd.description.flags]
        assert cmd.description.short == "Select from jobs where status = 'done'"
        assert cmd.render_query(None, {"limit": 0}).splitlines() == [
            "SELECT * FROM jobs",
            "WHERE status = 'done'",
        ]

    def test_count(self):
        cmd = create_select_command("count-jobs", SelectOptions(table="jobs", count=True))
        assert cmd.description.short == "Count all rows from jobs"
        assert cmd.query.startswith("SELECT COUNT(*) AS count FROM jobs")

    def test_yaml_document(self):
        cmd = create_select_command("ls-jobs", SelectOptions(table="jobs", limit=20))
        assert cmd.is_valid()
        doc = yaml.safe_load(cmd.to_yaml())
        assert doc["name"] == "ls-jobs"
        limit = next(f for f in doc["flags"] if f["name"] == "limit")
        assert limit["default"] == 20
        assert "{% if where %}" in doc["query"]
