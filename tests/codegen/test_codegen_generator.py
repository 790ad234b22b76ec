"""Unit tests for codegen.generator: type table, literals and generated modules."""

import datetime as dt
import importlib.util
import sqlite3
import sys
from datetime import date, datetime

import pytest

from dbcmd.cmds import CommandDescription, ExitWithoutOutput, LoadError, SqlCommand
from dbcmd.codegen import CodegenError, generate_file, kind_to_python_type, to_python_code
from dbcmd.codegen.generator import output_path_for, python_string_literal, python_value_literal
from dbcmd.core.db import DatabaseConnectionError, connect
from dbcmd.core.output import CollectingSink
from dbcmd.core.param_type import ParameterDefinition, ParameterKind
from dbcmd.models import ConnectionSettings, ProductTypeEnum

LS_JOBS_YAML = """\
name: ls-jobs
short: List jobs
long: |
  List jobs, optionally filtered by status.
  Uses the jobs table.
flags:
  - name: status
    type: choice
    choices: [done, failed]
    help: Filter by status
  - name: from
    type: date
  - name: limit
    type: int
    default: 10
    shortFlag: l
subqueries:
  ids: SELECT id FROM jobs
query: |
  SELECT id, name FROM jobs
  WHERE id IN ({{ subquery("ids") }})
  {% if status %}AND status = {{ status }}{% endif %}
  ORDER BY id
  {% if limit %}LIMIT {{ limit }}{% endif %}
"""


def _ls_jobs() -> SqlCommand:
    description = CommandDescription(
        name="ls-jobs",
        short="List jobs",
        long="List jobs, optionally filtered by status.\nUses the jobs table.\n",
        flags=[
            ParameterDefinition(name="status", type="choice", choices=["done", "failed"], help="Filter by status"),
            ParameterDefinition(name="from", type="date"),
            ParameterDefinition(name="limit", type="int", default=10, short_flag="l"),
        ],
    )
    query = (
        "SELECT id, name FROM jobs\n"
        'WHERE id IN ({{ subquery("ids") }})\n'
        "{% if status %}AND status = {{ status }}{% endif %}\n"
        "ORDER BY id\n"
        "{% if limit %}LIMIT {{ limit }}{% endif %}\n"
    )
    return SqlCommand(description, query=query, sub_queries={"ids": "SELECT id FROM jobs"})


def _load_module(code: str, tmp_path, monkeypatch, name: str = "generated_ls_jobs"):
    path = tmp_path / f"{name}.py"
    path.write_text(code)
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec)
    monkeypatch.setitem(sys.modules, name, module)
    spec.loader.exec_module(module)
    return module


def _jobs_db(tmp_path) -> str:
    path = str(tmp_path / "jobs.db")
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE jobs (id INTEGER PRIMARY KEY, name TEXT, status TEXT)")
    conn.executemany(
        "INSERT INTO jobs VALUES (?, ?, ?)",
        [(1, "build", "done"), (2, "test", "failed"), (3, "deploy", "done")],
    )
    conn.commit()
    conn.close()
    return path


class TestTypeTable:
    def test_every_kind_has_a_type(self):
        for kind in ParameterKind:
            assert kind_to_python_type(kind) != "Any", kind

    def test_examples(self):
        assert kind_to_python_type("int") == "int"
        assert kind_to_python_type("integerList") == "list[int]"
        assert kind_to_python_type("date") == "datetime.datetime"
        assert kind_to_python_type("keyValue") == "dict[str, str]"
        assert kind_to_python_type("fileList") == "list[FileData]"

    def test_unknown_falls_back(self):
        assert kind_to_python_type("geometry") == "Any"
        assert kind_to_python_type(None) == "Any"


class TestLiterals:
    @pytest.mark.parametrize(
        "value",
        [
            "SELECT 1",
            "SELECT *\nFROM t\nWHERE a = 'x'\n",
            'say "hi"\nnow',
            "tab\there\nand \\ backslash",
            'ends with quote\n"',
            'has """ inside\nok',
        ],
    )
    def test_string_round_trip(self, value):
        assert eval(python_string_literal(value)) == value

    def test_multi_line_uses_raw_block(self):
        assert python_string_literal("a\nb") == 'r"""a\nb"""'
        assert python_string_literal("a") == "'a'"

    @pytest.mark.parametrize(
        "value",
        [None, True, 3, 2.5, "x", [1, "a"], {"k": [1, 2]}, date(2024, 1, 2), datetime(2024, 1, 2, 3, 4)],
    )
    def test_value_round_trip(self, value):
        assert eval(python_value_literal(value), {"datetime": dt}) == value

    def test_rejects_unrepresentable(self):
        with pytest.raises(CodegenError, match="cannot express"):
            python_value_literal(float("nan"))
        with pytest.raises(CodegenError, match="cannot express set"):
            python_value_literal({1, 2})
        with pytest.raises(CodegenError, match="keys must be strings"):
            python_value_literal({1: "a"})


class TestGenerate:
    def test_names_and_header(self):
        code = to_python_code(_ls_jobs(), "jobs")
        assert code.startswith("# Code generated by dbcmd codegen for package jobs. DO NOT EDIT.\n")
        assert "LS_JOBS_COMMAND_QUERY = " in code
        assert "LS_JOBS_COMMAND_SUB_QUERY_IDS = 'SELECT id FROM jobs'" in code
        assert "class LsJobsCommandParameters:" in code
        assert "class LsJobsCommand:" in code
        assert "def new_ls_jobs_command(db: DatabaseHandle | None = None) -> LsJobsCommand:" in code
        assert "    from_: datetime.datetime | None = None" in code
        assert "    limit: int | None = None" in code

    def test_deterministic(self):
        assert to_python_code(_ls_jobs()) == to_python_code(_ls_jobs())

    def test_compiles(self):
        compile(to_python_code(_ls_jobs()), "<generated>", "exec")

    def test_invalid_command(self):
        cmd = SqlCommand(CommandDescription(name="x"), query="SELECT 1")
        with pytest.raises(CodegenError, match="invalid command"):
            to_python_code(cmd)

    def test_field_collision(self):
        description = CommandDescription(
            name="x",
            short="x",
            flags=[ParameterDefinition(name="order-by"), ParameterDefinition(name="order_by")],
        )
        with pytest.raises(CodegenError, match="both map to field order_by"):
            to_python_code(SqlCommand(description, query="SELECT 1"))

    def test_reserved_field_renamed(self):
        description = CommandDescription(
            name="x", short="x", flags=[ParameterDefinition(name="to-dict")]
        )
        code = to_python_code(SqlCommand(description, query="SELECT 1"))
        assert "    to_dict_: str | None = None" in code

    def test_unknown_kind_default_rejected(self):
        description = CommandDescription(
            name="x",
            short="x",
            flags=[ParameterDefinition(name="area", type="geometry", default={1, 2})],
        )
        with pytest.raises(CodegenError, match="default of parameter 'area'"):
            to_python_code(SqlCommand(description, query="SELECT 1"))

    def test_unknown_kind_is_any(self):
        description = CommandDescription(
            name="x", short="x", flags=[ParameterDefinition(name="area", type="geometry")]
        )
        code = to_python_code(SqlCommand(description, query="SELECT 1"))
        assert "    area: Any = None" in code


class TestGeneratedModule:
    def test_runs_against_sqlite(self, tmp_path, monkeypatch):
        module = _load_module(to_python_code(_ls_jobs()), tmp_path, monkeypatch)
        db = connect(ConnectionSettings(product_type=ProductTypeEnum.SQLITE, database=_jobs_db(tmp_path)))
        with db:
            cmd = module.new_ls_jobs_command(db)
            params = module.LsJobsCommandParameters(status="done", limit=1)
            sink = CollectingSink()
            assert cmd.run_query_into_sink(params, sink) == 1
        assert sink.rows == [{"id": 1, "name": "build"}]

    def test_same_query_as_source_command(self, tmp_path, monkeypatch):
        original = _ls_jobs()
        module = _load_module(to_python_code(original), tmp_path, monkeypatch)
        cmd = module.new_ls_jobs_command()
        params = module.LsJobsCommandParameters(status="failed", limit=5)
        assert cmd.render_query(params) == original.render_query(None, {"status": "failed", "limit": 5})
        assert cmd.description.flags == original.description.flags
        assert cmd.description.long == original.description.long

    def test_run_with_parsed_layers(self, tmp_path, monkeypatch):
        original = _ls_jobs()
        module = _load_module(to_python_code(original), tmp_path, monkeypatch)
        db = connect(ConnectionSettings(product_type=ProductTypeEnum.SQLITE, database=_jobs_db(tmp_path)))
        with db:
            sink = CollectingSink()
            n = module.new_ls_jobs_command(db).run(original.parse_layers({"status": "done"}), sink)
        assert n == 2

    def test_print_query(self, tmp_path, monkeypatch, capsys):
        original = _ls_jobs()
        module = _load_module(to_python_code(original), tmp_path, monkeypatch)
        db = connect(ConnectionSettings(product_type=ProductTypeEnum.SQLITE, database=_jobs_db(tmp_path)))
        with db:
            with pytest.raises(ExitWithoutOutput) as exc:
                module.new_ls_jobs_command(db).run(
                    original.parse_layers({"print-query": True}), CollectingSink()
                )
        assert capsys.readouterr().out == exc.value.query + "\n"
        assert exc.value.query.endswith("LIMIT 10")

    def test_run_without_db(self, tmp_path, monkeypatch):
        original = _ls_jobs()
        module = _load_module(to_python_code(original), tmp_path, monkeypatch)
        with pytest.raises(DatabaseConnectionError, match="db is not set"):
            module.new_ls_jobs_command().run(original.parse_layers({}), CollectingSink())

    def test_parameters_round_trip(self, tmp_path, monkeypatch):
        module = _load_module(to_python_code(_ls_jobs()), tmp_path, monkeypatch)
        values = {"status": "done", "from": None, "limit": 3}
        assert module.LsJobsCommandParameters.from_values(values).to_dict() == values


class TestGenerateFile:
    def test_writes_module(self, tmp_path):
        src = tmp_path / "ls-jobs.yaml"
        src.write_text(LS_JOBS_YAML)
        out_dir = tmp_path / "out"
        target = generate_file(src, "jobs", out_dir)
        assert target == out_dir / "ls_jobs.py"
        assert "class LsJobsCommand:" in target.read_text()
        assert [p.name for p in out_dir.iterdir()] == ["ls_jobs.py"]

    def test_output_file(self, tmp_path):
        src = tmp_path / "ls-jobs.yaml"
        src.write_text(LS_JOBS_YAML)
        target = generate_file(src, output_file=tmp_path / "gen" / "jobs_cmd.py")
        assert target.name == "jobs_cmd.py"
        assert target.exists()

    def test_multiple_commands_rejected(self, tmp_path):
        src = tmp_path / "two.yaml"
        src.write_text(LS_JOBS_YAML + "---\nname: b\nshort: b\nquery: SELECT 1\n")
        out_dir = tmp_path / "out"
        with pytest.raises(CodegenError, match="expected exactly one command, got 2"):
            generate_file(src, output_dir=out_dir)
        assert not out_dir.exists()

    def test_output_path_for(self):
        assert str(output_path_for("queries/ls-jobs.yaml", "gen")).replace("\\", "/") == "gen/ls_jobs.py"

    def test_relative_output_file_goes_under_output_dir(self, tmp_path):
        src = tmp_path / "ls-jobs.yaml"
        src.write_text(LS_JOBS_YAML)
        out_dir = tmp_path / "out"
        target = generate_file(src, output_dir=out_dir, output_file="jobs_cmd.py")
        assert target == out_dir / "jobs_cmd.py"
        assert [p.name for p in out_dir.iterdir()] == ["jobs_cmd.py"]

    def test_write_failure_leaves_nothing_behind(self, tmp_path, monkeypatch):
        src = tmp_path / "ls-jobs.yaml"
        src.write_text(LS_JOBS_YAML)
        out_dir = tmp_path / "out"

        def fail_replace(src_path, dst_path):
            raise OSError("disk full")

        monkeypatch.setattr("dbcmd.codegen.generator.os.replace", fail_replace)
        with pytest.raises(CodegenError, match="could not write .*disk full"):
            generate_file(src, "jobs", out_dir)
        assert not (out_dir / "ls_jobs.py").exists()
        assert list(out_dir.iterdir()) == []

    def test_undecodable_input(self, tmp_path):
        src = tmp_path / "ls-jobs.yaml"
        src.write_bytes(b"name: ls-jobs\nshort: \xff\n")
        with pytest.raises(LoadError, match="could not read"):
            generate_file(src, output_dir=tmp_path / "out")
        assert not (tmp_path / "out").exists()
