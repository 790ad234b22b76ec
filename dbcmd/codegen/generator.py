"""
Lower a SqlCommand to a Python module implementing the same render and run
contract, statically bound to the command's parameters.

Output is a pure function of the command and the package name. Modules are
written atomically: a failed write never leaves a truncated target file.
"""

import logging
import math
import os
import tempfile
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined, Template, TemplateError

from dbcmd.cmds.loader import SqlCommandLoader
from dbcmd.cmds.sql_command import SqlCommand
from dbcmd.codegen.naming import to_identifier, to_pascal, to_screaming_snake, to_snake
from dbcmd.codegen.templates import MODULE_TEMPLATE
from dbcmd.core.param_type import ParameterDefinition, ParameterKind

_log = logging.getLogger(__name__)

DEFAULT_PACKAGE_NAME = "main"

_PYTHON_TYPES: dict[ParameterKind, str] = {
    ParameterKind.FLOAT: "float",
    ParameterKind.FLOAT_LIST: "list[float]",
    ParameterKind.INTEGER: "int",
    ParameterKind.INTEGER_LIST: "list[int]",
    ParameterKind.BOOL: "bool",
    ParameterKind.DATE: "datetime.datetime",
    ParameterKind.STRING: "str",
    ParameterKind.STRING_FROM_FILE: "str",
    ParameterKind.STRING_FROM_FILES: "str",
    ParameterKind.CHOICE: "str",
    ParameterKind.STRING_LIST: "list[str]",
    ParameterKind.STRING_LIST_FROM_FILE: "list[str]",
    ParameterKind.STRING_LIST_FROM_FILES: "list[str]",
    ParameterKind.CHOICE_LIST: "list[str]",
    ParameterKind.KEY_VALUE: "dict[str, str]",
    ParameterKind.OBJECT_FROM_FILE: "dict[str, Any]",
    ParameterKind.OBJECT_LIST_FROM_FILE: "list[dict[str, Any]]",
    ParameterKind.OBJECT_LIST_FROM_FILES: "list[dict[str, Any]]",
    ParameterKind.FILE: "FileData",
    ParameterKind.FILE_LIST: "list[FileData]",
}

FALLBACK_TYPE = "Any"

# Methods of the generated parameter class; fields must not shadow them.
_RESERVED_FIELDS = frozenset({"from_values", "to_dict"})

_template: Template | None = None
_template_lock = threading.Lock()


class CodegenError(ValueError):
    """Raised when a command cannot be lowered to Python or the module cannot be written."""

    pass


def kind_to_python_type(kind: ParameterKind | str | None) -> str:
    """Python annotation for a parameter kind; ``Any`` for unrecognized kinds."""
    k = ParameterKind.parse(kind)
    if k is None:
        return FALLBACK_TYPE
    return _PYTHON_TYPES.get(k, FALLBACK_TYPE)


def python_string_literal(value: str) -> str:
    """
    Source literal for *value*: a raw triple-quoted string when it spans
    several lines and can be written raw, ``repr()`` otherwise.
    """
    if (
        "\n" in value
        and '"""' not in value
        and "\\" not in value
        and not value.endswith('"')
        and all(c.isprintable() or c in "\n\t" for c in value)
    ):
        return f'r"""{value}"""'
    return repr(value)


def python_value_literal(value: Any, where: str = "default") -> str:
    """Source literal for a parameter default; rejects values without a faithful literal."""
    if isinstance(value, float) and not math.isfinite(value):
        raise CodegenError(f"{where}: cannot express {value!r} as a Python literal")
    if value is None or isinstance(value, (bool, int, float)):
        return repr(value)
    if isinstance(value, str):
        return python_string_literal(value)
    if isinstance(value, (datetime, date)):
        # repr is datetime.datetime(...) / datetime.date(...), resolved by ``import datetime``
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(python_value_literal(v, where) for v in value) + "]"
    if isinstance(value, dict):
        items = []
        for k, v in value.items():
            if not isinstance(k, str):
                raise CodegenError(f"{where}: mapping keys must be strings, got {k!r}")
            items.append(f"{k!r}: {python_value_literal(v, where)}")
        return "{" + ", ".join(items) + "}"
    raise CodegenError(f"{where}: cannot express {type(value).__name__} value {value!r} in Python")


def _get_template() -> Template:
    global _template
    with _template_lock:
        if _template is None:
            env = Environment(
                autoescape=False,
                undefined=StrictUndefined,
                keep_trailing_newline=True,
                trim_blocks=True,
                lstrip_blocks=True,
            )
            _template = env.from_string(MODULE_TEMPLATE)
        return _template


class SqlCommandCodeGenerator:
    def __init__(self, package_name: str = DEFAULT_PACKAGE_NAME) -> None:
        self.package_name = package_name

    def generate(self, cmd: SqlCommand) -> str:
        """Python source for *cmd*. Raises CodegenError."""
        if not cmd.is_valid():
            raise CodegenError(f"cannot generate code for invalid command {cmd.name!r}")
        context = self._context(cmd)
        try:
            return _get_template().render(context)
        except TemplateError as e:
            raise CodegenError(f"could not render module for {cmd.name!r}: {e}") from e

    def _context(self, cmd: SqlCommand) -> dict[str, Any]:
        d = cmd.description
        pascal = to_pascal(d.name)
        snake = to_snake(d.name)
        screaming = to_screaming_snake(d.name)
        if not pascal.isidentifier() or not snake.isidentifier():
            raise CodegenError(f"command name {d.name!r} does not yield a Python identifier")

        query_const = f"{screaming}_COMMAND_QUERY"
        sub_queries = []
        consts: dict[str, str] = {}
        for name, text in cmd.sub_queries.items():
            suffix = to_screaming_snake(name)
            if not suffix:
                raise CodegenError(f"sub-query name {name!r} does not yield a Python identifier")
            const = f"{screaming}_COMMAND_SUB_QUERY_{suffix}"
            if const in consts:
                raise CodegenError(
                    f"sub-queries {consts[const]!r} and {name!r} both map to {const}"
                )
            consts[const] = name
            sub_queries.append(
                {
                    "const": const,
                    "name_literal": repr(name),
                    "literal": python_string_literal(text),
                }
            )

        return {
            "package_name": " ".join(self.package_name.split()),
            "command_name": " ".join(d.name.split()),
            "query_const": query_const,
            "query_literal": python_string_literal(cmd.query),
            "sub_queries": sub_queries,
            "params_class": f"{pascal}CommandParameters",
            "command_class": f"{pascal}Command",
            "constructor": f"new_{snake}_command",
            "fields": self._fields([*d.flags, *d.arguments]),
            "parameter_groups": [
                ("flags", [self._definition_args(p) for p in d.flags]),
                ("arguments", [self._definition_args(p) for p in d.arguments]),
            ],
            "name_literal": repr(d.name),
            "short_literal": python_string_literal(d.short),
            "long_literal": python_string_literal(d.long),
        }

    @staticmethod
    def _fields(definitions: list[ParameterDefinition]) -> list[dict[str, str]]:
        fields = []
        seen: dict[str, str] = {}
        for p in definitions:
            attr = to_identifier(p.name, _RESERVED_FIELDS)
            if not attr:
                raise CodegenError(f"parameter name {p.name!r} does not yield a Python identifier")
            if attr in seen:
                raise CodegenError(f"parameters {seen[attr]!r} and {p.name!r} both map to field {attr}")
            seen[attr] = p.name
            py_type = kind_to_python_type(p.type)
            fields.append(
                {
                    "attr": attr,
                    "annotation": py_type if py_type == FALLBACK_TYPE else f"{py_type} | None",
                    "name_literal": repr(p.name),
                }
            )
        return fields

    @staticmethod
    def _definition_args(p: ParameterDefinition) -> list[tuple[str, str]]:
        """Keyword arguments rebuilding *p*, in a fixed order."""
        where = f"default of parameter {p.name!r}"
        args = [("name", repr(p.name)), ("type", repr(p.type))]
        if p.help:
            args.append(("help", python_string_literal(p.help)))
        if p.default is not None:
            args.append(("default", python_value_literal(p.default, where)))
        if p.choices is not None:
            args.append(("choices", python_value_literal(p.choices, where)))
        if p.required:
            args.append(("required", "True"))
        if p.short_flag:
            args.append(("short_flag", repr(p.short_flag)))
        return args


def to_python_code(cmd: SqlCommand, package_name: str = DEFAULT_PACKAGE_NAME) -> str:
    return SqlCommandCodeGenerator(package_name).generate(cmd)


def output_path_for(path: str | Path, output_dir: str | Path = ".") -> Path:
    """``queries/ls-jobs.yaml`` -> ``<output_dir>/ls_jobs.py``."""
    return Path(output_dir) / (Path(path).stem.replace("-", "_") + ".py")


def _write_atomic(target: Path, content: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp, target)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def generate_file(
    path: str | Path,
    package_name: str = DEFAULT_PACKAGE_NAME,
    output_dir: str | Path = ".",
    output_file: str | Path | None = None,
) -> Path:
    """
    Generate the module for the single command in *path* and return where it
    was written (``output_dir/<output_file>``, or ``output_dir/<stem>.py``).
    An absolute *output_file* ignores *output_dir*.
    """
    commands = SqlCommandLoader().load_commands_from_file(path)
    if len(commands) != 1:
        raise CodegenError(f"expected exactly one command, got {len(commands)}")

    code = to_python_code(commands[0], package_name)
    # a relative output_file is placed under output_dir
    target = Path(output_dir) / output_file if output_file else output_path_for(path, output_dir)
    try:
        _write_atomic(target, code)
    except OSError as e:
        raise CodegenError(f"could not write {str(target)!r}: {e}") from e
    _log.info("generated %s from %s", target, path)
    return target
