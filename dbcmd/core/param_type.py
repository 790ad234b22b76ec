"""
Parameter definitions, kinds, and value coercion.

A ParameterDefinition is a typed, documented input slot (flag or argument).
``resolve_parameters`` turns raw values (CLI strings, env values, YAML
defaults) into the runtime shape of each declared kind; templates and
generated parameter records consume the result.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator


class ParamTypeError(ValueError):
    """Raised when a parameter fails type validation or coercion."""

    pass


class ParameterKind(str, Enum):
    STRING = "string"
    STRING_FROM_FILE = "stringFromFile"
    STRING_FROM_FILES = "stringFromFiles"
    STRING_LIST = "stringList"
    STRING_LIST_FROM_FILE = "stringListFromFile"
    STRING_LIST_FROM_FILES = "stringListFromFiles"
    INTEGER = "int"
    INTEGER_LIST = "intList"
    FLOAT = "float"
    FLOAT_LIST = "floatList"
    BOOL = "bool"
    DATE = "date"
    CHOICE = "choice"
    CHOICE_LIST = "choiceList"
    FILE = "file"
    FILE_LIST = "fileList"
    OBJECT_FROM_FILE = "objectFromFile"
    OBJECT_LIST_FROM_FILE = "objectListFromFile"
    OBJECT_LIST_FROM_FILES = "objectListFromFiles"
    KEY_VALUE = "keyValue"

    @classmethod
    def parse(cls, value: Any) -> ParameterKind | None:
        """Return the kind for a document spelling, or None if unrecognized."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        s = value.strip()
        s = _KIND_ALIASES.get(s, s)
        try:
            return cls(s)
        except ValueError:
            return None


_KIND_ALIASES = {
    "integer": "int",
    "integerList": "intList",
    "boolean": "bool",
}

# Kinds whose values are read from disk; defaults are not checked eagerly.
FILE_KINDS = frozenset(
    {
        ParameterKind.STRING_FROM_FILE,
        ParameterKind.STRING_FROM_FILES,
        ParameterKind.STRING_LIST_FROM_FILE,
        ParameterKind.STRING_LIST_FROM_FILES,
        ParameterKind.FILE,
        ParameterKind.FILE_LIST,
        ParameterKind.OBJECT_FROM_FILE,
        ParameterKind.OBJECT_LIST_FROM_FILE,
        ParameterKind.OBJECT_LIST_FROM_FILES,
    }
)

LIST_KINDS = frozenset(
    {
        ParameterKind.STRING_LIST,
        ParameterKind.STRING_LIST_FROM_FILE,
        ParameterKind.STRING_LIST_FROM_FILES,
        ParameterKind.STRING_FROM_FILES,
        ParameterKind.INTEGER_LIST,
        ParameterKind.FLOAT_LIST,
        ParameterKind.CHOICE_LIST,
        ParameterKind.FILE_LIST,
        ParameterKind.OBJECT_LIST_FROM_FILES,
    }
)


@dataclass(frozen=True)
class FileData:
    """Content of a file passed as a ``file`` / ``fileList`` parameter."""

    path: str
    content: str

    @property
    def base_name(self) -> str:
        return Path(self.path).name

    @property
    def extension(self) -> str:
        return Path(self.path).suffix


# ---------------------------------------------------------------------------
# Coercers
# ---------------------------------------------------------------------------


def _coerce_string(value: Any) -> str:
    if value is None:
        raise ParamTypeError("Value is empty")
    return str(value).strip()


def _coerce_float(value: Any) -> float:
    if value is None:
        raise ParamTypeError("Value is empty")
    if isinstance(value, bool):
        raise ParamTypeError("Boolean not allowed for float")
    if isinstance(value, (int, float)):
        return float(value)
    s = str(value).strip()
    if not s:
        raise ParamTypeError("Value is empty")
    try:
        return float(s)
    except ValueError as e:
        raise ParamTypeError(f"Invalid number: {s!r}") from e


def _coerce_integer(value: Any) -> int:
    if value is None:
        raise ParamTypeError("Value is empty")
    if isinstance(value, bool):
        raise ParamTypeError("Boolean not allowed for integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ParamTypeError(f"Expected integer, got float: {value}")
        return int(value)
    s = str(value).strip()
    if not s:
        raise ParamTypeError("Value is empty")
    try:
        x = float(s)
    except ValueError as e:
        raise ParamTypeError(f"Invalid integer: {s!r}") from e
    if not x.is_integer():
        raise ParamTypeError(f"Expected integer, got: {s!r}")
    return int(x)


def _coerce_boolean(value: Any) -> bool:
    if value is None:
        raise ParamTypeError("Value is empty")
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 0:
            return False
        if value == 1:
            return True
        raise ParamTypeError(f"Expected boolean, got integer: {value}")
    s = str(value).strip().lower()
    if s in ("true", "1", "yes"):
        return True
    if s in ("false", "0", "no"):
        return False
    raise ParamTypeError(f"Expected boolean (true/false, 1/0, yes/no), got: {value!r}")


def _coerce_date(value: Any) -> datetime:
    if value is None:
        raise ParamTypeError("Value is empty")
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    s = str(value).strip()
    if not s:
        raise ParamTypeError("Value is empty")
    try:
        return datetime.fromisoformat(s)
    except ValueError as e:
        raise ParamTypeError(f"Invalid date (expected ISO 8601): {s!r}") from e


def _split_list(value: Any) -> list[Any]:
    """Accept a list, a JSON array string, or a comma-separated string."""
    if value is None:
        raise ParamTypeError("Value is empty")
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return []
        if s.startswith("["):
            try:
                out = json.loads(s)
            except json.JSONDecodeError as e:
                raise ParamTypeError(f"Invalid JSON array: {e}") from e
            if not isinstance(out, list):
                raise ParamTypeError("JSON is not an array")
            return out
        return [x.strip() for x in s.split(",") if x.strip()]
    return [value]


def _list_of(item: Callable[[Any], Any]) -> Callable[[Any], list[Any]]:
    def coerce(value: Any) -> list[Any]:
        return [item(v) for v in _split_list(value)]

    return coerce


def _coerce_key_value(value: Any) -> dict[str, str]:
    if value is None:
        raise ParamTypeError("Value is empty")
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items()}
    out: dict[str, str] = {}
    for item in _split_list(value):
        key, sep, val = str(item).partition(":")
        if not sep:
            raise ParamTypeError(f"Expected key:value, got: {item!r}")
        out[key.strip()] = val.strip()
    return out


def _read_text(path: Any) -> str:
    p = Path(str(path)).expanduser()
    try:
        return p.read_text(encoding="utf-8")
    except OSError as e:
        raise ParamTypeError(f"Could not read file {str(path)!r}: {e}") from e


def _coerce_file(value: Any) -> FileData:
    if isinstance(value, FileData):
        return value
    path = _coerce_string(value)
    return FileData(path=path, content=_read_text(path))


def _coerce_string_from_file(value: Any) -> str:
    return _read_text(_coerce_string(value))


def _coerce_string_from_files(value: Any) -> str:
    return "".join(_read_text(p) for p in _split_list(value))


def _coerce_string_list_from_file(value: Any) -> list[str]:
    return [line for line in _read_text(_coerce_string(value)).splitlines() if line.strip()]


def _coerce_string_list_from_files(value: Any) -> list[str]:
    out: list[str] = []
    for p in _split_list(value):
        out.extend(_coerce_string_list_from_file(p))
    return out


def _load_structured(path: Any) -> Any:
    text = _read_text(path)
    try:
        # YAML is a superset of JSON
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ParamTypeError(f"Could not parse {str(path)!r}: {e}") from e


def _coerce_object_from_file(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    out = _load_structured(_coerce_string(value))
    if not isinstance(out, dict):
        raise ParamTypeError(f"File {value!r} does not contain an object")
    return out


def _coerce_object_list_from_file(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, list) and all(isinstance(v, dict) for v in value):
        return value
    out = _load_structured(_coerce_string(value))
    if isinstance(out, dict):
        return [out]
    if not isinstance(out, list) or not all(isinstance(v, dict) for v in out):
        raise ParamTypeError(f"File {value!r} does not contain a list of objects")
    return out


def _coerce_object_list_from_files(value: Any) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for p in _split_list(value):
        out.extend(_coerce_object_list_from_file(p))
    return out


_COERCERS: dict[ParameterKind, Callable[[Any], Any]] = {
    ParameterKind.STRING: _coerce_string,
    ParameterKind.STRING_FROM_FILE: _coerce_string_from_file,
    ParameterKind.STRING_FROM_FILES: _coerce_string_from_files,
    ParameterKind.STRING_LIST: _list_of(_coerce_string),
    ParameterKind.STRING_LIST_FROM_FILE: _coerce_string_list_from_file,
    ParameterKind.STRING_LIST_FROM_FILES: _coerce_string_list_from_files,
    ParameterKind.INTEGER: _coerce_integer,
    ParameterKind.INTEGER_LIST: _list_of(_coerce_integer),
    ParameterKind.FLOAT: _coerce_float,
    ParameterKind.FLOAT_LIST: _list_of(_coerce_float),
    ParameterKind.BOOL: _coerce_boolean,
    ParameterKind.DATE: _coerce_date,
    ParameterKind.CHOICE: _coerce_string,
    ParameterKind.CHOICE_LIST: _list_of(_coerce_string),
    ParameterKind.FILE: _coerce_file,
    ParameterKind.FILE_LIST: _list_of(_coerce_file),
    ParameterKind.OBJECT_FROM_FILE: _coerce_object_from_file,
    ParameterKind.OBJECT_LIST_FROM_FILE: _coerce_object_list_from_file,
    ParameterKind.OBJECT_LIST_FROM_FILES: _coerce_object_list_from_files,
    ParameterKind.KEY_VALUE: _coerce_key_value,
}


def coerce_value(
    kind: ParameterKind | str,
    value: Any,
    *,
    choices: Iterable[str] | None = None,
) -> Any:
    """
    Coerce *value* to the runtime shape of *kind*.

    Unrecognized kinds pass the value through unchanged. Raises
    ParamTypeError when the value does not fit.
    """
    k = ParameterKind.parse(kind)
    if k is None:
        return value
    out = _COERCERS[k](value)
    if choices is not None and k in (ParameterKind.CHOICE, ParameterKind.CHOICE_LIST):
        allowed = list(choices)
        for v in out if isinstance(out, list) else [out]:
            if v not in allowed:
                raise ParamTypeError(f"Invalid choice {v!r} (expected one of {allowed})")
    return out


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


class ParameterDefinition(BaseModel):
    """One flag or argument of a command (or of an auxiliary layer)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    type: str = Field(default=ParameterKind.STRING.value)
    help: str = ""
    default: Any = None
    choices: list[str] | None = None
    required: bool = False
    short_flag: str | None = Field(
        default=None, alias="shortFlag", min_length=1, max_length=1
    )

    @property
    def kind(self) -> ParameterKind | None:
        return ParameterKind.parse(self.type)

    @model_validator(mode="after")
    def check_default(self) -> ParameterDefinition:
        kind = self.kind
        if self.default is None or kind is None or kind in FILE_KINDS:
            return self
        try:
            coerce_value(kind, self.default, choices=self.choices)
        except ParamTypeError as e:
            raise ValueError(
                f"default of parameter '{self.name}' does not match type {self.type}: {e}"
            ) from e
        return self


def check_unique_names(definitions: Iterable[ParameterDefinition], what: str = "parameter") -> None:
    """Raise ValueError if two definitions share a name."""
    seen: set[str] = set()
    dupes: list[str] = []
    for d in definitions:
        if d.name in seen and d.name not in dupes:
            dupes.append(d.name)
        seen.add(d.name)
    if dupes:
        raise ValueError(f"duplicate {what} name(s): {', '.join(dupes)}")


def resolve_parameters(
    definitions: Iterable[ParameterDefinition],
    raw: dict[str, Any] | None,
) -> dict[str, Any]:
    """
    Resolve raw values for *definitions* into a value map.

    - Missing or empty values fall back to the coerced default, or None.
    - A required parameter with neither value nor default is an error.
    - Every declared name is present in the result; undeclared raw keys are
      dropped.

    Raises ParamTypeError on the first failure.
    """
    _raw = raw or {}
    out: dict[str, Any] = {}
    for d in definitions:
        value = _raw.get(d.name)
        if value is None or value == "":
            if d.default is not None:
                try:
                    out[d.name] = coerce_value(d.type, d.default, choices=d.choices)
                except ParamTypeError as e:
                    raise ParamTypeError(f"Parameter '{d.name}' default invalid: {e}") from e
            elif d.required:
                raise ParamTypeError(f"Parameter '{d.name}' is required")
            else:
                out[d.name] = None
            continue
        try:
            out[d.name] = coerce_value(d.type, value, choices=d.choices)
        except ParamTypeError as e:
            raise ParamTypeError(f"Parameter '{d.name}' {e}") from e
    return out
