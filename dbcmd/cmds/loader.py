"""
Load SqlCommands from YAML documents, files and directory trees.
"""

import logging
from pathlib import Path
from typing import IO

import yaml
from pydantic import ValidationError

from dbcmd.cmds.description import CommandDescription
from dbcmd.cmds.sql_command import (
    DBConnectionFactory,
    LoadError,
    SqlCommand,
    SqlCommandDescription,
)
from dbcmd.engines.sql import RenderError

_log = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")


class SqlCommandLoader:
    """Builds SqlCommands from command documents; every command gets *db_connection_factory*."""

    def __init__(self, db_connection_factory: DBConnectionFactory | None = None) -> None:
        self.db_connection_factory = db_connection_factory

    def load_commands_from_yaml(
        self,
        stream: str | bytes | IO,
        parents: list[str] | None = None,
        source: str = "<stream>",
    ) -> list[SqlCommand]:
        """
        Parse every document in *stream* into a valid SqlCommand.

        Raises LoadError on malformed YAML, on a document that is not a
        mapping or does not fit the command shape, and on an invalid command.
        """
        try:
            documents = [d for d in yaml.safe_load_all(stream) if d is not None]
        except yaml.YAMLError as e:
            raise LoadError(f"could not parse {source}: {e}") from e
        except UnicodeDecodeError as e:
            # text handles decode lazily, while the documents are read
            raise LoadError(f"could not read {source}: {e}") from e

        commands = []
        for i, doc in enumerate(documents):
            if not isinstance(doc, dict):
                raise LoadError(
                    f"{source}: document {i + 1} must be a mapping, got {type(doc).__name__}"
                )
            commands.append(self._build(doc, parents or [], source))
        return commands

    def _build(self, doc: dict, parents: list[str], source: str) -> SqlCommand:
        try:
            scd = SqlCommandDescription.model_validate(doc)
            description = CommandDescription(
                name=scd.name,
                short=scd.short,
                long=scd.long,
                layout=scd.layout,
                flags=scd.flags,
                arguments=scd.arguments,
                layers=scd.layers,
                parents=list(parents),
            )
            cmd = SqlCommand(
                description,
                query=scd.query,
                sub_queries=scd.sub_queries,
                db_connection_factory=self.db_connection_factory,
            )
        except (ValidationError, ValueError) as e:
            raise LoadError(f"could not load command from {source}: {e}") from e

        cmd.check_valid()

        try:
            undeclared = cmd.undeclared_parameters()
        except RenderError as e:
            raise LoadError(f"invalid command {cmd.name!r} in {source}: {e}") from e
        if undeclared:
            _log.warning(
                "command %s uses undeclared parameter(s): %s", cmd.name, ", ".join(undeclared)
            )
        return cmd

    def load_commands_from_file(self, path: str | Path, parents: list[str] | None = None) -> list[SqlCommand]:
        p = Path(path)
        try:
            with p.open("r", encoding="utf-8") as handle:
                return self.load_commands_from_yaml(handle, parents=parents, source=str(p))
        except OSError as e:
            raise LoadError(f"could not read {str(p)!r}: {e}") from e

    def load_commands_from_path(self, path: str | Path) -> list[SqlCommand]:
        """
        Load a single file, or every ``*.yaml``/``*.yml`` below a directory.

        Files in sub-directories get the directory names as parents.
        """
        root = Path(path)
        if root.is_file():
            return self.load_commands_from_file(root)
        if not root.is_dir():
            raise LoadError(f"no such file or directory: {str(root)!r}")

        commands: list[SqlCommand] = []
        for file in sorted(root.rglob("*")):
            if not file.is_file() or file.suffix not in YAML_SUFFIXES:
                continue
            parents = list(file.relative_to(root).parent.parts)
            commands.extend(self.load_commands_from_file(file, parents=parents))
        _log.debug("loaded %d command(s) from %s", len(commands), root)
        return commands
