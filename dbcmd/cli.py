"""
Command-line front end.

  dbcmd run FILE [command flags and arguments]
  dbcmd [--repository DIR]... PARENT... NAME [command flags and arguments]
  dbcmd [--repository DIR]... queries
  dbcmd query SQL|- [connection and output flags]
  dbcmd select TABLE [--columns ... --create-query NAME]
  dbcmd codegen FILE... [-p PACKAGE] [-o DIR | -O FILE]

Commands found in repositories (--repository, or DBCMD_REPOSITORIES
separated like PATH) are mounted as sub-commands, one level per parent
directory.

Exit status: 0 on success (including --print-query), 1 on errors.
"""

import argparse
import logging
import sys
from collections.abc import Iterable, Sequence
from functools import partial
from typing import Any

from dbcmd import __version__
from dbcmd.cmds import (
    CommandDescription,
    ExitWithoutOutput,
    LoadError,
    QueryCommand,
    SelectOptions,
    SqlCommand,
    SqlCommandLoader,
    build_select_query,
    create_select_command,
)
from dbcmd.codegen import CodegenError, generate_file
from dbcmd.codegen.generator import DEFAULT_PACKAGE_NAME
from dbcmd.core.config import settings
from dbcmd.core.layers import (
    OUTPUT_FORMATS,
    OUTPUT_SLUG,
    SQL_HELPERS_SLUG,
    ParameterLayer,
    ParsedLayers,
    new_standard_layers,
    parse_layers,
)
from dbcmd.core.output import CollectingSink, format_rows
from dbcmd.core.param_type import LIST_KINDS, ParameterDefinition, ParameterKind

_log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Namespace attributes of the top-level parser; command parameters may not use them.
RESERVED_DESTS = frozenset({"command", "handler", "log_level", "repository", "subcommand"})


# ---------------------------------------------------------------------------
# Parameter definitions -> argparse
# ---------------------------------------------------------------------------


def _help(d: ParameterDefinition) -> str:
    # argparse treats % as a format character
    return (d.help or "").replace("%", "%%")


def _add_flag(container: Any, d: ParameterDefinition) -> None:
    names = [f"--{d.name}"]
    if d.short_flag:
        names.insert(0, f"-{d.short_flag}")
    if d.kind == ParameterKind.BOOL:
        container.add_argument(
            *names, dest=d.name, action=argparse.BooleanOptionalAction, default=None, help=_help(d)
        )
    else:
        # lists are given comma-separated and coerced with the other values
        container.add_argument(*names, dest=d.name, default=None, help=_help(d))


def _add_positional(container: Any, d: ParameterDefinition) -> None:
    required = d.required and d.default is None
    if d.kind in LIST_KINDS:
        nargs = "+" if required else "*"
    else:
        nargs = None if required else "?"
    container.add_argument(d.name, nargs=nargs, default=None, help=_help(d))


def _add_layer_groups(parser: argparse.ArgumentParser, layers: Iterable[ParameterLayer]) -> None:
    for layer in layers:
        group = parser.add_argument_group(layer.name or layer.slug, layer.description or None)
        for d in layer.flags:
            _add_flag(group, d)


def _add_command_arguments(
    parser: argparse.ArgumentParser,
    description: CommandDescription,
    include_arguments: bool,
) -> None:
    try:
        for d in description.flags:
            _add_flag(parser, d)
        if include_arguments:
            for d in description.arguments:
                _add_positional(parser, d)
        _add_layer_groups(parser, description.layers)
    except argparse.ArgumentError as e:
        raise LoadError(f"command {description.name!r} cannot be exposed on the command line: {e}") from e


def _command_help(description: CommandDescription) -> str:
    return (description.long or description.short).replace("%", "%%")


def build_command_parser(
    description: CommandDescription,
    prog: str,
    include_arguments: bool = True,
) -> argparse.ArgumentParser:
    """Parser exposing a command's flags, arguments and every layer's flags."""
    parser = argparse.ArgumentParser(prog=prog, description=_command_help(description))
    _add_command_arguments(parser, description, include_arguments)
    return parser


def _raw_values(ns: argparse.Namespace) -> dict[str, Any]:
    # unset flags are None, omitted "*" positionals are []
    return {k: v for k, v in vars(ns).items() if v is not None and v != []}


def _print_rows(parsed_layers: ParsedLayers, rows: list[dict[str, Any]]) -> None:
    text = format_rows(
        rows,
        parsed_layers.get(OUTPUT_SLUG, "output", "table"),
        parsed_layers.get(OUTPUT_SLUG, "fields"),
    )
    if text:
        print(text)


# ---------------------------------------------------------------------------
# Sub-commands
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    commands = SqlCommandLoader().load_commands_from_file(args.file)
    if len(commands) != 1:
        raise LoadError(f"{args.file} holds {len(commands)} commands, expected exactly one")
    cmd = commands[0]

    parser = build_command_parser(cmd.description, prog=f"dbcmd run {args.file}")
    return _run_command(cmd, _raw_values(parser.parse_args(args.args)))


def _cmd_repository(cmd: SqlCommand, args: argparse.Namespace) -> int:
    ns = vars(args)
    raw = {d.name: ns.get(d.name) for d in cmd.description.all_parameters()}
    return _run_command(cmd, {k: v for k, v in raw.items() if v is not None and v != []})


def _run_command(cmd: SqlCommand, raw: dict[str, Any]) -> int:
    parsed = cmd.parse_layers(raw)
    sink = CollectingSink()
    cmd.run(parsed, None, sink)
    _print_rows(parsed, sink.rows)
    return 0


def _cmd_queries(commands: Sequence[SqlCommand], args: argparse.Namespace) -> int:
    rows = [
        {
            "name": cmd.name,
            "parents": " ".join(cmd.description.parents),
            "short": cmd.description.short,
        }
        for cmd in commands
    ]
    text = format_rows(rows, args.output)
    if text:
        print(text)
    return 0


def _cmd_query(args: argparse.Namespace) -> int:
    sql = sys.stdin.read() if args.sql == "-" else args.sql
    qc = QueryCommand()
    parser = build_command_parser(qc.description, prog="dbcmd query SQL", include_arguments=False)
    raw = _raw_values(parser.parse_args(args.args))
    raw["query"] = sql
    parsed = qc.parse_layers(raw)
    sink = CollectingSink()
    qc.run(parsed, None, sink)
    _print_rows(parsed, sink.rows)
    return 0


def _cmd_select(args: argparse.Namespace) -> int:
    opts = SelectOptions(
        table=args.table,
        columns=[c.strip() for c in (args.columns or "").split(",") if c.strip()],
        where=args.where or "",
        order_by=args.order_by or "",
        limit=args.limit,
        offset=args.offset,
        count=args.count,
    )
    if args.create_query:
        print(create_select_command(args.create_query, opts).to_yaml(), end="")
        return 0

    sql = build_select_query(opts)
    qc = QueryCommand()
    raw = _raw_values(args)
    raw["query"] = sql
    parsed = parse_layers(qc.description, raw, layers=new_standard_layers())
    if parsed.get(SQL_HELPERS_SLUG, "print-query", False):
        print(sql)
        return 0

    sink = CollectingSink()
    qc.execute(parsed, sql, sink)
    _print_rows(parsed, sink.rows)
    return 0


def _cmd_codegen(args: argparse.Namespace) -> int:
    if args.output_file and len(args.files) != 1:
        raise CodegenError("--output-file can only be used with a single input file")
    # one file at a time; an error stops the batch, earlier outputs stay
    for path in args.files:
        target = generate_file(path, args.package_name, args.output_dir, args.output_file)
        print(target)
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def load_repository_commands(paths: Iterable[str]) -> list[SqlCommand]:
    """Load every command below each repository path, in order."""
    loader = SqlCommandLoader()
    commands: list[SqlCommand] = []
    for path in paths:
        found = loader.load_commands_from_path(path)
        _log.debug("repository %s: %d command(s)", path, len(found))
        commands.extend(found)
    return commands


def _mount_commands(sub: Any, commands: Sequence[SqlCommand]) -> None:
    # one nested sub-parser per parent directory, the command itself as a leaf
    groups: dict[tuple[str, ...], Any] = {(): sub}
    leaves: set[tuple[str, ...]] = set()
    for cmd in commands:
        parents = tuple(cmd.description.parents)
        path = (*parents, cmd.name)
        for i in range(1, len(parents) + 1):
            key = parents[:i]
            if key in groups:
                continue
            if key in leaves or key[-1] in groups[key[:-1]].choices:
                raise LoadError(f"command group {' '.join(key)!r} clashes with an existing command")
            group_p = groups[key[:-1]].add_parser(key[-1], help=f"{key[-1]} commands")
            groups[key] = group_p.add_subparsers(dest="subcommand", metavar="COMMAND", required=True)

        if path in groups or cmd.name in groups[parents].choices:
            raise LoadError(f"command {' '.join(path)!r} clashes with an existing command")
        reserved = sorted(RESERVED_DESTS & {d.name for d in cmd.description.all_parameters()})
        if reserved:
            raise LoadError(f"command {' '.join(path)!r} uses reserved parameter name(s): {', '.join(reserved)}")

        cmd_p = groups[parents].add_parser(
            cmd.name,
            help=cmd.description.short.replace("%", "%%"),
            description=_command_help(cmd.description),
        )
        _add_command_arguments(cmd_p, cmd.description, include_arguments=True)
        cmd_p.set_defaults(handler=partial(_cmd_repository, cmd))
        leaves.add(path)


def build_parser(commands: Sequence[SqlCommand] = ()) -> argparse.ArgumentParser:
    """Top-level parser: the built-in sub-commands plus *commands* mounted by parents."""
    parser = argparse.ArgumentParser(
        prog="dbcmd", description="Run and compile declarative SQL commands."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        help=f"Logging level (default: {settings.LOG_LEVEL})",
    )
    parser.add_argument(
        "--repository",
        action="append",
        metavar="DIR",
        help="Directory (or file) of command documents to mount; repeatable",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    queries_p = sub.add_parser("queries", help="List the commands found in the repositories")
    queries_p.add_argument("--output", choices=OUTPUT_FORMATS, default="table", help="Output format")
    queries_p.set_defaults(handler=partial(_cmd_queries, list(commands)))

    run_p = sub.add_parser("run", help="Run a command defined in a YAML file")
    run_p.add_argument("file", help="Command YAML file")
    run_p.add_argument("args", nargs=argparse.REMAINDER, help="Command flags and arguments")
    run_p.set_defaults(handler=_cmd_run)

    query_p = sub.add_parser("query", help="Run a SQL query passed as an argument")
    query_p.add_argument("sql", help="SQL text, or - to read from stdin")
    query_p.add_argument("args", nargs=argparse.REMAINDER, help="Connection and output flags")
    query_p.set_defaults(handler=_cmd_query)

    select_p = sub.add_parser("select", help="Select rows from a table")
    select_p.add_argument("table")
    select_p.add_argument("--columns", help="Columns to select (comma-separated)")
    select_p.add_argument("--where", help="Where clause")
    select_p.add_argument("--order-by", dest="order_by", help="Order by clause")
    select_p.add_argument(
        "--limit", type=int, default=50, help="Limit clause (default 50, 0 for no limit)"
    )
    select_p.add_argument("--offset", type=int, default=0, help="Offset clause")
    select_p.add_argument("--count", action="store_true", help="Count rows instead")
    select_p.add_argument(
        "--create-query",
        metavar="NAME",
        help="Output the query as a YAML command named NAME instead of running it",
    )
    _add_layer_groups(select_p, new_standard_layers())
    select_p.set_defaults(handler=_cmd_select)

    codegen_p = sub.add_parser("codegen", help="Generate Python modules from command files")
    codegen_p.add_argument("files", nargs="+", help="Command YAML files")
    codegen_p.add_argument(
        "-p", "--package-name", default=DEFAULT_PACKAGE_NAME, help="Package name in the header"
    )
    codegen_p.add_argument("-o", "--output-dir", default=".", help="Output directory")
    codegen_p.add_argument(
        "-O", "--output-file", help="Output file (only with a single input file)"
    )
    codegen_p.set_defaults(handler=_cmd_codegen)

    _mount_commands(sub, commands)
    return parser


def _scan_global_options(argv: list[str]) -> argparse.Namespace:
    # repositories decide which sub-commands exist, so read them before the real parse
    pre = argparse.ArgumentParser(prog="dbcmd", add_help=False)
    pre.add_argument("--log-level", default=settings.LOG_LEVEL)
    pre.add_argument("--repository", action="append")
    pre.add_argument("rest", nargs=argparse.REMAINDER)
    known, _ = pre.parse_known_args(argv)
    return known


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else list(argv)
    scanned = _scan_global_options(argv)
    logging.basicConfig(
        level=getattr(logging, str(scanned.log_level).upper(), logging.WARNING),
        format=LOG_FORMAT,
    )
    try:
        commands = load_repository_commands([*settings.repository_paths, *(scanned.repository or [])])
        parser = build_parser(commands)
    except ValueError as e:
        _log.debug("loading repositories failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    args = parser.parse_args(argv)
    try:
        return args.handler(args)
    except ExitWithoutOutput:
        return 0
    except ValueError as e:
        _log.debug("%s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
