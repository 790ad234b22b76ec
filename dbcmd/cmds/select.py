"""
Ad-hoc SELECT builder for one table, and conversion of such a select into
a reusable templated command (``--create-query``).
"""

from dataclasses import dataclass, field

from dbcmd.cmds.description import CommandDescription
from dbcmd.cmds.sql_command import DBConnectionFactory, SqlCommand
from dbcmd.core.param_type import ParameterDefinition, ParameterKind

COUNT_COLUMN = "COUNT(*) AS count"


@dataclass
class SelectOptions:
    table: str
    columns: list[str] = field(default_factory=list)
    where: str = ""
    order_by: str = ""
    limit: int = 50
    offset: int = 0
    count: bool = False

    def select_columns(self) -> list[str]:
        if self.count:
            return [COUNT_COLUMN]
        return list(self.columns) or ["*"]


def build_select_query(opts: SelectOptions) -> str:
    """
    Plain SQL for *opts*. Where and order-by are SQL fragments used as
    given; the limit is dropped for counts and when not positive.
    """
    if not opts.table:
        raise ValueError("table is required")
    sql = f"SELECT {', '.join(opts.select_columns())} FROM {opts.table}"
    if opts.where:
        sql += f" WHERE {opts.where}"
    if opts.order_by:
        sql += f" ORDER BY {opts.order_by}"
    if opts.limit > 0 and not opts.count:
        sql += f" LIMIT {opts.limit}"
    if opts.offset > 0:
        sql += f" OFFSET {opts.offset}"
    return sql


def create_select_command(
    name: str,
    opts: SelectOptions,
    db_connection_factory: DBConnectionFactory | None = None,
) -> SqlCommand:
    """
    Turn *opts* into a templated command named *name*.

    A given where clause is baked into the query; otherwise ``where`` becomes
    a flag. Limit, offset and order-by are always flags defaulting to *opts*.
    """
    if not opts.table:
        raise ValueError("table is required")
    short = f"Select columns from {opts.table}"
    if opts.count:
        short = f"Count all rows from {opts.table}"
    if opts.where:
        short = f"Select from {opts.table} where {opts.where}"

    flags: list[ParameterDefinition] = []
    if not opts.where:
        flags.append(ParameterDefinition(name="where", help="Where clause"))
    flags.append(
        ParameterDefinition(
            name="limit",
            type=ParameterKind.INTEGER.value,
            help=f"Limit the number of rows (default: {opts.limit}), set to 0 to disable",
            default=opts.limit,
        )
    )
    flags.append(
        ParameterDefinition(
            name="offset",
            type=ParameterKind.INTEGER.value,
            help=f"Offset the number of rows (default: {opts.offset})",
            default=opts.offset,
        )
    )
    flags.append(
        ParameterDefinition(
            name="order_by",
            help=f"Order by (default: {opts.order_by})" if opts.order_by else "Order by",
            default=opts.order_by or None,
        )
    )

    lines = [f"SELECT {', '.join(opts.select_columns())} FROM {opts.table}"]
    if opts.where:
        lines.append(f"WHERE {opts.where}")
    else:
        lines.append("{% if where %}WHERE {{ where | sql_raw }}{% endif %}")
    lines.append("{% if order_by %}ORDER BY {{ order_by | sql_raw }}{% endif %}")
    lines.append("{% if limit %}LIMIT {{ limit }}{% endif %}")
    lines.append("{% if offset %}OFFSET {{ offset }}{% endif %}")

    return SqlCommand(
        CommandDescription(name=name, short=short, flags=flags),
        query="\n".join(lines),
        db_connection_factory=db_connection_factory,
    )
