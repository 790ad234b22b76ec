"""
Jinja2 template for one generated command module.

Rendered with ``trim_blocks`` and ``lstrip_blocks``: lines holding only a
block tag disappear from the output. All values are pre-rendered Python
literals or identifiers.
"""

MODULE_TEMPLATE = '''\
# Code generated by dbcmd codegen for package {{ package_name }}. DO NOT EDIT.
# Command: {{ command_name }}

import datetime  # noqa: F401
from dataclasses import dataclass
from typing import Any

from dbcmd.cmds.description import CommandDescription
from dbcmd.cmds.sql_command import ExitWithoutOutput
from dbcmd.core.db import DatabaseConnectionError, DatabaseHandle
from dbcmd.core.layers import DEFAULT_SLUG, SQL_HELPERS_SLUG, ParsedLayers
from dbcmd.core.output import RowSink
from dbcmd.core.param_type import FileData, ParameterDefinition  # noqa: F401
from dbcmd.engines.sql import render_query, run_query_into_sink

{{ query_const }} = {{ query_literal }}
{% for sq in sub_queries %}
{{ sq.const }} = {{ sq.literal }}
{% endfor %}


@dataclass
class {{ params_class }}:
{% for f in fields %}
    {{ f.attr }}: {{ f.annotation }} = None
{% endfor %}

    @classmethod
    def from_values(cls, values: dict[str, Any]) -> "{{ params_class }}":
        return cls(
{% for f in fields %}
            {{ f.attr }}=values.get({{ f.name_literal }}),
{% endfor %}
        )

    def to_dict(self) -> dict[str, Any]:
        return {
{% for f in fields %}
            {{ f.name_literal }}: self.{{ f.attr }},
{% endfor %}
        }


class {{ command_class }}:
    def __init__(
        self,
        description: CommandDescription,
        query: str,
        sub_queries: dict[str, str],
        db: DatabaseHandle | None = None,
    ) -> None:
        self.description = description
        self.query = query
        self.sub_queries = sub_queries
        self.db = db

    def render_query(self, params: {{ params_class }}) -> str:
        return render_query(self.db, self.query, self.sub_queries, params.to_dict())

    def run_query_into_sink(self, params: {{ params_class }}, sink: RowSink) -> int:
        query = self.render_query(params)
        return run_query_into_sink(self.db, query, None, sink)

    def run(self, parsed_layers: ParsedLayers, sink: RowSink) -> int:
        if self.db is None:
            raise DatabaseConnectionError("db is not set")
        self.db.ping()

        params = {{ params_class }}.from_values(parsed_layers.layer(DEFAULT_SLUG))
        query = self.render_query(params)
        if parsed_layers.get(SQL_HELPERS_SLUG, "print-query", False):
            print(query)
            raise ExitWithoutOutput(query)

        return self.run_query_into_sink(params, sink)


def {{ constructor }}(db: DatabaseHandle | None = None) -> {{ command_class }}:
{% for group, params in parameter_groups %}
    {{ group }} = [
{% for p in params %}
        ParameterDefinition(
{% for key, value in p %}
            {{ key }}={{ value }},
{% endfor %}
        ),
{% endfor %}
    ]
{% endfor %}

    description = CommandDescription(
        name={{ name_literal }},
        short={{ short_literal }},
        long={{ long_literal }},
        flags=flags,
        arguments=arguments,
    )
    sub_queries = {
{% for sq in sub_queries %}
        {{ sq.name_literal }}: {{ sq.const }},
{% endfor %}
    }
    return {{ command_class }}(description, {{ query_const }}, sub_queries, db)
'''
