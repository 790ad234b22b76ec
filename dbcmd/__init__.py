"""
dbcmd: declarative, parameterized SQL commands.

A command is a YAML document (name, help, typed flags and arguments, a Jinja2
SQL template and named sub-queries). It can be run directly against a
database or compiled into a standalone Python module.
"""

__version__ = "0.1.0"
