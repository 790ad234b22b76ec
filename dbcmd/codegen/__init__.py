"""
Code generation: lower SqlCommands to Python modules.
"""

from dbcmd.codegen.generator import (
    CodegenError,
    SqlCommandCodeGenerator,
    generate_file,
    kind_to_python_type,
    to_python_code,
)

__all__ = [
    "CodegenError",
    "SqlCommandCodeGenerator",
    "generate_file",
    "kind_to_python_type",
    "to_python_code",
]
