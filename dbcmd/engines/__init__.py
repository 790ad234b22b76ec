"""
Engines: SQL rendering (Jinja2) and execution.
"""
