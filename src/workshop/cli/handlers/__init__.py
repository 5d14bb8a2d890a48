"""
This module contains the handler functions for the CLI commands.
"""
from .desk import create_desk, delete_desks, get_desks
from .operator import clean_schema, run_operator

__all__ = [
    "create_desk",
    "delete_desks",
    "get_desks",
    "clean_schema",
    "run_operator",
]
