"""
Command line interface.

Same pipeline as the HTTP surface: import → compile → run.
"""

from .errors import CLIError, ValidationError
from .commands import run_recipe, summarize

__all__ = ["CLIError", "ValidationError", "run_recipe", "summarize"]
