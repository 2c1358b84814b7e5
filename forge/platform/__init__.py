"""Process and filesystem boundary."""

from .files import atomic_write_text
from .process import ProcessError, run
from .tools import tool_path

__all__ = ["ProcessError", "atomic_write_text", "run", "tool_path"]
