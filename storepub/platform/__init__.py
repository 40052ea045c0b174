"""Platform abstraction: subprocess execution."""

from .process import ProcessError, run, which

__all__ = ["ProcessError", "run", "which"]
