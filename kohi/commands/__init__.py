"""Command handler framework for Kohi.

Provides the Command base class, the per-call CommandContext, the
immutable CommandSpec / CommandTable types and the CommandRegistry
that loads handler modules from disk.
"""

from .base import Command, CommandContext, CommandSpec
from .registry import CommandRegistry, CommandTable, load_commands_from_file

__all__ = [
    "Command",
    "CommandContext",
    "CommandRegistry",
    "CommandSpec",
    "CommandTable",
    "load_commands_from_file",
]
