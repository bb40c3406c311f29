"""Command discovery, loading and hot reload.

The registry scans a directory of handler modules, imports each one,
and builds a ``CommandTable``: a read-only name -> ``CommandSpec``
mapping. Every load produces a brand new table that replaces the
previous one with a single reference assignment, so a reader either
sees the old table or the new one, never a mix. Calls already running
keep the table they captured.
"""

import importlib.util
import itertools
import sys
import threading
from pathlib import Path
from types import MappingProxyType, ModuleType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import structlog

from ..exceptions import CommandLoadError
from .base import Command, CommandSpec

logger = structlog.get_logger("kohi.commands")

# Module names handed to importlib; a counter keeps every load distinct
_MODULE_PREFIX = "kohi_handler"
_load_counter = itertools.count(1)
_loaded_modules: Dict[Path, str] = {}


class CommandTable(Mapping):
    """Immutable lookup table of lowercase name -> CommandSpec."""

    def __init__(self, specs: Iterable[CommandSpec] = ()):
        index: Dict[str, CommandSpec] = {}
        ordered: List[CommandSpec] = []
        for spec in specs:
            claimed = [n for n in spec.names if n in index]
            if claimed:
                logger.warning(
                    "command_name_conflict",
                    command=spec.name,
                    names=claimed,
                    owner=index[claimed[0]].name,
                )
            free = tuple(n for n in spec.names if n not in index)
            if not free:
                continue
            if free != spec.names:
                spec = CommandSpec(
                    names=free,
                    handler=spec.handler,
                    description=spec.description,
                    usage=spec.usage,
                    author=spec.author,
                    category=spec.category,
                    source=spec.source,
                )
            for name in free:
                index[name] = spec
            ordered.append(spec)
        self._index = MappingProxyType(index)
        self._specs: Tuple[CommandSpec, ...] = tuple(ordered)

    def lookup(self, name: str) -> Optional[CommandSpec]:
        """Case-insensitive lookup by primary name or alias."""
        if not name:
            return None
        return self._index.get(name.lower())

    @property
    def specs(self) -> Tuple[CommandSpec, ...]:
        """Distinct specs in load order (aliases collapsed)."""
        return self._specs

    @property
    def names(self) -> frozenset:
        return frozenset(self._index)

    def __getitem__(self, name: str) -> CommandSpec:
        if not isinstance(name, str):
            raise KeyError(name)
        return self._index[name.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"CommandTable({[s.name for s in self._specs]!r})"


def _import_handler_module(path: Path) -> ModuleType:
    """Execute a handler file as a fresh module object."""
    module_name = f"{_MODULE_PREFIX}_{path.stem}_{next(_load_counter)}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise CommandLoadError("cannot create import spec", source=str(path))
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    # Running handlers hold their classes directly; the old entry can go
    previous = _loaded_modules.get(path.resolve())
    if previous:
        sys.modules.pop(previous, None)
    _loaded_modules[path.resolve()] = module_name
    return module


def load_commands_from_file(path: Path) -> List[CommandSpec]:
    """Import *path* and return a spec for every Command class it defines.

    Raises:
        CommandLoadError: If the module fails to import, defines no
            Command subclass, or a command fails validation.
    """
    try:
        module = _import_handler_module(path)
    except CommandLoadError:
        raise
    except Exception as e:
        raise CommandLoadError(
            f"import failed: {e}", source=str(path), error_type=type(e).__name__
        ) from e

    classes = [
        attr for attr in vars(module).values()
        if isinstance(attr, type)
        and issubclass(attr, Command)
        and attr is not Command
        and attr.__module__ == module.__name__
    ]
    if not classes:
        raise CommandLoadError("no Command subclass found", source=str(path))

    specs = []
    for cls in classes:
        try:
            specs.append(CommandSpec.from_command(cls(), source=path))
        except Exception as e:
            # One bad class leaves its siblings in the file loadable
            logger.warning(
                "command_invalid",
                command=cls.__name__,
                file=path.name,
                error=str(e),
                error_type=type(e).__name__,
            )
    if not specs:
        raise CommandLoadError("no valid Command class", source=str(path))
    return specs


class CommandRegistry:
    """Owns the current CommandTable and rebuilds it on demand.

    Args:
        commands_dir: Directory of handler modules; None for a purely
            static registry.
        allowlist: Optional list of file stems allowed to load.
        static_commands: Command instances always registered, ahead of
            anything found on disk.
    """

    def __init__(
        self,
        commands_dir: Optional[Path] = None,
        allowlist: Optional[List[str]] = None,
        static_commands: Iterable[Command] = (),
    ):
        self.commands_dir = commands_dir
        self.allowlist = allowlist
        self._static_commands = tuple(static_commands)
        self._table = CommandTable()
        self._reload_lock = threading.Lock()
        self.generation = 0

    @classmethod
    def from_commands(cls, commands: Iterable[Command]) -> "CommandRegistry":
        """Build a registry from command instances, with no directory."""
        registry = cls(static_commands=commands)
        registry.load()
        return registry

    @property
    def snapshot(self) -> CommandTable:
        """The current table. Capture it once per dispatch."""
        return self._table

    def lookup(self, name: str) -> Optional[CommandSpec]:
        return self._table.lookup(name)

    def load(self) -> CommandTable:
        """Scan the handler source and swap in a fresh table.

        A handler file that fails to load is skipped with a warning;
        the rest still load. Concurrent calls are serialized.
        """
        with self._reload_lock:
            table = CommandTable(self._collect())
            self._table = table
            self.generation += 1
        logger.info(
            "commands_loaded",
            commands=[s.name for s in table.specs],
            names=len(table),
            generation=self.generation,
        )
        return table

    def reload(self) -> CommandTable:
        """Rebuild after a change notification; same guarantees as load()."""
        previous = self._table
        table = self.load()
        added = sorted(table.names - previous.names)
        removed = sorted(previous.names - table.names)
        if added or removed:
            logger.info("commands_reloaded", added=added, removed=removed)
        return table

    def _collect(self) -> List[CommandSpec]:
        specs: List[CommandSpec] = []
        for command in self._static_commands:
            try:
                specs.append(CommandSpec.from_command(command))
            except ValueError as e:
                logger.warning(
                    "command_invalid", command=type(command).__name__, error=str(e)
                )

        if self.commands_dir is None:
            return specs
        if not self.commands_dir.is_dir():
            logger.warning("commands_dir_missing", path=str(self.commands_dir))
            return specs

        for path in sorted(self.commands_dir.glob("*.py")):
            if path.name.startswith("_"):
                continue
            if self.allowlist is not None and path.stem not in self.allowlist:
                logger.warning(
                    "command_blocked_not_in_allowlist",
                    file=path.name,
                    allowlist=self.allowlist,
                )
                continue
            try:
                specs.extend(load_commands_from_file(path))
            except CommandLoadError as e:
                logger.warning(
                    "command_load_failed",
                    file=path.name,
                    error=e.message,
                    **e.context,
                )
        return specs
