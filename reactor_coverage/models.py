"""Data models for the workspace module graph.

Contains the read-only view of the modules taking part in one build:
    - Scope             dependency scope tags
    - ModuleCoordinates (group, artifact, version) identity
    - DependencyEdge    a declared dependency of a module
    - ModuleRef         one buildable module of the workspace
    - ModuleGraph       registry of modules indexed by ModuleKey
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ModuleGraphError(Exception):
    """Base exception for module graph errors."""


class DuplicateModuleError(ModuleGraphError):
    """Raised when two modules share the same group:artifact:version key."""


class UnknownModuleError(ModuleGraphError):
    """Raised when a module name does not match any module of the workspace."""


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------

class Scope(str, Enum):
    COMPILE = "compile"
    RUNTIME = "runtime"
    PROVIDED = "provided"
    TEST = "test"
    SYSTEM = "system"
    IMPORT = "import"

    @classmethod
    def parse(cls, value: str) -> "Scope":
        """Return the scope for a configuration string such as ``"Compile "``.

        Raises:
            ValueError: if *value* is not a known scope tag.
        """
        tag = str(value).strip().lower()
        try:
            return cls(tag)
        except ValueError:
            known = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown dependency scope '{value}'. Known scopes: {known}") from None

    @classmethod
    def parse_all(cls, values: Iterable[str] | None) -> frozenset["Scope"]:
        """Parse a list of scope tags. An empty or missing list means all scopes."""
        if not values:
            return frozenset(cls)
        return frozenset(cls.parse(v) for v in values)


# ---------------------------------------------------------------------------
# Module identity and edges
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModuleCoordinates:
    group: str
    artifact: str
    version: str

    @property
    def key(self) -> str:
        """The ModuleKey used for deduplication: ``group:artifact:version``."""
        return f"{self.group}:{self.artifact}:{self.version}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class DependencyEdge:
    coordinates: ModuleCoordinates
    scope: Scope = Scope.COMPILE


@dataclass(frozen=True)
class ModuleRef:
    coordinates: ModuleCoordinates
    source_root: Path
    dependencies: tuple[DependencyEdge, ...] = field(default=())

    @property
    def key(self) -> str:
        return self.coordinates.key

    @property
    def artifact_id(self) -> str:
        return self.coordinates.artifact

    def to_dict(self) -> dict:
        """JSON-friendly representation used by the CLI."""
        return {
            "key": self.key,
            "group": self.coordinates.group,
            "artifact": self.coordinates.artifact,
            "version": self.coordinates.version,
            "source_root": str(self.source_root),
            "dependencies": [
                {"key": d.coordinates.key, "scope": d.scope.value}
                for d in self.dependencies
            ],
        }


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

class ModuleGraph:
    """Read-only registry of the workspace modules, indexed by ModuleKey.

    Lookups use exact ``(group, artifact, version)`` equality: two modules
    that differ only by a qualifier in their version are distinct modules.
    """

    def __init__(self, modules: Iterable[ModuleRef]) -> None:
        self._modules: dict[str, ModuleRef] = {}
        for module in modules:
            if module.key in self._modules:
                raise DuplicateModuleError(f"Module '{module.key}' is declared more than once.")
            self._modules[module.key] = module

    def __iter__(self) -> Iterator[ModuleRef]:
        return iter(self._modules.values())

    def __len__(self) -> int:
        return len(self._modules)

    def find(self, coordinates: ModuleCoordinates) -> ModuleRef | None:
        """Return the module with exactly these coordinates, or None."""
        return self._modules.get(coordinates.key)

    def get(self, name: str) -> ModuleRef:
        """Return a module by its full key or by its artifact id.

        An artifact id is accepted as a shorthand when it is unique within
        the workspace.
        """
        if name in self._modules:
            return self._modules[name]
        matches = [m for m in self._modules.values() if m.artifact_id == name]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            keys = ", ".join(m.key for m in matches)
            raise UnknownModuleError(
                f"Module name '{name}' is ambiguous. Use one of: {keys}"
            )
        available = ", ".join(m.artifact_id for m in self._modules.values()) or "(none declared)"
        raise UnknownModuleError(
            f"Module '{name}' not found. Available modules: {available}"
        )
