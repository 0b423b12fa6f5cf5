"""Dependency closure over the workspace module graph.

Usage:
    resolver = DependencyResolver(graph)
    deps     = resolver.resolve(root, {Scope.COMPILE}, transitive=True)
    modules  = resolver.closure(root, {Scope.COMPILE}, transitive=True)   # root first
"""

import logging
from typing import AbstractSet

from reactor_coverage.models import ModuleGraph, ModuleRef, Scope

logger = logging.getLogger(__name__)


class DependencyResolver:
    """Find the workspace modules a root module depends on.

    Only edges whose scope is in the requested scope set are followed, at
    every level of the traversal. Dependencies that are not part of the
    workspace (third-party libraries) are skipped silently.
    """

    def __init__(self, graph: ModuleGraph) -> None:
        self._graph = graph

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def resolve(
        self,
        root: ModuleRef,
        scopes: AbstractSet[Scope],
        transitive: bool = True,
    ) -> list[ModuleRef]:
        """Return the dependencies of *root* in discovery order.

        The root itself is never part of the result, and no ModuleKey
        appears twice. Never raises; an empty list is a valid outcome.
        """
        result: list[ModuleRef] = []
        # The root is marked up front so a cycle leading back to it cannot add it.
        visited: set[str] = {root.key}
        self._collect(root, frozenset(scopes), transitive, visited, result)
        logger.debug(
            "Resolved %d dependencies for %s: %s",
            len(result), root.key, ", ".join(m.key for m in result) or "(none)",
        )
        return result

    def closure(
        self,
        root: ModuleRef,
        scopes: AbstractSet[Scope],
        transitive: bool = True,
    ) -> list[ModuleRef]:
        """Return ``[root, *resolve(root, ...)]``."""
        return [root, *self.resolve(root, scopes, transitive)]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _collect(
        self,
        module: ModuleRef,
        scopes: frozenset[Scope],
        transitive: bool,
        visited: set[str],
        result: list[ModuleRef],
    ) -> None:
        # visited is shared across the whole traversal, which bounds cycles
        for edge in module.dependencies:
            if edge.scope not in scopes:
                continue
            key = edge.coordinates.key
            if key in visited:
                continue
            visited.add(key)

            dependency = self._graph.find(edge.coordinates)
            if dependency is None:
                logger.debug("Skipping %s: not part of the workspace", key)
                continue

            result.append(dependency)
            if transitive:
                self._collect(dependency, scopes, transitive, visited, result)
