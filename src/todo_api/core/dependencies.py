"""Dependency edge validation for todos."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

import structlog

from todo_api.core.errors import CircularDependencyError, SelfDependencyError

logger = structlog.get_logger()


class DependentLookup(Protocol):
    def dependent_ids(self, todo_id: int, transitive: bool = False) -> set[int]: ...


class DependencyValidator:
    """Checks proposed "todo depends on X" edges before they are written.

    In the default mode only direct edges are inspected: A may not depend on
    B when B already depends on A, but a longer loop such as A -> B -> C -> A
    goes undetected. ``transitive=True`` walks every todo that reaches
    ``todo_id`` instead.
    """

    def __init__(self, repository: DependentLookup, transitive: bool = False):
        self._repository = repository
        self._transitive = transitive

    def validate(
        self,
        todo_id: int,
        proposed_ids: Iterable[int],
        lookup: DependentLookup | None = None,
    ) -> None:
        """Raise unless ``todo_id`` may depend on every id in ``proposed_ids``.

        ``lookup`` replaces the configured repository for this call, e.g. one
        bound to the transaction that is creating ``todo_id``.
        """
        proposed = set(proposed_ids)
        if not proposed:
            return

        if todo_id in proposed:
            logger.info("self_dependency_rejected", todo_id=todo_id)
            raise SelfDependencyError()

        if lookup is None:
            lookup = self._repository
        dependents = lookup.dependent_ids(todo_id, transitive=self._transitive)
        conflicts = sorted(proposed & dependents)
        if conflicts:
            logger.info(
                "circular_dependency_rejected",
                todo_id=todo_id,
                conflicting_ids=conflicts,
                transitive=self._transitive,
            )
            raise CircularDependencyError()

        logger.debug(
            "dependencies_validated", todo_id=todo_id, count=len(proposed)
        )
