"""Project reordering.

A move changes the moved project's ``order`` and shifts, by exactly one
unit, only the projects between its old and new slot. Everything else keeps
its value, so a move costs O(distance) writes instead of a renumbering.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from todo_replica.errors import NotFoundError
from todo_replica.models import EntityKind, Project


@dataclass(frozen=True)
class OrderChange:
    """New order value for one project."""

    project_id: str
    order: int


@dataclass(frozen=True)
class ReorderPlan:
    """Batch of order changes produced by a single move.

    The moved project's change comes first; sibling shifts follow in
    their original display order. An empty plan is a no-op.
    """

    project_id: str
    old_order: int
    new_order: int
    changes: tuple[OrderChange, ...] = field(default_factory=tuple)

    @property
    def is_noop(self) -> bool:
        return not self.changes

    @property
    def moved(self) -> OrderChange | None:
        return self.changes[0] if self.changes else None

    @property
    def shifted(self) -> tuple[OrderChange, ...]:
        return self.changes[1:]

    def as_updates(self) -> list[tuple[str, dict[str, Any]]]:
        """Changes in gateway batch form: ``(id, {"order": n})``."""
        return [(change.project_id, {"order": change.order}) for change in self.changes]

    def apply(self, projects: Sequence[Project]) -> list[Project]:
        """Copies of ``projects`` with the plan applied, in display order."""
        new_orders = {change.project_id: change.order for change in self.changes}
        rank = {p.id: i for i, p in enumerate(sort_by_order(projects))}
        updated = [
            p.model_copy(update={"order": new_orders[p.id]}) if p.id in new_orders else p for p in projects
        ]
        return sorted(updated, key=lambda p: (p.order, rank[p.id]))


def sort_by_order(projects: Sequence[Project]) -> list[Project]:
    """Display order: ascending ``order``, ties broken by creation then id."""
    return sorted(projects, key=lambda p: (p.order, p.created_at, p.id))


def _effective_orders(ordered: list[Project]) -> list[int]:
    """Order values the move is computed against.

    Distinct values are used as they are. When values collide the list is
    first made dense from the smallest value, since a one-unit shift cannot
    keep tied projects in a stable relative order.
    """
    values = [p.order for p in ordered]
    if len(set(values)) == len(values):
        return values
    base = values[0]
    return [base + i for i in range(len(values))]


def plan_move(projects: Sequence[Project], project_id: str, target_order: int) -> ReorderPlan:
    """Plan moving one project to ``target_order``.

    The target is clamped to the current smallest and largest order, so
    moving past either end places the project first or last without
    opening a gap. Moving earlier increments every project in
    ``[target, old)``; moving later decrements every project in
    ``(old, target]``.

    Args:
        projects: The owner's projects, in any order
        project_id: Project to move
        target_order: Requested order value

    Returns:
        Plan with the moved project's change first

    Raises:
        NotFoundError: ``project_id`` is not among ``projects``
    """
    ordered = sort_by_order(projects)
    index = next((i for i, p in enumerate(ordered) if p.id == project_id), None)
    if index is None:
        raise NotFoundError(EntityKind.PROJECT, project_id)

    moved = ordered[index]
    if len(ordered) < 2:
        return ReorderPlan(project_id, moved.order, moved.order)

    effective = _effective_orders(ordered)
    old = effective[index]
    target = max(effective[0], min(effective[-1], target_order))
    if target == old:
        return ReorderPlan(project_id, moved.order, moved.order)

    final: list[int] = list(effective)
    final[index] = target
    for i, value in enumerate(effective):
        if i == index:
            continue
        if target < old and target <= value < old:
            final[i] = value + 1
        elif target > old and old < value <= target:
            final[i] = value - 1

    changes = [OrderChange(moved.id, final[index])] if final[index] != moved.order else []
    changes += [
        OrderChange(p.id, final[i]) for i, p in enumerate(ordered) if i != index and final[i] != p.order
    ]
    if changes and changes[0].project_id != moved.id:
        # Only ties were normalized; the moved project keeps its value.
        changes.insert(0, OrderChange(moved.id, moved.order))
    return ReorderPlan(project_id, moved.order, final[index], tuple(changes))


def plan_move_to_index(projects: Sequence[Project], project_id: str, index: int) -> ReorderPlan:
    """Plan moving one project to a display position (0-based, clamped)."""
    ordered = sort_by_order(projects)
    if not any(p.id == project_id for p in ordered):
        raise NotFoundError(EntityKind.PROJECT, project_id)
    index = max(0, min(len(ordered) - 1, index))
    effective = _effective_orders(ordered)
    return plan_move(projects, project_id, effective[index])
