from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from roadtrack.core.errors import ConflictError, ValidationError
from roadtrack.services.movement_store import MovementStore


@dataclass(frozen=True)
class GroupAssignment:
    group_no: int
    group_label: str | None
    newly_bound: bool


def arithmetic_group_no(
    cycle_number: int,
    max_cycles_per_group: int,
    *,
    explicit_group_no: int | None = None,
) -> int:
    if explicit_group_no is not None:
        if explicit_group_no < 1:
            raise ValidationError("group_no must be at least 1")
        return explicit_group_no
    if cycle_number < 1:
        raise ValidationError("cycle must be at least 1")
    if max_cycles_per_group < 1:
        raise ValidationError("max_cycles_per_group must be at least 1")
    return math.ceil(cycle_number / max_cycles_per_group)


def cycle_within_group(cycle_number: int, group_no: int, max_cycles_per_group: int) -> int:
    """Translate a running cycle number into its 1-based position inside ``group_no``."""
    return cycle_number - (group_no - 1) * max_cycles_per_group


class GroupAllocator:
    def __init__(self, store: MovementStore, *, bind_attempts: int = 3):
        self._store = store
        self._bind_attempts = bind_attempts
        self._logger = logging.getLogger("roadtrack.group_allocator")

    def next_group_no(self, route_id: str, eqp_id: str) -> int:
        current_max = self._store.get_max_group_no(route_id, eqp_id)
        return (current_max or 0) + 1

    def lookup_label(self, route_id: str, eqp_id: str, group_label: str) -> int | None:
        return self._store.get_group_no_for_label(route_id, eqp_id, group_label)

    def allocate_for_label(self, route_id: str, eqp_id: str, group_label: str) -> GroupAssignment:
        """Return the group bound to ``group_label``, binding the next free group on first use.

        The first writer wins: once bound, a label keeps its group for good. A
        concurrent writer that loses the unique-constraint race re-reads the
        winner's binding instead of creating a second group.
        """
        label = group_label.strip()
        if label == "":
            raise ValidationError("group_label must not be empty")

        existing = self.lookup_label(route_id, eqp_id, label)
        if existing is not None:
            return GroupAssignment(group_no=existing, group_label=label, newly_bound=False)

        last_conflict: ConflictError | None = None
        for attempt in range(1, self._bind_attempts + 1):
            candidate = self.next_group_no(route_id, eqp_id)
            try:
                self._store.bind_group_label(route_id, eqp_id, group_label=label, group_no=candidate)
            except ConflictError as exc:
                last_conflict = exc
                winner = self.lookup_label(route_id, eqp_id, label)
                if winner is not None:
                    return GroupAssignment(group_no=winner, group_label=label, newly_bound=False)
                self._logger.warning(
                    "group label bind collided route_id=%s eqp_id=%s label=%s group_no=%s attempt=%s",
                    route_id,
                    eqp_id,
                    label,
                    candidate,
                    attempt,
                )
                continue

            self._logger.info(
                "bound group label route_id=%s eqp_id=%s label=%s group_no=%s",
                route_id,
                eqp_id,
                label,
                candidate,
            )
            return GroupAssignment(group_no=candidate, group_label=label, newly_bound=True)

        raise ConflictError(
            f"could not bind group label {label!r} for route {route_id} and equipment {eqp_id}"
        ) from last_conflict
