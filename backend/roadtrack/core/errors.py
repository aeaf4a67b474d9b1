from __future__ import annotations


class MovementError(Exception):
    kind = "movement_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(MovementError):
    kind = "validation"


class CycleOutOfBoundsError(ValidationError):
    kind = "cycle_out_of_bounds"

    def __init__(self, *, cycle_number: int, max_cycles_per_group: int):
        self.cycle_number = cycle_number
        self.max_cycles_per_group = max_cycles_per_group
        super().__init__(
            f"cycle {cycle_number} exceeds the maximum of {max_cycles_per_group} cycles per group"
        )


class NotFoundError(MovementError):
    kind = "not_found"


class RouteNotFoundError(NotFoundError):
    kind = "route_not_found"

    def __init__(self, route_id: str):
        self.route_id = route_id
        super().__init__(f"Route {route_id} does not exist")


class EquipmentNotFoundError(NotFoundError):
    kind = "equipment_not_found"

    def __init__(self, eqp_id: str):
        self.eqp_id = eqp_id
        super().__init__(f"Equipment {eqp_id} does not exist")


class ForeignKeyViolationError(NotFoundError):
    kind = "foreign_key"


class ConflictError(MovementError):
    kind = "conflict"


class CapacityExceededError(MovementError):
    """Advisory: the write went through but samples beyond the slot capacity were dropped."""

    kind = "capacity_exceeded"

    def __init__(self, *, dropped: int, capacity: int):
        self.dropped = dropped
        self.capacity = capacity
        super().__init__(f"{dropped} samples dropped; cycle capacity of {capacity} samples reached")


class StoreError(MovementError):
    kind = "store"


class IdSequenceExhaustedError(StoreError):
    kind = "id_sequence_exhausted"

    def __init__(self, *, table_name: str, id_for: str, max_value: int):
        self.table_name = table_name
        self.id_for = id_for
        super().__init__(f"ID limit of {max_value} reached for {table_name}.{id_for}")
