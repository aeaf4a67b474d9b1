from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from roadtrack.core.config import Settings
from roadtrack.core.errors import (
    CapacityExceededError,
    ConflictError,
    CycleOutOfBoundsError,
    EquipmentNotFoundError,
    RouteNotFoundError,
    ValidationError,
)
from roadtrack.services.cycle_status import (
    CYCLE_STATUSES,
    CycleStatus,
    CycleStatusResolver,
    StatusResolution,
    build_status_resolver,
    furthest_status,
    sample_type,
)
from roadtrack.services.field_packer import PackResult, Sample, pack, unpack_slots
from roadtrack.services.group_allocator import (
    GroupAllocator,
    arithmetic_group_no,
    cycle_within_group,
)
from roadtrack.services.keyed_lock import KeyedLock
from roadtrack.services.movement_store import CycleRecord, MovementStore, RouteReference

StoreFactory = Callable[[], AbstractContextManager[MovementStore]]


@dataclass(frozen=True)
class MovementSubmission:
    route_id: str
    eqp_id: str
    samples: Sequence[Sample]
    cycle_number: int | None = None
    group_no: int | None = None
    group_label: str | None = None
    max_cycles_per_group: int | None = None
    explicit_status: CycleStatus | None = None


@dataclass(frozen=True)
class CycleWriteResult:
    route_id: str
    eqp_id: str
    cycle_number: int
    group_no: int
    group_label: str | None
    status: CycleStatus
    created: bool
    existing_sample_count: int
    new_sample_count: int
    total_sample_count: int
    duplicate_sample_count: int
    dropped_sample_count: int
    active_slot_index: int
    capacity_exceeded: bool
    can_create_next_cycle: bool
    max_cycles_per_group: int
    start_time: datetime | None
    end_time: datetime | None
    warnings: tuple[CapacityExceededError, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class _CycleTarget:
    cycle_number: int
    group_no: int
    group_label: str | None
    existing: CycleRecord | None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CycleWriterService:
    def __init__(
        self,
        *,
        settings: Settings,
        store_factory: StoreFactory,
        status_resolver: CycleStatusResolver | None = None,
        clock: Callable[[], datetime] = _utc_now,
        locks: KeyedLock | None = None,
    ):
        self._settings = settings
        self._store_factory = store_factory
        self._status_resolver = status_resolver or build_status_resolver(
            settings.movement_status_mode,
            gps_tolerance=settings.movement_gps_tolerance,
        )
        self._clock = clock
        self._locks = locks or KeyedLock()
        self._logger = logging.getLogger("roadtrack.cycle_writer")

    @property
    def status_mode(self) -> str:
        return self._status_resolver.mode

    def submit(self, submission: MovementSubmission) -> CycleWriteResult:
        max_cycles = self._validate(submission)
        route_id = submission.route_id.strip()
        eqp_id = submission.eqp_id.strip()
        attempts = self._settings.movement_write_retry_attempts

        with self._locks.hold((route_id, eqp_id)):
            for attempt in range(1, attempts + 1):
                try:
                    with self._store_factory() as store:
                        return self._submit_once(
                            store,
                            submission,
                            route_id=route_id,
                            eqp_id=eqp_id,
                            max_cycles=max_cycles,
                        )
                except ConflictError as exc:
                    if attempt >= attempts:
                        raise
                    self._logger.warning(
                        "movement write conflict, retrying route_id=%s eqp_id=%s attempt=%s error=%s",
                        route_id,
                        eqp_id,
                        attempt,
                        exc.message,
                    )
        raise AssertionError("unreachable")

    def _validate(self, submission: MovementSubmission) -> int:
        if not submission.route_id or not submission.route_id.strip():
            raise ValidationError("route_id is required")
        if not submission.eqp_id or not submission.eqp_id.strip():
            raise ValidationError("eqp_id is required")
        if submission.group_no is not None and submission.group_label is not None:
            raise ValidationError("group_no and group_label are mutually exclusive")
        if submission.group_no is not None and submission.group_no < 1:
            raise ValidationError("group_no must be at least 1")
        if submission.cycle_number is not None and submission.cycle_number < 1:
            raise ValidationError("cycle must be at least 1")
        if submission.explicit_status is not None and submission.explicit_status not in CYCLE_STATUSES:
            raise ValidationError(f"status must be one of {list(CYCLE_STATUSES)}")

        max_cycles = submission.max_cycles_per_group or self._settings.movement_max_cycles_per_group
        if max_cycles < 1:
            raise ValidationError("max_cycles_per_group must be at least 1")

        if not submission.samples:
            raise ValidationError("samples must contain at least one entry")
        for index, sample in enumerate(submission.samples):
            if not isinstance(sample, dict):
                raise ValidationError(f"samples[{index}] must be an object")
            if self._status_resolver.mode == "type_tag":
                try:
                    sample_type(sample)
                except ValidationError as exc:
                    raise ValidationError(f"samples[{index}]: {exc.message}") from exc
        return max_cycles

    def _submit_once(
        self,
        store: MovementStore,
        submission: MovementSubmission,
        *,
        route_id: str,
        eqp_id: str,
        max_cycles: int,
    ) -> CycleWriteResult:
        route = store.get_route_reference(route_id)
        if route is None:
            raise RouteNotFoundError(route_id)
        if not store.equipment_exists(eqp_id):
            raise EquipmentNotFoundError(eqp_id)
        if route.eqp_id != eqp_id:
            raise ValidationError(f"Route {route_id} is locked to equipment {route.eqp_id}, not {eqp_id}")

        target = self._resolve_target(
            store,
            submission,
            route_id=route_id,
            eqp_id=eqp_id,
            max_cycles=max_cycles,
        )
        if target.existing is None and target.cycle_number > max_cycles:
            raise CycleOutOfBoundsError(cycle_number=target.cycle_number, max_cycles_per_group=max_cycles)

        existing = target.existing
        if existing is None:
            return self._create_cycle(store, route, target, submission, max_cycles=max_cycles)
        return self._append_to_cycle(store, route, target, existing, submission, max_cycles=max_cycles)

    def _resolve_target(
        self,
        store: MovementStore,
        submission: MovementSubmission,
        *,
        route_id: str,
        eqp_id: str,
        max_cycles: int,
    ) -> _CycleTarget:
        allocator = GroupAllocator(store)
        label = submission.group_label.strip() if submission.group_label is not None else None

        if submission.cycle_number is not None:
            if submission.group_no is None and label is None:
                group_no = arithmetic_group_no(submission.cycle_number, max_cycles)
                cycle_number = cycle_within_group(submission.cycle_number, group_no, max_cycles)
            else:
                cycle_number = submission.cycle_number
                # reject before a label gets bound
                if cycle_number > max_cycles:
                    raise CycleOutOfBoundsError(cycle_number=cycle_number, max_cycles_per_group=max_cycles)
                if submission.group_no is not None:
                    group_no = submission.group_no
                else:
                    group_no = allocator.allocate_for_label(route_id, eqp_id, label).group_no

            existing = store.get_cycle(route_id, eqp_id, cycle_number=cycle_number, group_no=group_no)
            if existing is not None:
                label = existing.group_label or label
            return _CycleTarget(
                cycle_number=cycle_number,
                group_no=group_no,
                group_label=label,
                existing=existing,
            )

        if label is not None or submission.group_no is not None:
            if label is not None:
                group_no = allocator.allocate_for_label(route_id, eqp_id, label).group_no
            else:
                group_no = submission.group_no  # type: ignore[assignment]
            latest_in_group = store.get_latest_cycle(route_id, eqp_id, group_no=group_no)
            if latest_in_group is None:
                return _CycleTarget(cycle_number=1, group_no=group_no, group_label=label, existing=None)
            if not _is_exhausted(latest_in_group, max_cycles):
                return _next_target(latest_in_group, max_cycles)
            # the selected group is full and closed; continue on the pair's newest cycle

        latest = store.get_latest_cycle(route_id, eqp_id)
        if latest is None:
            return _CycleTarget(
                cycle_number=1,
                group_no=allocator.next_group_no(route_id, eqp_id),
                group_label=None,
                existing=None,
            )
        if _is_exhausted(latest, max_cycles):
            return _CycleTarget(
                cycle_number=1,
                group_no=allocator.next_group_no(route_id, eqp_id),
                group_label=None,
                existing=None,
            )
        return _next_target(latest, max_cycles)

    def _create_cycle(
        self,
        store: MovementStore,
        route: RouteReference,
        target: _CycleTarget,
        submission: MovementSubmission,
        *,
        max_cycles: int,
    ) -> CycleWriteResult:
        new_samples, duplicates = _drop_duplicate_samples([], submission.samples)
        packed = pack(
            [],
            new_samples,
            slot_count=self._settings.movement_slot_count,
            slot_capacity=self._settings.movement_slot_capacity,
        )
        resolution = self._resolve_status(new_samples, route)
        status = self._merge_status(None, resolution, submission.explicit_status)
        now = self._clock()

        record = CycleRecord(
            route_id=route.route_id,
            eqp_id=route.eqp_id,
            cycle_number=target.cycle_number,
            group_no=target.group_no,
            group_label=target.group_label,
            sample_slots=list(packed.slots),
            active_slot_index=packed.active_slot_index,
            total_sample_count=packed.total_stored,
            status=status,
            start_gps=route.start_gps,
            end_gps=route.end_gps,
            start_time=now,
            end_time=now if status == "completed" else None,
            inserted_on=now,
        )
        stored = store.insert_cycle(record)
        return self._build_result(
            stored,
            packed,
            created=True,
            existing_count=0,
            new_count=len(new_samples),
            duplicate_count=duplicates,
            max_cycles=max_cycles,
        )

    def _append_to_cycle(
        self,
        store: MovementStore,
        route: RouteReference,
        target: _CycleTarget,
        existing: CycleRecord,
        submission: MovementSubmission,
        *,
        max_cycles: int,
    ) -> CycleWriteResult:
        existing_samples = unpack_slots(existing.sample_slots)
        new_samples, duplicates = _drop_duplicate_samples(existing_samples, submission.samples)
        packed = pack(
            existing_samples,
            new_samples,
            slot_count=self._settings.movement_slot_count,
            slot_capacity=self._settings.movement_slot_capacity,
        )
        # dropped samples still count as observed for the lifecycle
        resolution = self._resolve_status([*existing_samples, *new_samples], route)
        status = self._merge_status(existing.status, resolution, submission.explicit_status)
        now = self._clock()

        newly_completed = status == "completed" and existing.status != "completed"
        existing.sample_slots = list(packed.slots)
        existing.active_slot_index = packed.active_slot_index
        existing.total_sample_count = max(existing.total_sample_count, packed.total_stored)
        existing.status = status
        existing.group_label = existing.group_label or target.group_label
        existing.end_time = now if newly_completed else existing.end_time
        existing.inserted_on = now
        if existing.start_time is None:
            existing.start_time = now

        stored = store.update_cycle(existing)
        return self._build_result(
            stored,
            packed,
            created=False,
            existing_count=len(existing_samples),
            new_count=len(new_samples),
            duplicate_count=duplicates,
            max_cycles=max_cycles,
        )

    def _resolve_status(self, samples: Sequence[Sample], route: RouteReference) -> StatusResolution:
        return self._status_resolver.resolve(
            samples,
            route_start_gps=route.start_gps,
            route_end_gps=route.end_gps,
        )

    def _merge_status(
        self,
        previous: str | None,
        resolution: StatusResolution,
        explicit_status: CycleStatus | None,
    ) -> CycleStatus:
        candidate: CycleStatus = resolution.status
        if explicit_status is not None:
            if self._status_resolver.accepts_explicit_status:
                if explicit_status != resolution.status:
                    self._logger.debug(
                        "explicit status overrides derived status explicit=%s derived=%s",
                        explicit_status,
                        resolution.status,
                    )
                candidate = explicit_status
            else:
                self._logger.debug(
                    "ignoring explicit status in %s mode status=%s",
                    self._status_resolver.mode,
                    explicit_status,
                )
        return furthest_status(previous, candidate)

    def _build_result(
        self,
        record: CycleRecord,
        packed: PackResult,
        *,
        created: bool,
        existing_count: int,
        new_count: int,
        duplicate_count: int,
        max_cycles: int,
    ) -> CycleWriteResult:
        warnings: tuple[CapacityExceededError, ...] = ()
        if packed.capacity_exceeded:
            warning = CapacityExceededError(
                dropped=packed.dropped_count,
                capacity=self._settings.movement_slot_count * self._settings.movement_slot_capacity,
            )
            warnings = (warning,)
            self._logger.warning(
                "cycle capacity exceeded route_id=%s eqp_id=%s group_no=%s cycle=%s dropped=%s",
                record.route_id,
                record.eqp_id,
                record.group_no,
                record.cycle_number,
                packed.dropped_count,
            )

        status: CycleStatus = record.status  # type: ignore[assignment]
        self._logger.info(
            "%s movement cycle route_id=%s eqp_id=%s group_no=%s cycle=%s status=%s new=%s total=%s",
            "created" if created else "appended",
            record.route_id,
            record.eqp_id,
            record.group_no,
            record.cycle_number,
            status,
            new_count,
            record.total_sample_count,
        )
        return CycleWriteResult(
            route_id=record.route_id,
            eqp_id=record.eqp_id,
            cycle_number=record.cycle_number,
            group_no=record.group_no,
            group_label=record.group_label,
            status=status,
            created=created,
            existing_sample_count=existing_count,
            new_sample_count=new_count,
            total_sample_count=record.total_sample_count,
            duplicate_sample_count=duplicate_count,
            dropped_sample_count=packed.dropped_count,
            active_slot_index=record.active_slot_index,
            capacity_exceeded=packed.capacity_exceeded,
            can_create_next_cycle=status == "completed" and record.cycle_number < max_cycles,
            max_cycles_per_group=max_cycles,
            start_time=record.start_time,
            end_time=record.end_time,
            warnings=warnings,
        )


def _is_exhausted(record: CycleRecord, max_cycles: int) -> bool:
    return record.status == "completed" and record.cycle_number >= max_cycles


def _next_target(latest: CycleRecord, max_cycles: int) -> _CycleTarget:
    if latest.status == "completed":
        return _CycleTarget(
            cycle_number=latest.cycle_number + 1,
            group_no=latest.group_no,
            group_label=latest.group_label,
            existing=None,
        )
    return _CycleTarget(
        cycle_number=latest.cycle_number,
        group_no=latest.group_no,
        group_label=latest.group_label,
        existing=latest,
    )


def _sample_key(sample: Sample) -> str | None:
    raw: Any = sample.get("sample_id")
    if raw is None:
        return None
    return str(raw)


def _drop_duplicate_samples(
    existing: Sequence[Sample],
    incoming: Sequence[Sample],
) -> tuple[list[Sample], int]:
    seen = {key for key in (_sample_key(sample) for sample in existing) if key is not None}
    accepted: list[Sample] = []
    duplicates = 0
    for sample in incoming:
        key = _sample_key(sample)
        if key is not None:
            if key in seen:
                duplicates += 1
                continue
            seen.add(key)
        accepted.append(dict(sample))
    return accepted, duplicates
