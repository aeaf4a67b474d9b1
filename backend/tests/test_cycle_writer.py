from __future__ import annotations

from contextlib import nullcontext
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest import TestCase

from roadtrack.core.config import Settings
from roadtrack.core.errors import (
    ConflictError,
    CycleOutOfBoundsError,
    EquipmentNotFoundError,
    RouteNotFoundError,
    ValidationError,
)
from roadtrack.services.cycle_writer import CycleWriterService, MovementSubmission
from roadtrack.services.field_packer import unpack_slots
from roadtrack.services.movement_store import CycleRecord, RouteReference

ROUTE = "ROT-00001"
EQUIPMENT = "EQP-00001"


class _InMemoryMovementStore:
    def __init__(self) -> None:
        self.routes: dict[str, RouteReference] = {}
        self.equipment: set[str] = set()
        self.cycles: dict[tuple[str, str, int, int], CycleRecord] = {}
        self.labels: dict[tuple[str, str, str], int] = {}
        self.pending_update_conflicts = 0
        self.insert_calls = 0
        self.update_calls = 0

    def add_route(
        self,
        route_id: str = ROUTE,
        eqp_id: str = EQUIPMENT,
        *,
        start_gps: str | None = None,
        end_gps: str | None = None,
    ) -> None:
        self.equipment.add(eqp_id)
        self.routes[route_id] = RouteReference(
            route_id=route_id,
            eqp_id=eqp_id,
            start_gps=start_gps,
            end_gps=end_gps,
        )

    def get_route_reference(self, route_id: str) -> RouteReference | None:
        return self.routes.get(route_id)

    def equipment_exists(self, eqp_id: str) -> bool:
        return eqp_id in self.equipment

    def get_cycle(self, route_id: str, eqp_id: str, *, cycle_number: int, group_no: int) -> CycleRecord | None:
        record = self.cycles.get((route_id, eqp_id, group_no, cycle_number))
        return _copy(record) if record is not None else None

    def get_latest_cycle(self, route_id: str, eqp_id: str, *, group_no: int | None = None) -> CycleRecord | None:
        matches = [
            record
            for record in self.cycles.values()
            if record.route_id == route_id
            and record.eqp_id == eqp_id
            and (group_no is None or record.group_no == group_no)
        ]
        if not matches:
            return None
        return _copy(max(matches, key=lambda record: (record.group_no, record.cycle_number)))

    def get_group_no_for_label(self, route_id: str, eqp_id: str, group_label: str) -> int | None:
        return self.labels.get((route_id, eqp_id, group_label))

    def get_max_group_no(self, route_id: str, eqp_id: str) -> int | None:
        known = [
            record.group_no
            for record in self.cycles.values()
            if record.route_id == route_id and record.eqp_id == eqp_id
        ]
        known.extend(
            group_no for (route, eqp, _label), group_no in self.labels.items() if (route, eqp) == (route_id, eqp_id)
        )
        return max(known) if known else None

    def bind_group_label(self, route_id: str, eqp_id: str, *, group_label: str, group_no: int) -> None:
        if (route_id, eqp_id, group_label) in self.labels:
            raise ConflictError(f"Group label {group_label!r} already exists")
        self.labels[(route_id, eqp_id, group_label)] = group_no

    def insert_cycle(self, record: CycleRecord) -> CycleRecord:
        self.insert_calls += 1
        if record.key in self.cycles:
            raise ConflictError("Movement cycle already exists")
        stored = replace(_copy(record), revision=0)
        self.cycles[record.key] = stored
        return _copy(stored)

    def update_cycle(self, record: CycleRecord) -> CycleRecord:
        self.update_calls += 1
        current = self.cycles.get(record.key)
        if self.pending_update_conflicts > 0 and current is not None:
            # another process wrote the row between our read and our write
            self.pending_update_conflicts -= 1
            current.revision += 1
        if current is None or current.revision != record.revision:
            raise ConflictError("Movement cycle changed during the update")
        stored = replace(_copy(record), revision=record.revision + 1)
        self.cycles[record.key] = stored
        return _copy(stored)


def _copy(record: CycleRecord) -> CycleRecord:
    return replace(record, sample_slots=list(record.sample_slots))


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


def _typed(*types: int) -> list[dict[str, object]]:
    return [{"latitude": 28.7041, "longitude": 77.1025, "speed": 4.2, "type": value} for value in types]


class CycleWriterTestCase(TestCase):
    settings_overrides: dict[str, object] = {}

    def setUp(self) -> None:
        self.store = _InMemoryMovementStore()
        self.store.add_route(start_gps="28.7041,77.1025", end_gps="28.7500,77.1500")
        self.clock = _Clock()
        self.settings = Settings(**self.settings_overrides)
        self.service = CycleWriterService(
            settings=self.settings,
            store_factory=lambda: nullcontext(self.store),
            clock=self.clock,
        )

    def submit(self, samples: list[dict[str, object]], **kwargs: object):
        return self.service.submit(
            MovementSubmission(route_id=ROUTE, eqp_id=EQUIPMENT, samples=samples, **kwargs)  # type: ignore[arg-type]
        )


class CycleLifecycleTests(CycleWriterTestCase):
    def test_create_append_complete_then_open_next_cycle(self) -> None:
        first = self.submit(_typed(0, 1, 1))

        self.assertTrue(first.created)
        self.assertEqual((first.cycle_number, first.group_no), (1, 1))
        self.assertEqual(first.status, "live")
        self.assertEqual(first.total_sample_count, 3)
        self.assertIsNone(first.end_time)
        self.assertFalse(first.can_create_next_cycle)

        second = self.submit(_typed(1, 2))

        self.assertFalse(second.created)
        self.assertEqual((second.cycle_number, second.group_no), (1, 1))
        self.assertEqual(second.existing_sample_count, 3)
        self.assertEqual(second.new_sample_count, 2)
        self.assertEqual(second.total_sample_count, 5)
        self.assertEqual(second.status, "completed")
        self.assertIsNotNone(second.end_time)
        self.assertEqual(second.start_time, first.start_time)
        self.assertTrue(second.can_create_next_cycle)

        third = self.submit(_typed(0))

        self.assertTrue(third.created)
        self.assertEqual((third.cycle_number, third.group_no), (2, 1))
        self.assertEqual(third.status, "live")
        self.assertEqual(third.total_sample_count, 1)

    def test_created_cycle_copies_route_reference_gps(self) -> None:
        self.submit(_typed(1))

        stored = self.store.cycles[(ROUTE, EQUIPMENT, 1, 1)]
        self.assertEqual(stored.start_gps, "28.7041,77.1025")
        self.assertEqual(stored.end_gps, "28.7500,77.1500")
        self.assertEqual(stored.active_slot_index, 1)

    def test_single_completed_batch_sets_both_timestamps(self) -> None:
        result = self.submit(_typed(0, 2))

        self.assertEqual(result.status, "completed")
        self.assertEqual(result.start_time, result.end_time)

    def test_untagged_samples_stay_pending(self) -> None:
        result = self.submit([{"latitude": 28.7, "longitude": 77.1}])

        self.assertEqual(result.status, "pending")
        self.assertFalse(result.can_create_next_cycle)

    def test_appending_to_completed_cycle_keeps_status_and_end_time(self) -> None:
        completed = self.submit(_typed(2))

        late = self.submit(_typed(1), cycle_number=1)

        self.assertFalse(late.created)
        self.assertEqual(late.status, "completed")
        self.assertEqual(late.end_time, completed.end_time)
        self.assertEqual(late.total_sample_count, 2)

    def test_inserted_on_tracks_every_write(self) -> None:
        self.submit(_typed(1))
        created_at = self.store.cycles[(ROUTE, EQUIPMENT, 1, 1)].inserted_on

        self.submit(_typed(1))

        self.assertGreater(self.store.cycles[(ROUTE, EQUIPMENT, 1, 1)].inserted_on, created_at)


class GroupRolloverTests(CycleWriterTestCase):
    def test_completed_cycle_at_cap_rolls_into_next_group(self) -> None:
        self.submit(_typed(2), max_cycles_per_group=2)
        second = self.submit(_typed(2), max_cycles_per_group=2)

        self.assertEqual((second.cycle_number, second.group_no), (2, 1))
        self.assertFalse(second.can_create_next_cycle)

        rolled = self.submit(_typed(0), max_cycles_per_group=2)

        self.assertTrue(rolled.created)
        self.assertEqual((rolled.cycle_number, rolled.group_no), (1, 2))

    def test_default_cap_comes_from_settings(self) -> None:
        for _ in range(6):
            self.submit(_typed(2))

        rolled = self.submit(_typed(1))

        self.assertEqual((rolled.cycle_number, rolled.group_no), (1, 2))
        self.assertEqual(rolled.max_cycles_per_group, 6)

    def test_explicit_cycle_uses_arithmetic_grouping(self) -> None:
        result = self.submit(_typed(1), cycle_number=7)

        self.assertEqual((result.cycle_number, result.group_no), (1, 2))

        again = self.submit(_typed(1), cycle_number=12)
        self.assertEqual((again.cycle_number, again.group_no), (6, 2))

    def test_explicit_cycle_appends_when_row_exists(self) -> None:
        self.submit(_typed(1), cycle_number=3)

        result = self.submit(_typed(1), cycle_number=3)

        self.assertFalse(result.created)
        self.assertEqual(result.total_sample_count, 2)

    def test_explicit_cycle_above_cap_in_group_is_rejected(self) -> None:
        with self.assertRaises(CycleOutOfBoundsError) as ctx:
            self.submit(_typed(1), cycle_number=7, group_no=1)

        self.assertEqual(ctx.exception.max_cycles_per_group, 6)
        self.assertEqual(self.store.insert_calls, 0)

    def test_rejected_labelled_cycle_leaves_label_unbound(self) -> None:
        with self.assertRaises(CycleOutOfBoundsError):
            self.submit(_typed(1), cycle_number=9, group_label="night")

        self.assertEqual(self.store.labels, {})

        result = self.submit(_typed(1))
        self.assertEqual((result.group_no, result.cycle_number), (1, 1))

    def test_group_no_selector_targets_that_group(self) -> None:
        self.submit(_typed(1))
        result = self.submit(_typed(1), group_no=4)

        self.assertTrue(result.created)
        self.assertEqual((result.cycle_number, result.group_no), (1, 4))

        follow_up = self.submit(_typed(2), group_no=4)
        self.assertFalse(follow_up.created)
        self.assertEqual(follow_up.status, "completed")

    def test_group_labels_bind_stable_groups(self) -> None:
        morning = self.submit(_typed(1), group_label="morning")
        evening = self.submit(_typed(1), group_label="evening")
        morning_again = self.submit(_typed(2), group_label="morning")

        self.assertEqual((morning.group_no, morning.group_label), (1, "morning"))
        self.assertEqual((evening.group_no, evening.group_label), (2, "evening"))
        self.assertFalse(morning_again.created)
        self.assertEqual((morning_again.group_no, morning_again.cycle_number), (1, 1))
        self.assertEqual(morning_again.status, "completed")

        next_morning = self.submit(_typed(0), group_label="morning")
        self.assertEqual((next_morning.group_no, next_morning.cycle_number), (1, 2))

    def test_exhausted_label_group_continues_on_latest_cycle(self) -> None:
        self.submit(_typed(2), group_label="shift", max_cycles_per_group=1)

        result = self.submit(_typed(1), group_label="shift", max_cycles_per_group=1)

        self.assertTrue(result.created)
        self.assertEqual((result.group_no, result.cycle_number), (2, 1))


class SampleHandlingTests(CycleWriterTestCase):
    def test_overflow_keeps_first_two_thousand_samples(self) -> None:
        samples = [{"seq": index, "type": 1} for index in range(2001)]

        with self.assertLogs("roadtrack.cycle_writer", level="WARNING") as logs:
            result = self.submit(samples)

        self.assertEqual(result.total_sample_count, 2000)
        self.assertTrue(result.capacity_exceeded)
        self.assertEqual(result.dropped_sample_count, 1)
        self.assertEqual(result.active_slot_index, 10)
        self.assertEqual(len(result.warnings), 1)
        self.assertEqual(result.warnings[0].capacity, 2000)
        self.assertIn("capacity exceeded", "\n".join(logs.output))

        stored = unpack_slots(self.store.cycles[(ROUTE, EQUIPMENT, 1, 1)].sample_slots)
        self.assertEqual(stored[-1]["seq"], 1999)

    def test_append_spills_into_following_slots(self) -> None:
        self.submit([{"seq": index, "type": 1} for index in range(150)])

        result = self.submit([{"seq": index, "type": 1} for index in range(150, 450)])

        self.assertEqual(result.total_sample_count, 450)
        self.assertEqual(result.active_slot_index, 3)
        stored = unpack_slots(self.store.cycles[(ROUTE, EQUIPMENT, 1, 1)].sample_slots)
        self.assertEqual([sample["seq"] for sample in stored], list(range(450)))

    def test_samples_with_known_ids_are_not_stored_twice(self) -> None:
        self.submit([{"sample_id": "a", "type": 1}, {"sample_id": "b", "type": 1}])

        result = self.submit(
            [{"sample_id": "b", "type": 1}, {"sample_id": "c", "type": 1}, {"sample_id": "c", "type": 1}]
        )

        self.assertEqual(result.total_sample_count, 3)
        self.assertEqual(result.new_sample_count, 1)
        self.assertEqual(result.duplicate_sample_count, 2)

    def test_samples_without_ids_are_always_appended(self) -> None:
        self.submit(_typed(1))
        result = self.submit(_typed(1))

        self.assertEqual(result.total_sample_count, 2)
        self.assertEqual(result.duplicate_sample_count, 0)


class StatusModeTests(CycleWriterTestCase):
    def test_explicit_status_is_trusted_in_type_tag_mode(self) -> None:
        result = self.submit(_typed(1), explicit_status="completed")

        self.assertEqual(result.status, "completed")
        self.assertIsNotNone(result.end_time)

    def test_explicit_status_never_regresses_a_cycle(self) -> None:
        self.submit(_typed(1))

        result = self.submit(_typed(1), explicit_status="pending")

        self.assertEqual(result.status, "live")


class GpsStatusModeTests(CycleWriterTestCase):
    settings_overrides = {"movement_status_mode": "gps_match"}

    def test_reaching_route_endpoints_drives_status(self) -> None:
        self.assertEqual(self.service.status_mode, "gps_match")

        started = self.submit([{"start_gps": {"latitude": 28.7042, "longitude": 77.1024}}])
        self.assertEqual(started.status, "live")

        finished = self.submit([{"end_gps": "28.7501,77.1499"}])
        self.assertEqual(finished.status, "completed")
        self.assertFalse(finished.created)

    def test_explicit_status_is_ignored(self) -> None:
        result = self.submit([{"start_gps": "0,0"}], explicit_status="completed")

        self.assertEqual(result.status, "pending")

    def test_type_tags_are_not_validated(self) -> None:
        result = self.submit([{"type": "anything"}])

        self.assertEqual(result.status, "pending")


class SubmissionValidationTests(CycleWriterTestCase):
    def test_unknown_route(self) -> None:
        with self.assertRaises(RouteNotFoundError):
            self.service.submit(MovementSubmission(route_id="ROT-09999", eqp_id=EQUIPMENT, samples=_typed(1)))

    def test_unknown_equipment(self) -> None:
        with self.assertRaises(EquipmentNotFoundError):
            self.service.submit(MovementSubmission(route_id=ROUTE, eqp_id="EQP-09999", samples=_typed(1)))

    def test_route_owned_by_other_equipment(self) -> None:
        self.store.equipment.add("EQP-00002")

        with self.assertRaises(ValidationError):
            self.service.submit(MovementSubmission(route_id=ROUTE, eqp_id="EQP-00002", samples=_typed(1)))

    def test_malformed_samples(self) -> None:
        cases = (
            [],
            [{"type": 7}],
            ["not an object"],
        )
        for samples in cases:
            with self.subTest(samples=samples):
                with self.assertRaises(ValidationError):
                    self.submit(samples)  # type: ignore[arg-type]
        self.assertEqual(self.store.insert_calls, 0)

    def test_group_selectors_are_mutually_exclusive(self) -> None:
        with self.assertRaises(ValidationError):
            self.submit(_typed(1), group_no=1, group_label="morning")

    def test_non_positive_numbers(self) -> None:
        for kwargs in ({"cycle_number": 0}, {"group_no": 0}, {"max_cycles_per_group": -1}):
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ValidationError):
                    self.submit(_typed(1), **kwargs)

    def test_blank_identifiers(self) -> None:
        with self.assertRaises(ValidationError):
            self.service.submit(MovementSubmission(route_id="  ", eqp_id=EQUIPMENT, samples=_typed(1)))

    def test_identifiers_are_trimmed(self) -> None:
        result = self.service.submit(MovementSubmission(route_id=f" {ROUTE} ", eqp_id=EQUIPMENT, samples=_typed(1)))

        self.assertEqual(result.route_id, ROUTE)


class ConflictRetryTests(CycleWriterTestCase):
    def test_update_conflict_is_retried_on_fresh_state(self) -> None:
        self.submit(_typed(1))
        self.store.pending_update_conflicts = 1

        with self.assertLogs("roadtrack.cycle_writer", level="WARNING"):
            result = self.submit(_typed(2))

        self.assertEqual(result.status, "completed")
        self.assertEqual(self.store.update_calls, 2)

    def test_conflict_surfaces_after_last_attempt(self) -> None:
        self.submit(_typed(1))
        self.store.pending_update_conflicts = 10

        with self.assertLogs("roadtrack.cycle_writer", level="WARNING"):
            with self.assertRaises(ConflictError):
                self.submit(_typed(1))

        self.assertEqual(self.store.update_calls, self.settings.movement_write_retry_attempts)
        self.assertEqual(self.store.cycles[(ROUTE, EQUIPMENT, 1, 1)].total_sample_count, 1)
