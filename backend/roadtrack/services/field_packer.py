from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from roadtrack.core.errors import StoreError, ValidationError

Sample = dict[str, Any]


@dataclass(frozen=True)
class PackResult:
    slots: tuple[str | None, ...]
    active_slot_index: int
    total_stored: int
    capacity_exceeded: bool
    dropped_count: int

    @property
    def slot_sizes(self) -> tuple[int, ...]:
        return tuple(len(decode_batch(slot)) if slot is not None else 0 for slot in self.slots)


def encode_batch(samples: Sequence[Sample]) -> str:
    return json.dumps(list(samples), separators=(",", ":"), default=str)


def decode_batch(raw: str) -> list[Sample]:
    try:
        decoded = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise StoreError(f"stored sample batch is not valid JSON: {exc}") from exc
    if not isinstance(decoded, list) or not all(isinstance(item, dict) for item in decoded):
        raise StoreError("stored sample batch is not a list of sample objects")
    return decoded


def unpack_slots(slots: Iterable[str | None] | None) -> list[Sample]:
    """Rebuild the stored sample sequence by concatenating non-empty slots in slot order."""
    samples: list[Sample] = []
    for raw in slots or ():
        if raw is None:
            continue
        samples.extend(decode_batch(raw))
    return samples


def pack(
    existing_samples: Sequence[Sample],
    new_samples: Sequence[Sample],
    *,
    slot_count: int,
    slot_capacity: int,
) -> PackResult:
    if slot_count < 1:
        raise ValidationError("slot_count must be at least 1")
    if slot_capacity < 1:
        raise ValidationError("slot_capacity must be at least 1")

    combined = [*existing_samples, *new_samples]
    capacity = slot_count * slot_capacity
    kept = combined[:capacity]
    dropped = len(combined) - len(kept)

    slots: list[str | None] = [None] * slot_count
    active_slot_index = 1
    for slot_idx in range(slot_count):
        batch = kept[slot_idx * slot_capacity : (slot_idx + 1) * slot_capacity]
        if not batch:
            break
        slots[slot_idx] = encode_batch(batch)
        active_slot_index = slot_idx + 1

    return PackResult(
        slots=tuple(slots),
        active_slot_index=active_slot_index,
        total_stored=len(kept),
        capacity_exceeded=dropped > 0,
        dropped_count=dropped,
    )
