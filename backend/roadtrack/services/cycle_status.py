from __future__ import annotations

import json
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from roadtrack.core.errors import ValidationError

CycleStatus = Literal["pending", "live", "completed"]
StatusMode = Literal["type_tag", "gps_match"]

CYCLE_STATUSES: tuple[CycleStatus, ...] = ("pending", "live", "completed")
STATUS_RANK: dict[str, int] = {status: rank for rank, status in enumerate(CYCLE_STATUSES)}

SAMPLE_TYPE_START = 0
SAMPLE_TYPE_PENDING = 1
SAMPLE_TYPE_COMPLETED = 2
_SAMPLE_TYPES = (SAMPLE_TYPE_START, SAMPLE_TYPE_PENDING, SAMPLE_TYPE_COMPLETED)


@dataclass(frozen=True)
class GpsPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class StatusResolution:
    status: CycleStatus
    reached_start: bool
    reached_end: bool


class CycleStatusResolver(Protocol):
    mode: StatusMode
    accepts_explicit_status: bool

    def resolve(
        self,
        samples: Sequence[dict[str, Any]],
        *,
        route_start_gps: Any = None,
        route_end_gps: Any = None,
    ) -> StatusResolution: ...


def furthest_status(*statuses: str | None) -> CycleStatus:
    """Return the most advanced of the given states; pending when none are known."""
    known = [status for status in statuses if status in STATUS_RANK]
    if not known:
        return "pending"
    return max(known, key=STATUS_RANK.__getitem__)  # type: ignore[return-value]


def parse_gps(value: Any) -> GpsPoint | None:
    """Normalize ``"lat,lng"``, ``{latitude, longitude}`` or ``{lat, lng}`` into a point.

    Anything that cannot be read as a finite coordinate pair yields ``None``.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        raw = value.strip()
        if raw == "":
            return None
        if raw.startswith("{"):
            try:
                decoded = json.loads(raw)
            except json.JSONDecodeError:
                return None
            return parse_gps(decoded)
        parts = [part.strip() for part in raw.split(",")]
        if len(parts) != 2:
            return None
        return _build_point(parts[0], parts[1])

    if isinstance(value, dict):
        if "latitude" in value and "longitude" in value:
            return _build_point(value["latitude"], value["longitude"])
        if "lat" in value and "lng" in value:
            return _build_point(value["lat"], value["lng"])
        return None

    if isinstance(value, (list, tuple)) and len(value) == 2:
        return _build_point(value[0], value[1])

    return None


def gps_matches(left: Any, right: Any, *, tolerance: float) -> bool:
    left_point = parse_gps(left)
    right_point = parse_gps(right)
    if left_point is None or right_point is None:
        return False
    # float subtraction noise must not push an exact-tolerance delta out of range
    limit = tolerance + 1e-9
    return (
        abs(left_point.latitude - right_point.latitude) <= limit
        and abs(left_point.longitude - right_point.longitude) <= limit
    )


def sample_type(sample: dict[str, Any]) -> int | None:
    raw = sample.get("type")
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValidationError(f"sample type must be one of {list(_SAMPLE_TYPES)}, got {raw!r}")
    if isinstance(raw, str) and raw.strip().isdigit():
        raw = int(raw.strip())
    if not isinstance(raw, int) or raw not in _SAMPLE_TYPES:
        raise ValidationError(f"sample type must be one of {list(_SAMPLE_TYPES)}, got {raw!r}")
    return raw


class TypeTagStatusResolver:
    mode: StatusMode = "type_tag"
    accepts_explicit_status = True

    def resolve(
        self,
        samples: Sequence[dict[str, Any]],
        *,
        route_start_gps: Any = None,
        route_end_gps: Any = None,
    ) -> StatusResolution:
        types = {sample_type(sample) for sample in samples}
        reached_end = SAMPLE_TYPE_COMPLETED in types
        reached_start = SAMPLE_TYPE_START in types or SAMPLE_TYPE_PENDING in types
        if reached_end:
            status: CycleStatus = "completed"
        elif reached_start:
            status = "live"
        else:
            status = "pending"
        return StatusResolution(status=status, reached_start=reached_start, reached_end=reached_end)


class GpsMatchStatusResolver:
    mode: StatusMode = "gps_match"
    accepts_explicit_status = False

    def __init__(self, *, tolerance: float = 0.001):
        self._tolerance = tolerance

    def resolve(
        self,
        samples: Sequence[dict[str, Any]],
        *,
        route_start_gps: Any = None,
        route_end_gps: Any = None,
    ) -> StatusResolution:
        reached_start = False
        reached_end = False
        for sample in samples:
            if not reached_start and gps_matches(
                sample.get("start_gps"), route_start_gps, tolerance=self._tolerance
            ):
                reached_start = True
            if not reached_end and gps_matches(
                sample.get("end_gps"), route_end_gps, tolerance=self._tolerance
            ):
                reached_end = True
            if reached_start and reached_end:
                break

        if reached_end:
            status: CycleStatus = "completed"
        elif reached_start:
            status = "live"
        else:
            status = "pending"
        return StatusResolution(status=status, reached_start=reached_start, reached_end=reached_end)


def build_status_resolver(mode: StatusMode, *, gps_tolerance: float = 0.001) -> CycleStatusResolver:
    if mode == "type_tag":
        return TypeTagStatusResolver()
    if mode == "gps_match":
        return GpsMatchStatusResolver(tolerance=gps_tolerance)
    raise ValueError(f"Unsupported status mode: {mode}")


def _build_point(raw_latitude: Any, raw_longitude: Any) -> GpsPoint | None:
    latitude = _to_coordinate(raw_latitude)
    longitude = _to_coordinate(raw_longitude)
    if latitude is None or longitude is None:
        return None
    if not (-90.0 <= latitude <= 90.0) or not (-180.0 <= longitude <= 180.0):
        return None
    return GpsPoint(latitude=latitude, longitude=longitude)


def _to_coordinate(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric):
        return None
    return numeric
