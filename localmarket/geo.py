from __future__ import annotations

import heapq
import logging
import math
import threading
from dataclasses import dataclass
from decimal import Decimal
from numbers import Real
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from localmarket.errors import InvalidCoordinate, InvalidRadius

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6_371_000.0

# Grid resolutions in degrees, finest first
GRID_LEVELS = (0.01, 0.1, 1.0, 10.0)


def _coordinate(value, name: str, limit: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        raise InvalidCoordinate(f"{name} must be a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value) or not -limit <= value <= limit:
        raise InvalidCoordinate(f"{name} must be within [-{limit:g}, {limit:g}], got {value!r}")
    return value


@dataclass(slots=True, frozen=True)
class GeoPoint:
    """WGS-84 point in decimal degrees. Construction validates the range."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "latitude", _coordinate(self.latitude, "latitude", 90.0))
        object.__setattr__(self, "longitude", _coordinate(self.longitude, "longitude", 180.0))


PointLike = Union[GeoPoint, Tuple[float, float]]


def as_point(value: PointLike) -> GeoPoint:
    if isinstance(value, GeoPoint):
        return value
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return GeoPoint(value[0], value[1])
    raise InvalidCoordinate(f"Expected (latitude, longitude), got {value!r}")


def distance_meters(a: PointLike, b: PointLike) -> float:
    """Great-circle distance by the haversine formula on a 6371 km sphere."""
    a, b = as_point(a), as_point(b)
    phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
    d_phi = phi2 - phi1
    d_lambda = math.radians(b.longitude - a.longitude)
    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


def validate_radius(radius_meters) -> float:
    if isinstance(radius_meters, bool) or not isinstance(radius_meters, (Real, Decimal)):
        raise InvalidRadius(f"radius must be a number of meters, got {radius_meters!r}")
    radius = float(radius_meters)
    if not math.isfinite(radius) or radius < 0:
        raise InvalidRadius(f"radius must be a finite non-negative number, got {radius_meters!r}")
    return radius


class _Grid:
    """One resolution of lat/long buckets. Columns wrap at the antimeridian."""

    def __init__(self, cell_deg: float):
        self.cell_deg = cell_deg
        self.rows = round(180 / cell_deg)
        self.cols = round(360 / cell_deg)
        self.cells: Dict[Tuple[int, int], Set[str]] = {}

    def _row(self, lat: float) -> int:
        return min(max(int((lat + 90.0) // self.cell_deg), 0), self.rows - 1)

    def _col(self, lon: float) -> int:
        return int(math.floor((lon + 180.0) / self.cell_deg)) % self.cols

    def key(self, point: GeoPoint) -> Tuple[int, int]:
        return self._row(point.latitude), self._col(point.longitude)

    def add(self, entity_id: str, point: GeoPoint) -> None:
        self.cells.setdefault(self.key(point), set()).add(entity_id)

    def discard(self, entity_id: str, point: GeoPoint) -> None:
        key = self.key(point)
        bucket = self.cells.get(key)
        if bucket is not None:
            bucket.discard(entity_id)
            if not bucket:
                del self.cells[key]

    def candidates(self, center: GeoPoint, angular: float) -> Set[str]:
        span = math.degrees(angular)
        lat, lon = center.latitude, center.longitude
        row_lo, row_hi = self._row(max(-90.0, lat - span)), self._row(min(90.0, lat + span))

        cols: Optional[Set[int]] = None
        if lat + span < 90.0 and lat - span > -90.0:
            # spherical bounding box: widest longitude offset of the circle
            ratio = min(1.0, math.sin(angular) / math.cos(math.radians(lat)))
            lon_span = math.degrees(math.asin(ratio))
            col_lo = int(math.floor((lon - lon_span + 180.0) / self.cell_deg))
            col_hi = int(math.floor((lon + lon_span + 180.0) / self.cell_deg))
            if col_hi - col_lo + 1 < self.cols:
                cols = {c % self.cols for c in range(col_lo, col_hi + 1)}

        found: Set[str] = set()
        wanted = (row_hi - row_lo + 1) * (len(cols) if cols is not None else self.cols)
        if cols is None or wanted > len(self.cells):
            for (row, col), ids in self.cells.items():
                if row_lo <= row <= row_hi and (cols is None or col in cols):
                    found |= ids
            return found

        for row in range(row_lo, row_hi + 1):
            for col in cols:
                ids = self.cells.get((row, col))
                if ids:
                    found |= ids
        return found


class GeoIndex:
    """
    Entity locations bucketed on several grid resolutions.

    A radius query uses the finest grid whose cell is at least as wide as the
    radius, so only a handful of cells around the center are scanned.
    """

    def __init__(self) -> None:
        self._points: Dict[str, GeoPoint] = {}
        self._grids = [_Grid(cell) for cell in GRID_LEVELS]
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._points)

    def location_of(self, entity_id: str) -> Optional[GeoPoint]:
        return self._points.get(entity_id)

    def index_location(self, entity_id: str, latitude: float, longitude: float) -> GeoPoint:
        point = GeoPoint(latitude, longitude)
        with self._lock:
            previous = self._points.get(entity_id)
            if previous is not None:
                for grid in self._grids:
                    grid.discard(entity_id, previous)
            for grid in self._grids:
                grid.add(entity_id, point)
            self._points[entity_id] = point
        logger.debug("indexed %s at (%s, %s)", entity_id, point.latitude, point.longitude)
        return point

    def _grid_for(self, angular: float) -> _Grid:
        span = math.degrees(angular)
        for grid in self._grids:
            if grid.cell_deg >= span:
                return grid
        return self._grids[-1]

    def within_radius(self, center: PointLike, radius_meters: float) -> Iterator[Tuple[str, float]]:
        """
        (entity_id, distance_meters) pairs within the radius, nearest first.

        Candidates and distances are fixed when this is called; the ordering
        is pulled lazily off a heap, so taking only the first few is cheap.
        Later index_location calls do not affect an iterator already returned.
        """
        center = as_point(center)
        radius = validate_radius(radius_meters)
        angular = radius / EARTH_RADIUS_METERS

        with self._lock:
            if angular >= math.pi:
                ids = set(self._points)
            else:
                ids = self._grid_for(angular).candidates(center, angular)
            snapshot = [(entity_id, self._points[entity_id]) for entity_id in ids]

        heap: List[Tuple[float, str]] = []
        for entity_id, point in snapshot:
            dist = distance_meters(center, point)
            if dist <= radius:
                heap.append((dist, entity_id))
        heapq.heapify(heap)
        return _drain(heap)


def _drain(heap: List[Tuple[float, str]]) -> Iterator[Tuple[str, float]]:
    while heap:
        dist, entity_id = heapq.heappop(heap)
        yield entity_id, dist
