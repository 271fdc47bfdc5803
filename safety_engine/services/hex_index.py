"""H3 hexagonal index.

Maps coordinates to 64-bit H3 cell indexes at one of two fixed resolutions:
URBAN (default H3 resolution 9, ~174m edge) for ordinary neighbourhoods and
DENSE (default H3 resolution 10, ~66m edge) for areas above the population
density threshold. All operations are pure.
"""

import logging
import math
from typing import Dict, List, Sequence, Set, Tuple

import h3

from safety_engine.config import Settings, get_settings
from safety_engine.core.exceptions import (
    IncomparableCells,
    InvalidCellId,
    InvalidCoordinate,
    ValidationError,
)
from safety_engine.schemas.hexagon import Resolution
from safety_engine.utils.geometry import sample_polyline

logger = logging.getLogger(__name__)


def _validate_coordinate(lat: float, lng: float) -> None:
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidCoordinate(f"Coordinate must be finite, got ({lat}, {lng})")
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(f"Latitude {lat} outside [-90, 90]")
    if not -180.0 <= lng <= 180.0:
        raise InvalidCoordinate(f"Longitude {lng} outside [-180, 180]")


class HexIndex:
    """Coordinate to hexagon mapping at URBAN/DENSE resolutions."""

    def __init__(self, settings: Settings | None = None):
        settings = settings or get_settings()
        self.h3_resolutions: Dict[Resolution, int] = {
            Resolution.URBAN: settings.HEX_URBAN_RESOLUTION,
            Resolution.DENSE: settings.HEX_DENSE_RESOLUTION,
        }
        self._by_h3_resolution = {res: name for name, res in self.h3_resolutions.items()}
        self.dense_threshold = settings.DENSE_POPULATION_THRESHOLD

    def coordinate_to_cell(self, lat: float, lng: float, resolution: Resolution) -> int:
        """Cell containing a coordinate.

        Args:
            lat: Latitude in degrees
            lng: Longitude in degrees
            resolution: URBAN or DENSE

        Returns:
            64-bit H3 cell index

        Raises:
            InvalidCoordinate: lat/lng outside valid range or not finite
        """
        _validate_coordinate(lat, lng)
        h3_index = h3.latlng_to_cell(lat, lng, self.h3_resolutions[Resolution(resolution)])
        return h3.str_to_int(h3_index)

    def resolution_of(self, cell_id: int) -> Resolution:
        """Resolution a cell id was created at.

        Raises:
            InvalidCellId: not an H3 cell, or not at a supported resolution
        """
        return self._by_h3_resolution[self._h3_resolution(cell_id)]

    def cell_boundary(self, cell_id: int) -> List[Tuple[float, float]]:
        """Polygon boundary of a cell as ordered (lat, lng) vertices.

        Raises:
            InvalidCellId: not an H3 cell, or not at a supported resolution
        """
        self._h3_resolution(cell_id)
        return [tuple(vertex) for vertex in h3.cell_to_boundary(h3.int_to_str(cell_id))]

    def cell_centroid(self, cell_id: int) -> Tuple[float, float]:
        """Cell centre as (lat, lng), valid across the antimeridian and at the poles.

        Raises:
            InvalidCellId: not an H3 cell, or not at a supported resolution
        """
        self._h3_resolution(cell_id)
        return h3.cell_to_latlng(h3.int_to_str(cell_id))

    def neighbors(self, cell_id: int, k: int) -> Set[int]:
        """All cells within ``k`` grid steps, including the cell itself.

        Raises:
            InvalidCellId: unsupported cell id
            ValidationError: negative k
        """
        self._h3_resolution(cell_id)
        if k < 0:
            raise ValidationError(f"Neighbor distance must be >= 0, got {k}")
        if k == 0:
            return {cell_id}
        return {h3.str_to_int(c) for c in h3.grid_disk(h3.int_to_str(cell_id), k)}

    def grid_distance(self, cell_a: int, cell_b: int) -> int:
        """Grid steps between two cells of the same resolution.

        Raises:
            InvalidCellId: unsupported cell id
            IncomparableCells: resolutions differ, or the cells are too far
                apart for H3 to measure
        """
        res_a = self._h3_resolution(cell_a)
        res_b = self._h3_resolution(cell_b)
        if res_a != res_b:
            raise IncomparableCells(
                f"Cells {cell_a:x} and {cell_b:x} are at different resolutions ({res_a}, {res_b})"
            )
        try:
            return h3.grid_distance(h3.int_to_str(cell_a), h3.int_to_str(cell_b))
        except h3.H3BaseException as e:
            raise IncomparableCells(
                f"Grid distance between {cell_a:x} and {cell_b:x} is undefined"
            ) from e

    def resolution_for(self, population_density_per_km2: float) -> Resolution:
        """DENSE above the population density threshold, URBAN otherwise."""
        if population_density_per_km2 > self.dense_threshold:
            return Resolution.DENSE
        return Resolution.URBAN

    def cells_along(
        self,
        coordinates: Sequence[Tuple[float, float]],
        resolution: Resolution,
        sample_interval_m: float = 25.0,
    ) -> List[int]:
        """Cells a (lat, lng) polyline passes through, in travel order.

        Samples the line every ``sample_interval_m`` metres and fills any gap
        between consecutive sampled cells with the H3 grid path, so no crossed
        cell is skipped when the interval exceeds the hexagon size.
        """
        for lat, lng in coordinates:
            _validate_coordinate(lat, lng)

        samples = sample_polyline(coordinates, sample_interval_m)
        h3_res = self.h3_resolutions[Resolution(resolution)]

        ordered: List[str] = []
        seen: Set[str] = set()
        previous: str | None = None
        for lat, lng in samples:
            current = h3.latlng_to_cell(lat, lng, h3_res)
            if previous is not None and current != previous:
                try:
                    path = h3.grid_path_cells(previous, current)
                except h3.H3BaseException:
                    # Pentagon distortion; sampled cells alone are good enough
                    path = [current]
            else:
                path = [current]
            for cell in path:
                if cell not in seen:
                    seen.add(cell)
                    ordered.append(cell)
            previous = current

        return [h3.str_to_int(cell) for cell in ordered]

    def _h3_resolution(self, cell_id: int) -> int:
        try:
            h3_index = h3.int_to_str(cell_id)
        except (TypeError, ValueError, OverflowError, h3.H3BaseException) as e:
            raise InvalidCellId(f"Cell id {cell_id!r} is not an H3 index") from e
        if not h3.is_valid_cell(h3_index):
            raise InvalidCellId(f"Cell id {cell_id!r} is not a valid H3 cell")
        res = h3.get_resolution(h3_index)
        if res not in self._by_h3_resolution:
            raise InvalidCellId(f"Cell id {cell_id!r} is at unsupported H3 resolution {res}")
        return res
