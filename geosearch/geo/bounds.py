"""Calcul des plages geohash couvrant un cercle de recherche."""
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from geosearch.geo import geohash
from geosearch.geo.distance import EARTH_RADIUS_MILES

# Marge ajoutée aux demi-étendues (en degrés) pour absorber les erreurs d'arrondi
SPAN_MARGIN_DEGREES = 1e-7


@dataclass(frozen=True)
class GeoBound:
    """Plage [start, end) sur le champ geohash. end=None : pas de borne haute."""
    start: str
    end: Optional[str]
    precision: int

    def contains(self, value: str) -> bool:
        """Vrai si le geohash `value` est dans la plage."""
        return value >= self.start and (self.end is None or value < self.end)


@dataclass(frozen=True)
class BoundsPlan:
    """Résultat du calcul : plages fusionnées et précision réellement utilisée."""
    bounds: Tuple[GeoBound, ...]
    precision: int
    cells: int


def _padded(end: str, precision: int) -> str:
    """Premier geohash de `precision` caractères >= end."""
    return end + geohash.BASE32[0] * (precision - len(end))


def merge_cells(cells: Iterable[str], precision: int) -> List[GeoBound]:
    """
    Transforme des cellules en plages puis fusionne les plages contiguës.

    Args:
        cells: Geohashes de même longueur
        precision: Longueur des geohashes

    Returns:
        Plages triées, disjointes et non contiguës
    """
    merged: List[GeoBound] = []
    for cell in sorted(set(cells)):
        end = geohash.next_prefix(cell)
        if merged:
            last = merged[-1]
            if last.end is None or _padded(last.end, precision) >= cell:
                if last.end is None or end is None:
                    new_end = None
                else:
                    new_end = max(last.end, end, key=lambda e: _padded(e, precision))
                merged[-1] = GeoBound(start=last.start, end=new_end, precision=precision)
                continue
        merged.append(GeoBound(start=cell, end=end, precision=precision))
    return merged


def _circle_spans(lat: float, radius_miles: float) -> Tuple[float, float, bool]:
    """
    Demi-étendues (latitude, longitude) en degrés du cercle.

    Le dernier élément vaut True quand le cercle couvre toutes les longitudes
    (il atteint un pôle).
    """
    delta = radius_miles / EARTH_RADIUS_MILES
    lat_span = math.degrees(delta) + SPAN_MARGIN_DEGREES
    if delta >= math.pi / 2 or lat + lat_span >= 90.0 or lat - lat_span <= -90.0:
        return lat_span, 180.0, True

    ratio = math.sin(delta) / math.cos(math.radians(lat))
    if ratio >= 1.0:
        return lat_span, 180.0, True
    lng_span = math.degrees(math.asin(ratio)) + SPAN_MARGIN_DEGREES
    if lng_span >= 180.0:
        return lat_span, 180.0, True
    return lat_span, lng_span, False


class BoundsCalculator:  # pylint: disable=too-few-public-methods
    """
    Calcule un ensemble minimal de plages [start, end) dont l'union contient
    toutes les cellules intersectant le cercle de recherche.

    Les cellules sont énumérées sur la bounding box lat/lng du cercle (3x3
    voisins ou moins quand le rayon est inférieur à la taille d'une cellule).
    Si la grille dépasse `max_cells`, la précision est diminuée d'un cran.
    """

    def __init__(self, max_cells: int = 32):
        self.max_cells = max_cells

    def compute(
        self,
        center_lat: float,
        center_lng: float,
        radius_miles: float,
        precision: int,
    ) -> List[GeoBound]:
        """Plages couvrant le cercle (surensemble des vrais résultats)."""
        return list(self.plan(center_lat, center_lng, radius_miles, precision).bounds)

    def plan(
        self,
        center_lat: float,
        center_lng: float,
        radius_miles: float,
        precision: int,
    ) -> BoundsPlan:
        """
        Comme `compute`, mais retourne aussi la précision finale et le nombre de cellules.

        Raises:
            GeocodeError: centre ou précision invalides
            ValueError: rayon négatif ou non fini
        """
        # Valide le centre avant tout calcul
        geohash.encode(center_lat, center_lng, precision)
        lat, lng = geohash.validate_coordinates(center_lat, center_lng)
        if not math.isfinite(radius_miles) or radius_miles < 0:
            raise ValueError(f"Invalid radius: {radius_miles}")

        lat_span, lng_span, full_lng = _circle_spans(lat, radius_miles)
        while True:
            rows, columns = self._grid(lat, lng, lat_span, lng_span, full_lng, precision)
            if len(rows) * len(columns) <= self.max_cells or precision == 1:
                break
            precision -= 1

        cells = [
            geohash.cell_at(row, column, precision)
            for row in rows
            for column in columns
        ]
        return BoundsPlan(
            bounds=tuple(merge_cells(cells, precision)),
            precision=precision,
            cells=len(cells),
        )

    def _grid(
        self,
        lat: float,
        lng: float,
        lat_span: float,
        lng_span: float,
        full_lng: bool,
        precision: int,
    ) -> Tuple[List[int], List[int]]:
        """Indices de lignes et de colonnes couverts par la bounding box du cercle."""
        _, lng_bits = geohash.cell_bits(precision)
        columns_count = 1 << lng_bits

        low_row, _ = geohash.cell_indices(max(-90.0, lat - lat_span), lng, precision)
        high_row, _ = geohash.cell_indices(min(90.0, lat + lat_span), lng, precision)
        rows = list(range(low_row, high_row + 1))

        if full_lng:
            return rows, list(range(columns_count))

        west = lng - lng_span
        east = lng + lng_span
        _, west_column = geohash.cell_indices(lat, _wrap(west), precision)
        _, east_column = geohash.cell_indices(lat, _wrap(east), precision)
        if west >= -180.0 and east <= 180.0:
            columns = list(range(west_column, east_column + 1))
        else:
            # La boîte traverse l'antiméridien
            columns = list(range(west_column, columns_count)) + list(range(0, east_column + 1))
            columns = sorted(set(columns))
        return rows, columns


def _wrap(lng: float) -> float:
    """Ramène une longitude dans [-180, 180]."""
    if -180.0 <= lng <= 180.0:
        return lng
    return ((lng + 180.0) % 360.0) - 180.0
