"""
Encodage et décodage geohash.

L'encodage lui-même est délégué à pygeohash ; ce module ajoute la validation
des entrées, la grille de cellules (lignes/colonnes) utilisée pour couvrir un
cercle, et la borne haute d'une plage de préfixe.
"""
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import pygeohash as pgh

from geosearch.errors import GeocodeError

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
BITS_PER_CHAR = 5
MAX_PRECISION = 12

_BASE32_INDEX = {char: index for index, char in enumerate(BASE32)}


@dataclass(frozen=True)
class BoundingBox:
    """Cellule geohash décodée (bords inclusifs)."""
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        """Vrai si le point appartient à la cellule."""
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng

    @property
    def center(self) -> Tuple[float, float]:
        """Centre (lat, lng) de la cellule."""
        return (
            (self.min_lat + self.max_lat) / 2,
            (self.min_lng + self.max_lng) / 2,
        )


def _check_precision(precision: int) -> int:
    if isinstance(precision, bool) or not isinstance(precision, int):
        raise GeocodeError(f"Invalid geohash precision: {precision!r}")
    if not 1 <= precision <= MAX_PRECISION:
        raise GeocodeError(f"Geohash precision must be within [1, {MAX_PRECISION}], got {precision}")
    return precision


def _check_geohash(geohash: str) -> str:
    if not isinstance(geohash, str) or not geohash:
        raise GeocodeError(f"Invalid geohash: {geohash!r}")
    if len(geohash) > MAX_PRECISION:
        raise GeocodeError(f"Geohash longer than {MAX_PRECISION} characters: {geohash!r}")
    value = geohash.lower()
    for char in value:
        if char not in _BASE32_INDEX:
            raise GeocodeError(f"Invalid geohash character {char!r} in {geohash!r}")
    return value


def validate_coordinates(lat: float, lng: float) -> Tuple[float, float]:
    """
    Valide une paire de coordonnées.

    Raises:
        GeocodeError: si lat ∉ [-90, 90], lng ∉ [-180, 180] ou valeur non numérique
    """
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError) as e:
        raise GeocodeError(f"Non-numeric coordinates: ({lat!r}, {lng!r})") from e

    if math.isnan(lat_f) or math.isnan(lng_f):
        raise GeocodeError("Coordinates must not be NaN")
    if not -90.0 <= lat_f <= 90.0:
        raise GeocodeError(f"Latitude out of range: {lat_f}")
    if not -180.0 <= lng_f <= 180.0:
        raise GeocodeError(f"Longitude out of range: {lng_f}")
    return lat_f, lng_f


def encode(lat: float, lng: float, precision: int = 9) -> str:
    """
    Encode une position en geohash.

    Args:
        lat: Latitude (-90 à 90)
        lng: Longitude (-180 à 180)
        precision: Nombre de caractères (1 à 12)

    Returns:
        Le geohash

    Raises:
        GeocodeError: coordonnées ou précision invalides
    """
    lat, lng = validate_coordinates(lat, lng)
    return pgh.encode(lat, lng, precision=_check_precision(precision))


def decode(geohash: str) -> BoundingBox:
    """Décode un geohash en sa cellule (centre +/- marges d'erreur)."""
    lat, lng, lat_err, lng_err = pgh.decode_exactly(_check_geohash(geohash))
    return BoundingBox(
        min_lat=lat - lat_err,
        max_lat=lat + lat_err,
        min_lng=lng - lng_err,
        max_lng=lng + lng_err,
    )


# --- Grille de cellules -------------------------------------------------------

def cell_bits(precision: int) -> Tuple[int, int]:
    """Nombre de bits (latitude, longitude) pour une précision donnée."""
    total = _check_precision(precision) * BITS_PER_CHAR
    return total // 2, (total + 1) // 2


def cell_size_degrees(precision: int) -> Tuple[float, float]:
    """Hauteur et largeur d'une cellule, en degrés."""
    lat_bits, lng_bits = cell_bits(precision)
    return 180.0 / (1 << lat_bits), 360.0 / (1 << lng_bits)


def cell_indices(lat: float, lng: float, precision: int) -> Tuple[int, int]:
    """Indices (ligne, colonne) de la cellule contenant le point, comptés depuis le sud-ouest."""
    lat, lng = validate_coordinates(lat, lng)
    lat_bits, lng_bits = cell_bits(precision)
    lat_size, lng_size = cell_size_degrees(precision)
    row = min(int((lat + 90.0) / lat_size), (1 << lat_bits) - 1)
    column = min(int((lng + 180.0) / lng_size), (1 << lng_bits) - 1)
    return row, column


def cell_at(row: int, column: int, precision: int) -> str:
    """Geohash de la cellule (ligne, colonne), obtenu en encodant son centre."""
    lat_bits, lng_bits = cell_bits(precision)
    if not 0 <= row < (1 << lat_bits) or not 0 <= column < (1 << lng_bits):
        raise GeocodeError(f"Cell index out of range: ({row}, {column})")
    lat_size, lng_size = cell_size_degrees(precision)
    return pgh.encode(
        -90.0 + (row + 0.5) * lat_size,
        -180.0 + (column + 0.5) * lng_size,
        precision=precision,
    )


def next_prefix(prefix: str) -> Optional[str]:
    """
    Plus petite chaîne strictement supérieure à tout geohash commençant par `prefix`.

    Retourne None quand le préfixe n'est composé que de 'z' (pas de borne haute).
    """
    chars = list(prefix.lower())
    while chars and chars[-1] == BASE32[-1]:
        chars.pop()
    if not chars:
        return None
    index = _BASE32_INDEX.get(chars[-1])
    if index is None:
        raise GeocodeError(f"Invalid geohash character {chars[-1]!r} in {prefix!r}")
    chars[-1] = BASE32[index + 1]
    return "".join(chars)
