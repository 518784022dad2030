"""Exceptions du moteur de recherche de proximité."""
from typing import Optional


class GeoSearchError(Exception):
    """Erreur de base du moteur de recherche."""


class ValidationError(GeoSearchError):
    """Le filtre de recherche viole une borne de configuration (rayon, fenêtre, page)."""


class InvalidCursorError(ValidationError):
    """Curseur de pagination illisible ou falsifié."""


class GeocodeError(GeoSearchError, ValueError):
    """Coordonnées ou geohash invalides."""


class BackingStoreError(GeoSearchError):
    """Échec d'un scan de plage sur le stockage ; la recherche entière est abandonnée."""

    def __init__(self, message: str, bound: Optional[object] = None):
        super().__init__(message)
        self.bound = bound


class SearchTimeoutError(GeoSearchError):
    """La recherche a dépassé le délai accordé par l'appelant."""
