"""Modèles Pydantic pour les entités, les filtres et les pages de résultats."""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from geosearch.config import SearchConfig


def as_utc(value: datetime) -> datetime:
    """Interprète un datetime naïf comme UTC et normalise les autres en UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SearchableEntity(BaseModel): # pylint: disable=too-few-public-methods
    """Enregistrement indexé par geohash, en lecture seule pour le moteur."""

    model_config = ConfigDict(frozen=True)

    id: str
    latitude: float
    longitude: float
    # Écrit à la précision de stockage par l'écrivain externe
    geohash: str
    start_time: datetime
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("start_time")
    @classmethod
    def _utc_start_time(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def sort_key(self) -> tuple:
        """Clé de tri déterministe : (start_time, id)."""
        return (self.start_time, self.id)


class SearchFilter(BaseModel): # pylint: disable=too-few-public-methods
    """Filtre de recherche : centre, rayon (miles), fenêtre [start, end) et taille de page."""

    center_lat: float
    center_lng: float
    radius_miles: float
    window_start: datetime
    window_end: datetime
    page_size: Optional[int] = None
    # Filtres d'égalité exacte sur le payload (ex: {"status": "open"})
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("window_start", "window_end")
    @classmethod
    def _utc_window(cls, value: datetime) -> datetime:
        return as_utc(value)

    def in_window(self, moment: datetime) -> bool:
        """Vrai si `moment` appartient à [window_start, window_end)."""
        return self.window_start <= moment < self.window_end

    def matches_attributes(self, payload: Dict[str, Any]) -> bool:
        """Vrai si le payload contient toutes les valeurs demandées."""
        return all(
            key in payload and payload[key] == expected
            for key, expected in self.attributes.items()
        )


class CandidateRecord(BaseModel): # pylint: disable=too-few-public-methods
    """Entité retenue après filtrage exact, avec sa distance au centre."""

    entity: SearchableEntity
    distance_miles: float


class SearchStats(BaseModel): # pylint: disable=too-few-public-methods
    """Statistiques d'exécution d'une recherche."""

    bounds_queried: int = 0
    precision: int = 0
    candidates_fetched: int = 0
    candidates_merged: int = 0
    after_distance: int = 0
    after_window: int = 0
    matches: int = 0
    results_count: int = 0
    query_time_ms: float = 0.0
    memory_used_mb: Optional[float] = None


class SearchPage(BaseModel): # pylint: disable=too-few-public-methods
    """Une page de résultats."""

    items: List[CandidateRecord] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    is_truncated: bool = False
    stats: SearchStats = Field(default_factory=SearchStats)


class SearchRequest(BaseModel): # pylint: disable=too-few-public-methods
    """Requête HTTP de recherche ; les champs omis prennent les valeurs par défaut de la configuration."""

    center_lat: float
    center_lng: float
    radius_miles: Optional[float] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    page_size: Optional[int] = None
    cursor: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

    def to_filter(self, config: SearchConfig, now: Optional[datetime] = None) -> SearchFilter:
        """
        Construit le SearchFilter effectif.

        Args:
            config: Configuration du moteur (valeurs par défaut)
            now: Instant de référence pour une fenêtre omise (défaut: maintenant, UTC)

        Returns:
            SearchFilter complet
        """
        start = self.window_start
        if start is None:
            start = now or datetime.now(timezone.utc)
        end = self.window_end
        if end is None:
            end = as_utc(start) + timedelta(days=config.default_window_days)

        return SearchFilter(
            center_lat=self.center_lat,
            center_lng=self.center_lng,
            radius_miles=(
                self.radius_miles if self.radius_miles is not None
                else config.default_radius_miles
            ),
            window_start=start,
            window_end=end,
            page_size=(
                self.page_size if self.page_size is not None
                else config.default_page_size
            ),
            attributes=self.attributes,
        )


class SearchResponse(SearchPage): # pylint: disable=too-few-public-methods
    """Réponse HTTP : la page et le filtre effectivement appliqué (à renvoyer avec le curseur)."""

    applied_filter: SearchFilter
