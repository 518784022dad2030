"""Module contenant le service de recherche de proximité."""
# geosearch/search/search_service.py
import asyncio
import math
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import psutil

from geosearch.config import SearchConfig, settings
from geosearch.db.base import EntityStore
from geosearch.errors import SearchTimeoutError, ValidationError
from geosearch.geo.bounds import BoundsCalculator, BoundsPlan
from geosearch.geo.precision import PrecisionSelector
from geosearch.logger import logger
from geosearch.models import SearchFilter, SearchPage, SearchStats
from geosearch.search.aggregator import ResultAggregator
from geosearch.search.cursor import CursorKey, decode_cursor, encode_cursor
from geosearch.search.fetcher import CandidateFetcher


@dataclass
class SearchContext:
    """Contexte d'une invocation de recherche."""
    search_filter: SearchFilter
    page_size: int
    after: Optional[CursorKey]
    plan: BoundsPlan
    start_time: float


class SearchService:
    """
    Façade sans état : valide le filtre, calcule les plages geohash, lance les
    scans, agrège et renvoie une page. Tout l'état de continuation est dans le curseur.
    """

    def __init__(self, store: EntityStore, config: Optional[SearchConfig] = None):
        self.config = config or settings.search_config()
        self.store = store
        self.precision_selector = PrecisionSelector(
            steps=self.config.precision_steps,
            fallback=self.config.fallback_precision,
        )
        self.bounds_calculator = BoundsCalculator(max_cells=self.config.max_cells_per_query)
        self.fetcher = CandidateFetcher(
            store,
            per_bound_limit=self.config.per_bound_limit,
            max_concurrency=self.config.max_concurrency,
        )
        self.aggregator = ResultAggregator(max_candidates_total=self.config.max_candidates_total)

    def validate(self, search_filter: SearchFilter) -> int:
        """
        Vérifie rayon, fenêtre et taille de page avant toute lecture.

        Args:
            search_filter: Filtre à valider

        Returns:
            La taille de page effective

        Raises:
            ValidationError: si une borne de configuration est violée
        """
        radius = search_filter.radius_miles
        if not math.isfinite(radius) or radius <= 0:
            raise ValidationError(f"Radius must be positive, got {radius}")
        if radius > self.config.max_radius_miles:
            raise ValidationError(
                f"Search radius {radius} mi exceeds the maximum of "
                f"{self.config.max_radius_miles} mi. Please narrow your search."
            )

        if search_filter.window_end <= search_filter.window_start:
            raise ValidationError("Invalid date window: end must be after start.")
        if search_filter.window_end - search_filter.window_start > timedelta(
            days=self.config.max_window_days
        ):
            raise ValidationError(
                f"Date window exceeds {self.config.max_window_days} days. "
                "Please select a shorter range."
            )

        page_size = search_filter.page_size
        if page_size is None:
            page_size = self.config.default_page_size
        if not 1 <= page_size <= self.config.max_page_size:
            raise ValidationError(
                f"Page size must be within [1, {self.config.max_page_size}], got {page_size}"
            )
        return page_size

    def _prepare(self, search_filter: SearchFilter, cursor: Optional[str]) -> SearchContext:
        """Validation, décodage du curseur et calcul des plages (aucune lecture)."""
        page_size = self.validate(search_filter)
        after = decode_cursor(cursor) if cursor else None

        precision = self.precision_selector.select(search_filter.radius_miles)
        # Lève GeocodeError si le centre est invalide
        plan = self.bounds_calculator.plan(
            search_filter.center_lat,
            search_filter.center_lng,
            search_filter.radius_miles,
            precision,
        )
        return SearchContext(
            search_filter=search_filter,
            page_size=page_size,
            after=after,
            plan=plan,
            start_time=time.time(),
        )

    async def search(
        self,
        search_filter: SearchFilter,
        cursor: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> SearchPage:
        """Effectue une recherche de proximité et renvoie une page.

        Args:
            search_filter: Centre, rayon, fenêtre temporelle, taille de page.
            cursor: Curseur opaque renvoyé par la page précédente.
            timeout: Délai maximal en secondes (défaut: configuration).

        Returns:
            Un objet SearchPage (résultats, curseur suivant, indicateur de troncature).

        Raises:
            ValidationError: filtre ou curseur invalide.
            GeocodeError: coordonnées du centre invalides.
            BackingStoreError: échec d'un scan (toute la recherche échoue).
            SearchTimeoutError: délai dépassé ; aucun résultat partiel n'est renvoyé.
        """
        ctx = self._prepare(search_filter, cursor)
        window = (search_filter.window_start, search_filter.window_end)
        fetch_limit = min(self.config.per_bound_limit, self.config.max_candidates_total)
        delay = timeout if timeout is not None else self.config.search_timeout_seconds

        try:
            batches = await asyncio.wait_for(
                self.fetcher.fetch(ctx.plan.bounds, window, limit=fetch_limit),
                timeout=delay,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                "Search timed out after {delay}s ({bounds} bounds)",
                delay=delay, bounds=len(ctx.plan.bounds),
            )
            raise SearchTimeoutError(f"Search timed out after {delay}s") from e

        result = self.aggregator.aggregate(batches, search_filter, ctx.page_size, ctx.after)

        duration = time.time() - ctx.start_time
        memory_mb = psutil.Process().memory_info().rss / 1024 / 1024

        logger.info(
            "Recherche géo (centre=({lat:.4f}, {lng:.4f}), rayon={radius}mi, précision={precision}) : "
            "{bounds} plages | {fetched} lus | {merged} fusionnés | {matches} résultats{truncated} | "
            "Durée = {duration:.4f}s | RAM = {memory:.2f} Mo",
            lat=search_filter.center_lat,
            lng=search_filter.center_lng,
            radius=search_filter.radius_miles,
            precision=ctx.plan.precision,
            bounds=len(ctx.plan.bounds),
            fetched=result.candidates_fetched,
            merged=result.candidates_merged,
            matches=result.matches,
            truncated=" (tronqué)" if result.is_truncated else "",
            duration=duration,
            memory=memory_mb,
        )

        return SearchPage(
            items=result.items,
            next_cursor=encode_cursor(result.next_key) if result.next_key else None,
            is_truncated=result.is_truncated,
            stats=SearchStats(
                bounds_queried=len(ctx.plan.bounds),
                precision=ctx.plan.precision,
                candidates_fetched=result.candidates_fetched,
                candidates_merged=result.candidates_merged,
                after_distance=result.after_distance,
                after_window=result.after_window,
                matches=result.matches,
                results_count=len(result.items),
                query_time_ms=duration * 1000,
                memory_used_mb=memory_mb,
            ),
        )
