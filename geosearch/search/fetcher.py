"""Exécution concurrente des scans de plages geohash."""
import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from geosearch.db.base import EntityStore, TimeWindow
from geosearch.errors import BackingStoreError
from geosearch.geo.bounds import GeoBound
from geosearch.logger import logger
from geosearch.models import SearchableEntity


@dataclass(frozen=True)
class ScanBatch:
    """Résultat brut (immuable) du scan d'une plage."""
    bound: GeoBound
    entities: Tuple[SearchableEntity, ...]
    limit: int
    # Vrai si la plage contient plus de lignes que `limit`
    saturated: bool = False


class CandidateFetcher:
    """
    Un scan ordonné par plage, plafonné à `per_bound_limit` lignes.

    Les scans tournent en parallèle (sémaphore `max_concurrency`). Le premier
    échec annule les scans en cours et fait échouer toute la recherche.
    """

    def __init__(self, store: EntityStore, per_bound_limit: int = 200, max_concurrency: int = 8):
        self.store = store
        self.per_bound_limit = per_bound_limit
        self.max_concurrency = max_concurrency

    async def _scan_bound(
        self,
        semaphore: asyncio.Semaphore,
        bound: GeoBound,
        limit: int,
        window: Optional[TimeWindow],
    ) -> ScanBatch:
        async with semaphore:
            try:
                # Une ligne de plus pour détecter une plage saturée
                rows = await self.store.scan(bound, limit + 1, window)
            except BackingStoreError:
                raise
            except Exception as e:
                raise BackingStoreError(
                    f"Scan failed for [{bound.start}, {bound.end}): {e}", bound=bound
                ) from e

        saturated = len(rows) > limit
        logger.debug(
            "Bound [{start}, {end}) -> {count} rows{flag}",
            start=bound.start,
            end=bound.end,
            count=min(len(rows), limit),
            flag=" (saturated)" if saturated else "",
        )
        return ScanBatch(
            bound=bound,
            entities=tuple(rows[:limit]),
            limit=limit,
            saturated=saturated,
        )

    async def fetch(
        self,
        bounds: Sequence[GeoBound],
        window: Optional[TimeWindow] = None,
        limit: Optional[int] = None,
    ) -> List[ScanBatch]:
        """
        Scanne toutes les plages et retourne les lots dans l'ordre des plages.

        Args:
            bounds: Plages à scanner
            window: Pré-filtre temporel transmis au stockage
            limit: Plafond par plage (défaut: per_bound_limit)

        Returns:
            Un ScanBatch par plage, dans l'ordre de `bounds`

        Raises:
            BackingStoreError: au premier scan en échec (les autres sont annulés)
        """
        if not bounds:
            return []

        per_bound = limit if limit is not None else self.per_bound_limit
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [
            asyncio.create_task(self._scan_bound(semaphore, bound, per_bound, window))
            for bound in bounds
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # Échec ou annulation : aucun scan ne doit survivre à l'appel
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
