"""Stockage en mémoire, trié par geohash (tests et exécution locale)."""
import bisect
from typing import Iterable, List, Optional, Tuple

from geosearch.db.base import TimeWindow
from geosearch.geo.bounds import GeoBound
from geosearch.models import SearchableEntity


class InMemoryEntityStore:
    """Index trié (geohash, id) avec scan de plage par bissection."""

    def __init__(self, entities: Optional[Iterable[SearchableEntity]] = None):
        self._keys: List[Tuple[str, str]] = []
        self._entities: List[SearchableEntity] = []
        self.scans: List[GeoBound] = []
        for entity in entities or ():
            self.add(entity)

    def add(self, entity: SearchableEntity) -> None:
        """Ajoute ou remplace une entité (rôle de l'écrivain externe)."""
        self.remove(entity.id)
        key = (entity.geohash, entity.id)
        position = bisect.bisect_left(self._keys, key)
        self._keys.insert(position, key)
        self._entities.insert(position, entity)

    def remove(self, entity_id: str) -> None:
        for position, (_, current_id) in enumerate(self._keys):
            if current_id == entity_id:
                del self._keys[position]
                del self._entities[position]
                return

    def __len__(self) -> int:
        return len(self._entities)

    async def scan(
        self,
        bound: GeoBound,
        limit: int,
        window: Optional[TimeWindow] = None,
    ) -> List[SearchableEntity]:
        """Scan ordonné de la plage [bound.start, bound.end)."""
        self.scans.append(bound)
        position = bisect.bisect_left(self._keys, (bound.start, ""))
        results: List[SearchableEntity] = []
        while position < len(self._keys) and len(results) < limit:
            geohash_value, _ = self._keys[position]
            if bound.end is not None and geohash_value >= bound.end:
                break
            entity = self._entities[position]
            if window is None or window[0] <= entity.start_time < window[1]:
                results.append(entity)
            position += 1
        return results

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None
