"""Contrat des stockages interrogés par le moteur."""
from datetime import datetime
from typing import List, Optional, Protocol, Tuple

from geosearch.geo.bounds import GeoBound
from geosearch.models import SearchableEntity

TimeWindow = Tuple[datetime, datetime]


class EntityStore(Protocol):
    """
    Stockage supportant un scan de plage ordonné sur un champ geohash.

    Les implémentations lèvent BackingStoreError en cas d'échec de lecture.
    """

    async def scan(
        self,
        bound: GeoBound,
        limit: int,
        window: Optional[TimeWindow] = None,
    ) -> List[SearchableEntity]:
        """
        Scan ascendant (geohash, id) des entités dont le geohash est dans `bound`.

        Args:
            bound: Plage [start, end) sur le geohash
            limit: Nombre maximal de lignes retournées
            window: Pré-filtre optionnel [start, end) sur start_time

        Returns:
            Au plus `limit` entités, triées par (geohash, id)
        """
        ...

    async def ping(self) -> None:
        """Vérifie la connectivité ; lève BackingStoreError si le stockage est injoignable."""
        ...

    async def close(self) -> None:
        ...
