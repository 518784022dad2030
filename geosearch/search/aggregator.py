"""Fusion, déduplication, filtrage exact, tri et pagination des candidats."""
import bisect
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from geosearch.geo.distance import haversine_miles
from geosearch.models import CandidateRecord, SearchableEntity, SearchFilter
from geosearch.search.cursor import CursorKey
from geosearch.search.fetcher import ScanBatch


@dataclass
class AggregateResult:
    """Page agrégée et compteurs de chaque étape."""
    items: List[CandidateRecord] = field(default_factory=list)
    next_key: Optional[CursorKey] = None
    is_truncated: bool = False
    candidates_fetched: int = 0
    candidates_merged: int = 0
    after_distance: int = 0
    after_window: int = 0
    matches: int = 0


class ResultAggregator:
    """
    Pipeline déterministe :

    1. Fusion et déduplication par id, dans l'ordre des plages.
    2. Plafond sur le volume brut (avant filtrage) : au-delà de
       `max_candidates_total`, on arrête d'incorporer et on marque la page
       comme tronquée. Une plage saturée marque aussi la troncature.
    3. Filtre exact : distance <= rayon, start_time dans [start, end), attributs.
    4. Tri par (start_time, id) croissants.
    5. Pagination après la clé du curseur.
    """

    def __init__(self, max_candidates_total: int = 2000):
        self.max_candidates_total = max_candidates_total

    def merge(self, batches: Iterable[ScanBatch]) -> Tuple[Dict[str, SearchableEntity], bool, int]:
        """
        Fusionne les lots en une map id -> entité.

        Returns:
            (candidats, tronqué, lignes lues)
        """
        merged: Dict[str, SearchableEntity] = {}
        truncated = False
        fetched = 0

        for batch in batches:
            fetched += len(batch.entities)
            if truncated:
                continue
            if batch.saturated:
                truncated = True
            for entity in batch.entities:
                if entity.id in merged:
                    continue
                if len(merged) >= self.max_candidates_total:
                    truncated = True
                    break
                merged[entity.id] = entity

        return merged, truncated, fetched

    @staticmethod
    def exact_filter(
        candidates: Iterable[SearchableEntity],
        search_filter: SearchFilter,
    ) -> Tuple[List[CandidateRecord], int, int]:
        """
        Ne garde que les vrais résultats.

        Returns:
            (résultats, nombre après filtre distance, nombre après filtre fenêtre)
        """
        center = (search_filter.center_lat, search_filter.center_lng)
        after_distance = 0
        after_window = 0
        records: List[CandidateRecord] = []

        for entity in candidates:
            distance = haversine_miles(center, (entity.latitude, entity.longitude))
            # Bord inclusif : distance == rayon est retenue
            if distance > search_filter.radius_miles:
                continue
            after_distance += 1
            if not search_filter.in_window(entity.start_time):
                continue
            after_window += 1
            if not search_filter.matches_attributes(entity.payload):
                continue
            records.append(CandidateRecord(entity=entity, distance_miles=distance))

        return records, after_distance, after_window

    @staticmethod
    def sort_records(records: List[CandidateRecord]) -> List[CandidateRecord]:
        """Tri par start_time croissant, puis id lexicographique."""
        return sorted(records, key=lambda record: record.entity.sort_key)

    @staticmethod
    def paginate(
        records: List[CandidateRecord],
        page_size: int,
        after: Optional[CursorKey] = None,
    ) -> Tuple[List[CandidateRecord], Optional[CursorKey]]:
        """
        Découpe une page dans une liste déjà triée.

        Args:
            records: Résultats triés
            page_size: Taille de page
            after: Clé de la dernière entité déjà renvoyée

        Returns:
            (page, clé du curseur suivant ou None si la liste est épuisée)
        """
        start = 0
        if after is not None:
            keys = [record.entity.sort_key for record in records]
            start = bisect.bisect_right(keys, after.as_tuple())

        page = records[start:start + page_size]
        has_more = start + page_size < len(records)
        next_key = CursorKey.from_entity(page[-1].entity) if has_more and page else None
        return page, next_key

    def aggregate(
        self,
        batches: List[ScanBatch],
        search_filter: SearchFilter,
        page_size: int,
        after: Optional[CursorKey] = None,
    ) -> AggregateResult:
        """Exécute tout le pipeline sur les lots d'une recherche."""
        merged, truncated, fetched = self.merge(batches)
        records, after_distance, after_window = self.exact_filter(merged.values(), search_filter)
        ordered = self.sort_records(records)
        page, next_key = self.paginate(ordered, page_size, after)

        return AggregateResult(
            items=page,
            next_key=next_key,
            is_truncated=truncated,
            candidates_fetched=fetched,
            candidates_merged=len(merged),
            after_distance=after_distance,
            after_window=after_window,
            matches=len(ordered),
        )
