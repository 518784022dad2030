"""Choix de la précision geohash en fonction du rayon de recherche."""
from typing import Iterable, Optional, Tuple

from geosearch.config import DEFAULT_PRECISION_STEPS


class PrecisionSelector:  # pylint: disable=too-few-public-methods
    """
    Table de paliers monotone : rayon -> précision.

    Précision basse = cellules larges = moins de scans mais plus de faux positifs.
    Précision haute = cellules fines = plus de scans, moins de faux positifs.
    """

    def __init__(
        self,
        steps: Optional[Iterable[Tuple[float, int]]] = None,
        fallback: int = 2,
    ):
        """
        Args:
            steps: Paliers (rayon max exclusif en miles, précision), rayons croissants
            fallback: Précision au-delà du dernier palier
        """
        self.steps = tuple(steps if steps is not None else DEFAULT_PRECISION_STEPS)
        self.fallback = fallback

    def select(self, radius_miles: float) -> int:
        """Retourne la précision du premier palier dont la borne dépasse le rayon."""
        for upper_bound, precision in self.steps:
            if radius_miles < upper_bound:
                return precision
        return self.fallback
