"""Stockage Redis : index lexicographique (ZRANGEBYLEX) + documents JSON."""
from typing import List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from geosearch.db.base import TimeWindow
from geosearch.errors import BackingStoreError
from geosearch.geo.bounds import GeoBound
from geosearch.logger import logger
from geosearch.models import SearchableEntity

# Les geohash n'utilisent que [0-9a-z] ; ':' sépare le geohash de l'id
MEMBER_SEPARATOR = ":"


class RedisEntityStore:
    """
    Entités indexées dans Redis.

    - `{prefix}:geo` : sorted set (scores à 0) de membres `geohash:id`,
      parcouru par ordre lexicographique.
    - `{prefix}:docs` : hash id -> document JSON (SearchableEntity).

    Redis ne sait pas filtrer sur start_time pendant le scan : la fenêtre est
    vérifiée en aval par l'agrégateur.
    """

    def __init__(self, redis_url: str, key_prefix: str = "geosearch", client=None):
        """Initialise le client ; `client` permet d'injecter une connexion existante."""
        self.redis_url = redis_url
        self.redis = client or redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        self.index_key = f"{key_prefix}:geo"
        self.docs_key = f"{key_prefix}:docs"

    @staticmethod
    def _lex_range(bound: GeoBound):
        low = f"[{bound.start}"
        high = "+" if bound.end is None else f"({bound.end}"
        return low, high

    async def scan(
        self,
        bound: GeoBound,
        limit: int,
        window: Optional[TimeWindow] = None,
    ) -> List[SearchableEntity]:
        """
        Scan lexicographique de la plage, puis lecture groupée des documents.

        Une entrée d'index sans document n'occupe pas de place dans `limit` :
        la lecture continue plus loin dans la plage jusqu'à obtenir `limit`
        entités ou épuiser la plage, pour que l'appelant détecte une plage saturée.
        """
        low, high = self._lex_range(bound)
        entities: List[SearchableEntity] = []
        offset = 0
        while len(entities) < limit:
            wanted = limit - len(entities)
            try:
                members = await self.redis.zrangebylex(
                    self.index_key, low, high, start=offset, num=wanted
                )
                if not members:
                    break
                ids = [member.split(MEMBER_SEPARATOR, 1)[1] for member in members]
                documents = await self.redis.hmget(self.docs_key, ids)
            except RedisError as e:
                raise BackingStoreError(
                    f"Redis scan failed for [{bound.start}, {bound.end}): {e}", bound=bound
                ) from e

            for entity_id, document in zip(ids, documents):
                if document is None:
                    # Index en avance sur les documents : écriture externe non atomique
                    logger.warning(
                        "Redis index entry without document: id={entity_id}", entity_id=entity_id
                    )
                    continue
                entities.append(SearchableEntity.model_validate_json(document))

            if len(members) < wanted:
                break
            offset += len(members)
        return entities

    async def ping(self) -> None:
        try:
            await self.redis.ping()
        except RedisError as e:
            raise BackingStoreError(f"Redis unreachable: {e}") from e

    async def close(self) -> None:
        """Close the Redis connection."""
        await self.redis.close()
