"""Curseur de pagination opaque : {lastStartTime, lastEntityId} encodé en base64 URL."""
import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime

from geosearch.errors import InvalidCursorError
from geosearch.models import SearchableEntity, as_utc

CURSOR_VERSION = 1


@dataclass(frozen=True)
class CursorKey:
    """Clé de la dernière entité renvoyée."""
    last_start_time: datetime
    last_entity_id: str

    @classmethod
    def from_entity(cls, entity: SearchableEntity) -> "CursorKey":
        return cls(last_start_time=entity.start_time, last_entity_id=entity.id)

    def as_tuple(self) -> tuple:
        """Même forme que SearchableEntity.sort_key."""
        return (self.last_start_time, self.last_entity_id)


def encode_cursor(key: CursorKey) -> str:
    """Sérialise la clé en chaîne opaque."""
    raw = json.dumps(
        {"v": CURSOR_VERSION, "t": key.last_start_time.isoformat(), "id": key.last_entity_id},
        separators=(",", ":"),
    )
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> CursorKey:
    """
    Désérialise un curseur produit par `encode_cursor`.

    Raises:
        InvalidCursorError: curseur illisible, version inconnue ou champs manquants
    """
    if not isinstance(cursor, str) or not cursor:
        raise InvalidCursorError("Cursor must be a non-empty string")
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
        if data.get("v") != CURSOR_VERSION:
            raise InvalidCursorError(f"Unsupported cursor version: {data.get('v')!r}")
        entity_id = data["id"]
        if not isinstance(entity_id, str):
            raise InvalidCursorError("Cursor entity id must be a string")
        return CursorKey(
            last_start_time=as_utc(datetime.fromisoformat(data["t"])),
            last_entity_id=entity_id,
        )
    except InvalidCursorError:
        raise
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError, AttributeError) as e:
        raise InvalidCursorError(f"Malformed cursor: {e}") from e
