# tests/conftest.py
import os

# Pas de fichiers de log pendant les tests ; doit précéder tout import de geosearch
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("STORE_BACKEND", "memory")

import pytest
from unittest.mock import MagicMock, AsyncMock

from geosearch.config import SearchConfig
from geosearch.db.memory_store import InMemoryEntityStore
from geosearch.search.search_service import SearchService

SAN_JOSE = (37.3382, -121.8863)


@pytest.fixture
def center():
    """Centre des scénarios de test (San José)."""
    return SAN_JOSE


@pytest.fixture
def engine_config():
    """Configuration par défaut du moteur."""
    return SearchConfig()


@pytest.fixture
def memory_store():
    return InMemoryEntityStore()


@pytest.fixture
def make_service(engine_config):
    """Fabrique de SearchService sur un stockage donné, config surchargeable."""
    def _make(store, **overrides):
        config = engine_config.model_copy(update=overrides) if overrides else engine_config
        return SearchService(store, config)
    return _make


# --- Mocks des clients de bas niveau ---

@pytest.fixture
def mock_db_connector():
    """Fixture pour un mock du connecteur PostgreSQL."""
    db_conn = MagicMock()
    db_conn.execute_query = AsyncMock(return_value=[])
    db_conn.close = AsyncMock()
    return db_conn


@pytest.fixture
def mock_redis_client():
    """Fixture pour un mock du client Redis asynchrone."""
    client = MagicMock()
    client.zrangebylex = AsyncMock(return_value=[])
    client.hmget = AsyncMock(return_value=[])
    client.ping = AsyncMock(return_value=True)
    client.close = AsyncMock()
    return client
