"""Main module for the FastAPI application."""
import json
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, status

from .config import settings
from .db.memory_store import InMemoryEntityStore
from .db.postgres_connector import PostgresConnector, PostgresEntityStore
from .db.redis_store import RedisEntityStore
from .errors import BackingStoreError, GeocodeError, SearchTimeoutError, ValidationError
from .logger import logger
from .models import SearchRequest, SearchResponse
from .search.search_service import SearchService


# --- Initialisation des variables globales ---

engine_config = settings.search_config()

# Connecteur PostgreSQL (initialisé au démarrage si le backend est postgres)
db_connector: PostgresConnector = PostgresConnector(
    settings.DATABASE_URL, max_size=settings.DATABASE_POOL_MAX_SIZE
)


def build_store():
    """Instancie le stockage choisi par STORE_BACKEND."""
    backend = settings.STORE_BACKEND.lower()
    if backend == "postgres":
        return PostgresEntityStore(db_connector, table=settings.DATABASE_TABLE)
    if backend == "redis":
        return RedisEntityStore(settings.REDIS_URL, key_prefix=settings.REDIS_KEY_PREFIX)
    if backend == "memory":
        return InMemoryEntityStore()
    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND!r}")


entity_store = build_store()

# Service de recherche (dépend du stockage)
service: SearchService = SearchService(entity_store, engine_config)


# ---------------------------------------------------------------------------------------
## Gestion des événements de cycle de vie (Startup/Shutdown)
@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Handle FastAPI startup and shutdown events."""
    # 🚀 DÉMARRAGE DE L'APPLICATION
    logger.info("Starting up GeoSearch API (store={backend})...", backend=settings.STORE_BACKEND)

    if isinstance(entity_store, PostgresEntityStore):
        try:
            await db_connector.connect()
            logger.info("PostgreSQL connection pool established successfully.")
            if not await db_connector.is_table_exist(settings.DATABASE_TABLE.split(".")[-1]):
                logger.warning("Table {table} not found.", table=settings.DATABASE_TABLE)
        except (ConnectionError, OSError) as e:
            logger.error("Failed to connect to PostgreSQL: {error}", error=e)
    else:
        try:
            await entity_store.ping()
        except BackingStoreError as e:
            logger.error("Backing store unreachable at startup: {error}", error=e)
        if isinstance(entity_store, InMemoryEntityStore) and len(entity_store) == 0:
            logger.warning("In-memory store is empty: every search will return an empty page.")

    yield # L'application commence à traiter les requêtes

    # 🛑 ARRÊT DE L'APPLICATION
    logger.info("Shutting down GeoSearch API...")
    await entity_store.close()
    logger.info("Backing store closed.")


app = FastAPI(
    title="GeoSearch - Proximity Search Service",
    lifespan=lifespan
)


def get_service() -> SearchService:
    """Dépendance FastAPI pour obtenir l'instance du service de recherche."""
    return service


@app.post("/search", response_model=SearchResponse)
async def search(req: SearchRequest, svc: SearchService = Depends(get_service)):
    """
    POST /search endpoint.

    Les champs omis (rayon, fenêtre, taille de page) prennent les valeurs par
    défaut de la configuration ; le filtre effectif est renvoyé dans
    `applied_filter` et doit être réutilisé avec `next_cursor`.
    """
    logger.info(
        "Received request:\n{request_body}",
        request_body=json.dumps(req.model_dump(mode="json"), indent=2, ensure_ascii=False),
    )
    search_filter = req.to_filter(svc.config)

    try:
        page = await svc.search(search_filter, cursor=req.cursor)
    except (ValidationError, GeocodeError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail={"error": str(e)}
        ) from e
    except BackingStoreError as e:
        logger.error("Backing store failure: {error}", error=e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail={"error": str(e)}) from e
    except SearchTimeoutError as e:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail={"error": str(e)}
        ) from e
    except Exception as e:
        logger.exception("Error processing search request")
        raise HTTPException(status_code=500, detail={"error": str(e)}) from e

    return SearchResponse(**page.model_dump(), applied_filter=search_filter)


@app.get("/")
def root():
    """Root endpoint to check API status."""
    return {"status": "ok", "message": "GeoSearch API is running 🚀"}


@app.get("/health", status_code=status.HTTP_200_OK, tags=["Monitoring"])
async def health_check():
    """
    Health check endpoint.

    Checks connectivity to the backing store.
    Returns 200 OK if it is reachable, otherwise 503 Service Unavailable.
    """
    services_status = {"store": "ok"}
    try:
        await service.store.ping()
    except BackingStoreError:
        services_status["store"] = "error"
        logger.error("Health check failed: backing store unreachable.")

    if "error" in services_status.values():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=services_status)

    return services_status
