"""
FastAPI backend for the ECR image manager.

Serves repository inventory, registry-wide statistics, image rankings and bulk
deletion on 0.0.0.0:8081 by default (server.port / PORT).

Authentication: when BACKEND_API_KEY (or server.api_key) is set, every request
except GET /health must carry a matching
  X-API-Key: <value>
header. If unset, auth is skipped (useful for local development).

Global stats are cached in memory for cache.global_stats_ttl seconds (12h by
default). Restarting the process clears the cache.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ecr_manager import deletion, ranking
from ecr_manager.config_manager import config_manager
from ecr_manager.ecr_client import EcrRegistryClient
from ecr_manager.error_utils import InvalidInputError, RegistryError
from ecr_manager.global_stats import GlobalStatsCache, list_repository_names
from ecr_manager.image_inventory import ImageRecord, fetch_images
from ecr_manager.logging_utils import get_logger, log_exception

_API_KEY_HEADER: Optional[str] = Header(default=None)

logger = get_logger(__name__)

# ── Shared registry client and stats cache ─────────────────────────────────────
# Created on first use so importing this module never talks to AWS.

_registry_client: Optional[EcrRegistryClient] = None
_stats_cache: Optional[GlobalStatsCache] = None
_init_lock = threading.Lock()


def get_registry_client() -> EcrRegistryClient:
    global _registry_client
    with _init_lock:
        if _registry_client is None:
            _registry_client = EcrRegistryClient.from_config(config_manager)
        return _registry_client


def get_stats_cache(client: EcrRegistryClient = Depends(get_registry_client)) -> GlobalStatsCache:
    global _stats_cache
    with _init_lock:
        if _stats_cache is None:
            _stats_cache = GlobalStatsCache(
                client,
                ttl_seconds=config_manager.get_global_stats_ttl(),
                max_workers=config_manager.get_max_workers(),
                progress_interval=config_manager.get_progress_log_interval(),
            )
        return _stats_cache


# ── FastAPI app ────────────────────────────────────────────────────────────────

app = FastAPI(
    title="ECR Image Manager API",
    version="1.0.0",
    description="Inventory, rank and prune images stored in Amazon ECR.",
    docs_url="/docs",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config_manager.get_cors_origins(),
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-API-Key"],
)


# ── Error responses ────────────────────────────────────────────────────────────
# Errors are returned as {"error": "<message>"}.


@app.exception_handler(InvalidInputError)
def _invalid_input(request: Request, exc: InvalidInputError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": exc.message})


@app.exception_handler(RegistryError)
def _registry_failure(request: Request, exc: RegistryError) -> JSONResponse:
    log_exception(logger, f"{request.method} {request.url.path} failed", exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": f"Invalid request: {problems}"})


@app.exception_handler(HTTPException)
def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
def _unexpected_failure(request: Request, exc: Exception) -> JSONResponse:
    log_exception(logger, f"{request.method} {request.url.path} failed unexpectedly", exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(exc)})


# ── Auth dependency ────────────────────────────────────────────────────────────


def _check_api_key(x_api_key: Optional[str] = _API_KEY_HEADER) -> None:
    api_key = config_manager.get_api_key()
    if not api_key:
        return  # Auth disabled (BACKEND_API_KEY not configured)
    if x_api_key != api_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-API-Key header",
        )


# ── Request models ─────────────────────────────────────────────────────────────


class DeleteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repository_name: str = Field(default="", alias="repositoryName")
    image_digests: List[str] = Field(default_factory=list, alias="imageDigests")


class DeleteByDateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repository_name: str = Field(default="", alias="repositoryName")
    days_old: int = Field(default=0, alias="daysOld")
    # When given (e.g. from a preview), exactly these images are deleted
    image_digests: Optional[List[str]] = Field(default=None, alias="imageDigests")


# ── Helpers ────────────────────────────────────────────────────────────────────


def _require_repository(repository: Optional[str]) -> str:
    if not repository:
        raise InvalidInputError("repository parameter is required", field="repository")
    return repository


def parse_limit(raw: Optional[str], default: int) -> int:
    """Positive integer from the query string, or ``default`` when absent or unusable"""
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _serialize(images: List[ImageRecord]) -> List[Dict[str, Any]]:
    return [image.to_dict() for image in images]


def _deletion_response(outcome: deletion.DeletionOutcome) -> JSONResponse:
    code = status.HTTP_206_PARTIAL_CONTENT if outcome.partial else status.HTTP_200_OK
    return JSONResponse(status_code=code, content=outcome.to_dict())


# ── Routes ─────────────────────────────────────────────────────────────────────


@app.get("/health")
def health() -> Dict[str, str]:
    """Health check, no auth required."""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/api/repositories", dependencies=[Depends(_check_api_key)])
def list_repositories(client: EcrRegistryClient = Depends(get_registry_client)) -> List[str]:
    """Return every repository name in the registry."""
    return list_repository_names(client)


@app.get("/api/global-stats", dependencies=[Depends(_check_api_key)])
def global_stats(cache: GlobalStatsCache = Depends(get_stats_cache)) -> Dict[str, Any]:
    """Registry-wide totals and all repositories ordered by size (cached)."""
    return cache.get().to_dict()


@app.get("/api/images", dependencies=[Depends(_check_api_key)])
def list_images(
    repository: Optional[str] = None,
    client: EcrRegistryClient = Depends(get_registry_client),
) -> List[Dict[str, Any]]:
    """Every image in a repository."""
    return _serialize(fetch_images(client, _require_repository(repository)))


@app.get("/api/images/most-downloaded", dependencies=[Depends(_check_api_key)])
def most_recently_pulled(
    repository: Optional[str] = None,
    limit: Optional[str] = None,
    client: EcrRegistryClient = Depends(get_registry_client),
) -> List[Dict[str, Any]]:
    """Images ordered by last pull time, most recent first.

    ECR has no per-image pull counts, so "most downloaded" is approximated by
    lastRecordedPullTime (push time for images never pulled).
    """
    images = fetch_images(client, _require_repository(repository))
    return _serialize(ranking.sort_by_last_pull(images, parse_limit(limit, config_manager.get_default_limit())))


@app.get("/api/images/largest", dependencies=[Depends(_check_api_key)])
def largest_images(
    repository: Optional[str] = None,
    limit: Optional[str] = None,
    client: EcrRegistryClient = Depends(get_registry_client),
) -> List[Dict[str, Any]]:
    """Images ordered by size, largest first."""
    images = fetch_images(client, _require_repository(repository))
    return _serialize(ranking.sort_by_size(images, parse_limit(limit, config_manager.get_default_limit())))


@app.post("/api/images/delete", dependencies=[Depends(_check_api_key)])
def delete_images(req: DeleteRequest, client: EcrRegistryClient = Depends(get_registry_client)) -> JSONResponse:
    """Delete an explicit list of digests. Responds 206 when some deletions failed."""
    outcome = deletion.delete_images(
        client, req.repository_name, req.image_digests, batch_size=config_manager.get_delete_batch_size()
    )
    return _deletion_response(outcome)


@app.post("/api/images/delete-by-date", dependencies=[Depends(_check_api_key)])
def delete_images_by_date(
    req: DeleteByDateRequest, client: EcrRegistryClient = Depends(get_registry_client)
) -> JSONResponse:
    """Delete the given digests, or every image not pulled within daysOld days."""
    outcome = deletion.delete_by_age(
        client,
        req.repository_name,
        days_old=req.days_old,
        digests=req.image_digests,
        batch_size=config_manager.get_delete_batch_size(),
    )
    return _deletion_response(outcome)


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Server starting on port {config_manager.get_server_port()}")
    uvicorn.run(app, host=config_manager.get_server_host(), port=config_manager.get_server_port())
