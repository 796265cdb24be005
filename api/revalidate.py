"""
Page Revalidation Endpoint

GET /api/revalidate?secret=<shared secret>&path=<route>

Called by out-of-process invalidation (scripts, other instances) when
they cannot revalidate pages themselves. Revalidates in-process through
the configured path revalidator.
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from src.cache.config import CacheConfig
from src.cache.revalidation import PathRevalidator

from api.dependencies import get_cache_config, get_path_revalidator


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Revalidation"])


def _secret_matches(provided: Optional[str], expected: str) -> bool:
    if not expected or not provided:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


@router.get("/revalidate")
async def revalidate_path(
    secret: Optional[str] = Query(None),
    path: Optional[str] = Query(None),
    config: CacheConfig = Depends(get_cache_config),
    revalidator: PathRevalidator = Depends(get_path_revalidator),
):
    if not _secret_matches(secret, config.revalidate_secret):
        logger.warning("Revalidation rejected: invalid token")
        return JSONResponse(status_code=401, content={"success": False, "error": "Invalid token"})

    if not path or not path.startswith("/"):
        return JSONResponse(status_code=400, content={"success": False, "error": "Path is required"})

    try:
        revalidated = await revalidator.revalidate(path)
    except Exception as e:
        logger.error(f"Revalidation of {path} failed: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    if not revalidated:
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": f"Could not revalidate {path}"},
        )

    logger.info(f"Revalidated {path}")
    return {"revalidated": True, "path": path}
