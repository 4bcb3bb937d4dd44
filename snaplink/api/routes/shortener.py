"""URL creation and metadata endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from snaplink.api import schemas
from snaplink.api.dependencies import get_base_url, get_shortener_service
from snaplink.db.session import get_db
from snaplink.models.url import ShortURL
from snaplink.services.exceptions import (
    AliasConflictError,
    AllocationExhaustedError,
    DependencyUnavailableError,
    URLNotFoundError,
    ValidationError,
)
from snaplink.services.shortener import ShortenedURLService

router = APIRouter(tags=["shortener"])


def _to_response(url: ShortURL, base_url: str) -> schemas.URLInfoResponse:
    return schemas.URLInfoResponse(
        short_url=f"{base_url}/{url.short_code}",
        short_code=url.short_code,
        original_url=url.original_url,
        created_at=url.created_at,
        is_custom_alias=url.is_custom_alias,
    )


@router.post(
    "/shorten",
    response_model=schemas.URLResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": schemas.ErrorResponse, "description": "Invalid URL or alias"},
        409: {"model": schemas.ErrorResponse, "description": "Alias already in use"},
        503: {"model": schemas.ErrorResponse, "description": "No code could be allocated or the store is down"},
    }
)
async def create_short_url(
    payload: schemas.ShortenRequest,
    db: AsyncSession = Depends(get_db),
    shortener_service: ShortenedURLService = Depends(get_shortener_service),
    base_url: str = Depends(get_base_url)
):
    try:
        url = await shortener_service.create_short_url(
            db=db,
            original_url=payload.url,
            custom_alias=payload.custom_alias,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except AliasConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except (AllocationExhaustedError, DependencyUnavailableError) as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return _to_response(url, base_url)


@router.get(
    "/urls/{short_code}",
    response_model=schemas.URLInfoResponse,
    response_model_by_alias=True,
    responses={404: {"model": schemas.ErrorResponse, "description": "Unknown short code"}},
)
async def get_url_info(
    short_code: str,
    db: AsyncSession = Depends(get_db),
    shortener_service: ShortenedURLService = Depends(get_shortener_service),
    base_url: str = Depends(get_base_url)
):
    """Metadata for a short URL. Does not count as a click."""
    try:
        url = await shortener_service.get_url_info(db, short_code)
    except URLNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DependencyUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return _to_response(url, base_url)
