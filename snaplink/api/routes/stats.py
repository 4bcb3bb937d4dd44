"""Click statistics endpoint."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from snaplink.api import schemas
from snaplink.api.dependencies import get_stats_service
from snaplink.db.session import get_db
from snaplink.services.exceptions import DependencyUnavailableError, URLNotFoundError
from snaplink.services.stats import StatsService

router = APIRouter(tags=["stats"])


@router.get(
    "/stats/{short_code}",
    response_model=schemas.StatsResponse,
    response_model_by_alias=True,
    responses={404: {"model": schemas.ErrorResponse, "description": "Unknown short code"}},
)
async def get_url_stats(
    short_code: str,
    db: AsyncSession = Depends(get_db),
    stats_service: StatsService = Depends(get_stats_service),
):
    try:
        stats = await stats_service.get_url_stats(db, short_code)
    except URLNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DependencyUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return schemas.StatsResponse(**stats)
