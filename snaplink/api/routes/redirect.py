"""URL redirection endpoint with asynchronous click tracking."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from snaplink.api.dependencies import get_client_ip, get_redirect_service
from snaplink.db.session import get_db
from snaplink.services.exceptions import DependencyUnavailableError, URLNotFoundError
from snaplink.services.redirect import RedirectService

router = APIRouter(tags=["redirect"])


@router.get(
    "/{short_code}",
    response_class=RedirectResponse,
    status_code=status.HTTP_301_MOVED_PERMANENTLY,
)
async def redirect_to_original_url(
    request: Request,
    short_code: str,
    db: AsyncSession = Depends(get_db),
    redirect_service: RedirectService = Depends(get_redirect_service),
):
    """Redirect to the original URL; the click is queued, not awaited."""
    try:
        original_url = await redirect_service.resolve(
            db,
            short_code,
            user_agent=request.headers.get("user-agent"),
            ip=get_client_ip(request),
            referer=request.headers.get("referer"),
        )
    except URLNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DependencyUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return RedirectResponse(url=original_url, status_code=status.HTTP_301_MOVED_PERMANENTLY)
