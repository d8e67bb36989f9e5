"""
backend/doit/search/routes.py

Search Routes
- Record a search (Public; attributed when authenticated)
- Recent searches: personal history or trending pool (Public)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from doit.core.dependencies import OptionalUserDep, get_search_service
from doit.core.limiter import limiter
from doit.core.schemas import MessageResponse
from doit.search import schemas
from doit.search.services import DEFAULT_RECENT_LIMIT, SearchService

router = APIRouter(prefix="/search", tags=["Search"])

SearchServiceDep = Annotated[SearchService, Depends(get_search_service)]


@router.post(
    "/history",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record Search",
)
@limiter.limit("30/minute")
async def record_search(
    request: Request,
    payload: schemas.SearchQueryWrite,
    current_user_id: OptionalUserDep,
    service: SearchServiceDep,
) -> MessageResponse:
    await service.save_search_query(current_user_id, payload.query, payload.category)
    return MessageResponse(detail="Search recorded.")


@router.get(
    "/recent",
    response_model=list[schemas.RecentSearch],
    status_code=status.HTTP_200_OK,
    summary="Recent Searches",
)
async def recent_searches(
    current_user_id: OptionalUserDep,
    service: SearchServiceDep,
    limit: int = Query(DEFAULT_RECENT_LIMIT, ge=1, le=50),
) -> list[schemas.RecentSearch]:
    return await service.get_recent_searches(current_user_id, limit)
