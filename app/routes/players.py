"""Player tracking routes.

Routes are thin wrappers; business logic lives in PlayerService. Typed
PlayerError failures are turned into ``{"message": ...}`` responses by the
exception handler registered in app.main.
"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.players import (
    AccountTypeResponse,
    MessageResponse,
    PlayerRead,
    UsernameRequest,
)
from app.services.job_dispatcher import BackgroundTasksDispatcher, JobRunner
from app.services.player_service import PlayerService
from app.utils.db_async import get_session

router = APIRouter(prefix="/api/players", tags=["players"])


def get_player_service(request: Request) -> PlayerService:
    """Return the PlayerService built at application startup."""
    return request.app.state.player_service


def get_job_runner(request: Request) -> JobRunner:
    return request.app.state.job_runner


@router.get("", response_model=PlayerRead)
async def view_player(
    id: Optional[int] = Query(None, description="Player id"),
    username: Optional[str] = Query(None, description="Player username"),
    db: AsyncSession = Depends(get_session),
    service: PlayerService = Depends(get_player_service),
) -> PlayerRead:
    """View a tracked player by username or id."""
    return await service.view(db, player_id=id, username=username)


@router.get("/search", response_model=List[PlayerRead])
async def search_players(
    username: Optional[str] = Query(None, description="Partial username"),
    db: AsyncSession = Depends(get_session),
    service: PlayerService = Depends(get_player_service),
) -> List[PlayerRead]:
    """Search tracked players by partial username."""
    return await service.search(db, username)


@router.post("/track", response_model=PlayerRead)
async def track_player(
    body: UsernameRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_session),
    service: PlayerService = Depends(get_player_service),
    runner: JobRunner = Depends(get_job_runner),
) -> PlayerRead:
    """Record a new snapshot for a player (creating the player if needed).

    Type confirmation and CML import run after the response is sent.
    """
    dispatcher = BackgroundTasksDispatcher(background_tasks, runner)
    return await service.track(db, body.username, dispatcher=dispatcher)


@router.post("/assert-type", response_model=AccountTypeResponse)
async def assert_player_type(
    body: UsernameRequest,
    db: AsyncSession = Depends(get_session),
    service: PlayerService = Depends(get_player_service),
) -> AccountTypeResponse:
    """Recompute a player's account type from the hiscores."""
    account_type = await service.assert_type(db, body.username, force=True)
    return AccountTypeResponse(type=account_type)


@router.post("/import", response_model=MessageResponse)
async def import_player(
    body: UsernameRequest,
    db: AsyncSession = Depends(get_session),
    service: PlayerService = Depends(get_player_service),
) -> MessageResponse:
    """Backfill a player's snapshot history from CML."""
    count = await service.import_history(db, body.username)
    return MessageResponse(message=f"{count} snapshots imported from CML")
