"""Metal detector countdown timer router.

Endpoints:
    GET    /api/metal-detector-timer/running     Active (or latest running) timer, or null
    GET    /api/metal-detector-timer/{lot_id}    Timer for one lot, or null
    POST   /api/metal-detector-timer/{lot_id}    Start / restart
    DELETE /api/metal-detector-timer/{lot_id}    Clear
"""

from fastapi import APIRouter, Depends

from nutaria.auth.deps import require_permission
from nutaria.models.user import UserProfile
from nutaria.schemas.common import MessageResponse
from nutaria.schemas.timer import TimerOut, TimerStart
from nutaria.services import timer

router = APIRouter()


@router.get("/running", response_model=TimerOut | None)
async def running_timer(_user: UserProfile = Depends(require_permission("process.read"))):
    return await timer.get_running_timer()


@router.get("/{lot_id}", response_model=TimerOut | None)
async def get_timer(
    lot_id: int,
    _user: UserProfile = Depends(require_permission("process.read")),
):
    return await timer.get_timer(lot_id)


@router.post("/{lot_id}", response_model=TimerOut)
async def start_timer(
    lot_id: int,
    body: TimerStart,
    _user: UserProfile = Depends(require_permission("process.write")),
):
    return await timer.start_timer(lot_id, body.duration_seconds)


@router.delete("/{lot_id}", response_model=MessageResponse)
async def clear_timer(
    lot_id: int,
    _user: UserProfile = Depends(require_permission("process.write")),
):
    await timer.clear_timer(lot_id)
    return MessageResponse(detail="Timer cleared")
