from fastapi import APIRouter, Depends

from vread.dependencies import current_user, get_sessions
from vread.services.session import SessionRegistry

router = APIRouter(prefix="/api/session", tags=["session"])


@router.post("/logout", status_code=204)
async def logout(
    user_id: str = Depends(current_user),
    sessions: SessionRegistry = Depends(get_sessions),
):
    sessions.close(user_id)
