from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.bearer import bearer_account
from app.src.db import LocationPoint, sessionMaker
from app.src import exceptions, validators, getters
from app.src.cleaner import cleanLocationPoints
from app.src.enums import Role
from app.src.loggers import logEvent
from app.src.redis import acquireLock, releaseLock
from app.src.functions import fuseExceptionResponses
from app.src.urls import URL_LOCATION_CLEANUP

route_functions = APIRouter()


## Output Schema
class CleanupSchema(BaseModel):
    message: str
    sessions_processed: int
    sessions_failed: int
    points_deleted: int


class CleanupResponse(BaseModel):
    success: bool
    data: CleanupSchema


## API endpoints [Functions]
@route_functions.post(
    URL_LOCATION_CLEANUP,
    tags=["Location"],
    response_model=CleanupResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Thins the GPS trail of completed duty sessions older than the retention window.
    The first and last points of a session and every 5th point in between are kept.
    Only accounts holding the `admin` role can run the cleanup.
    Runs are serialized with a lock, concurrent callers wait for the running job.
    """,
)
async def cleanup_locations(
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    lock = None
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        roles = getters.accountRoles(token, session)
        validators.anyRole(roles, [Role.ADMIN.value])

        lock = acquireLock(LocationPoint.__tablename__)
        result = cleanLocationPoints(session, config=getters.tenantConfig(session))
        logEvent(token, request_info, result)
        return {"success": True, "data": result}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(lock)
        session.close()
