from datetime import datetime, time, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, Form, status
from sqlalchemy import func
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.bearer import bearer_account
from app.src.db import DutySession, LocationPoint, sessionMaker
from app.src import exceptions, validators, getters
from app.src.constants import MAX_POINTS_PER_DAY, MAX_ACCURACY_METERS, TMZ_SECONDARY
from app.src.enums import DutyStatus, TrackingMode, LocationSource
from app.src.loggers import logEvent
from app.src.redis import acquireLock, releaseLock
from app.src.functions import (
    enumStr,
    fuseExceptionResponses,
    isSRID4326,
    toPoint,
    trailDistanceKm,
)
from app.src.urls import URL_DUTY_START, URL_DUTY_STOP, URL_DUTY_LOCATION

route_fieldops = APIRouter()


## Output Schema
class DutySchema(BaseModel):
    id: int
    account_id: int
    status: int
    tracking_mode: int
    started_on: datetime
    finished_on: Optional[datetime]
    distance_km: Optional[float]
    updated_on: Optional[datetime]
    created_on: datetime


class RejectedPoint(BaseModel):
    index: int
    reason: str


class LocationResult(BaseModel):
    inserted: int
    rejected: int
    rejected_details: List[RejectedPoint]
    daily_remaining: int


## Input Forms
class StartForm(BaseModel):
    latitude: float | None = Field(Form(default=None))
    longitude: float | None = Field(Form(default=None))
    accuracy: float | None = Field(Form(ge=0, default=None))
    tracking_mode: TrackingMode = Field(
        Form(description=enumStr(TrackingMode), default=TrackingMode.NORMAL)
    )


class StopForm(BaseModel):
    session_id: int = Field(Form())
    latitude: float | None = Field(Form(default=None))
    longitude: float | None = Field(Form(default=None))
    accuracy: float | None = Field(Form(ge=0, default=None))


class PointForm(BaseModel):
    latitude: float
    longitude: float
    accuracy: float | None = Field(default=None, ge=0)
    source: LocationSource = Field(
        default=LocationSource.GPS, description=enumStr(LocationSource)
    )
    recorded_at: datetime | None = None


class LocationForm(BaseModel):
    session_id: int
    points: List[PointForm] = Field(min_length=1)
    force_low_accuracy: bool = False


## Function
def utc(value: Optional[datetime], default: datetime) -> datetime:
    if value is None:
        return default
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def startOfDay(now: datetime) -> datetime:
    """Midnight of the current business day (IST), in UTC."""
    localDay = now.astimezone(TMZ_SECONDARY).date()
    return datetime.combine(localDay, time.min, tzinfo=TMZ_SECONDARY).astimezone(
        timezone.utc
    )


def activeDuty(session: Session, sessionId: int, accountId: int) -> DutySession:
    duty = (
        session.query(DutySession)
        .filter(DutySession.id == sessionId, DutySession.account_id == accountId)
        .first()
    )
    if duty is None:
        raise exceptions.InvalidIdentifier()
    if duty.status != DutyStatus.ACTIVE:
        raise exceptions.InactiveDuty()
    return duty


def singlePoint(
    duty: DutySession,
    latitude: Optional[float],
    longitude: Optional[float],
    accuracy: Optional[float],
    recordedAt: datetime,
) -> Optional[LocationPoint]:
    if latitude is None or longitude is None:
        return None
    validators.WGS84Point(latitude, longitude)
    return LocationPoint(
        duty_session_id=duty.id,
        account_id=duty.account_id,
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
        recorded_at=recordedAt,
    )


def pointsToday(session: Session, accountId: int, now: datetime) -> int:
    return (
        session.query(func.count(LocationPoint.id))
        .filter(
            LocationPoint.account_id == accountId,
            LocationPoint.recorded_at >= startOfDay(now),
        )
        .scalar()
    )


def screenPoints(
    points: List[PointForm], remaining: int, forceLowAccuracy: bool
) -> tuple[List[PointForm], List[RejectedPoint]]:
    """
    Split submitted points into accepted and rejected ones.

    Points are rejected for out of range coordinates, for an accuracy radius
    above the limit unless `forceLowAccuracy` is set, and once `remaining`
    points have been accepted.
    """
    accepted, rejected = [], []
    for index, point in enumerate(points):
        if not isSRID4326(toPoint(point.latitude, point.longitude)):
            rejected.append(RejectedPoint(index=index, reason="Invalid coordinates"))
        elif (
            point.accuracy is not None
            and point.accuracy > MAX_ACCURACY_METERS
            and not forceLowAccuracy
        ):
            rejected.append(
                RejectedPoint(index=index, reason=f"Low accuracy ({point.accuracy}m)")
            )
        elif len(accepted) >= remaining:
            rejected.append(RejectedPoint(index=index, reason="Daily cap reached"))
        else:
            accepted.append(point)
    return accepted, rejected


def sessionDistance(session: Session, dutyId: int) -> float:
    rows = (
        session.query(LocationPoint.latitude, LocationPoint.longitude)
        .filter(LocationPoint.duty_session_id == dutyId)
        .order_by(LocationPoint.recorded_at.asc(), LocationPoint.id.asc())
        .all()
    )
    return trailDistanceKm([(row.latitude, row.longitude) for row in rows])


## API endpoints [Field operations]
@route_fieldops.post(
    URL_DUTY_START,
    tags=["Duty"],
    response_model=DutySchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.DuplicateDuty(),
            exceptions.InvalidValue(LocationPoint.latitude),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Starts a duty session for the calling account.
    An account can have only one active duty session at a time.
    When coordinates are given they are recorded as the first location point.
    Logs the duty start with the associated token.
    """,
)
async def start_duty(
    fParam: StartForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    lock = None
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)

        lock = acquireLock(DutySession.__tablename__, token.account_id)
        active = (
            session.query(DutySession.id)
            .filter(
                DutySession.account_id == token.account_id,
                DutySession.status == DutyStatus.ACTIVE,
            )
            .first()
        )
        if active is not None:
            raise exceptions.DuplicateDuty()

        now = datetime.now(timezone.utc)
        duty = DutySession(
            account_id=token.account_id,
            status=DutyStatus.ACTIVE,
            tracking_mode=fParam.tracking_mode,
            started_on=now,
        )
        session.add(duty)
        session.flush()
        point = singlePoint(
            duty, fParam.latitude, fParam.longitude, fParam.accuracy, now
        )
        if point is not None:
            session.add(point)
        session.commit()
        session.refresh(duty)

        dutyData = jsonable_encoder(duty)
        logEvent(token, request_info, dutyData)
        return dutyData
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(lock)
        session.close()


@route_fieldops.post(
    URL_DUTY_STOP,
    tags=["Duty"],
    response_model=DutySchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InactiveDuty(),
            exceptions.InvalidValue(LocationPoint.latitude),
        ]
    ),
    description="""
    Stops an active duty session of the calling account.
    When coordinates are given they are recorded as the final location point.
    The geodesic distance covered by the recorded trail is stored on the session.
    Logs the duty stop with the associated token.
    """,
)
async def stop_duty(
    fParam: StopForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        duty = activeDuty(session, fParam.session_id, token.account_id)

        now = datetime.now(timezone.utc)
        point = singlePoint(
            duty, fParam.latitude, fParam.longitude, fParam.accuracy, now
        )
        if point is not None:
            session.add(point)
            session.flush()

        duty.distance_km = sessionDistance(session, duty.id)
        duty.status = DutyStatus.COMPLETED
        duty.finished_on = now
        session.commit()
        session.refresh(duty)

        dutyData = jsonable_encoder(duty)
        logEvent(token, request_info, dutyData)
        return dutyData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_fieldops.post(
    URL_DUTY_LOCATION,
    tags=["Duty"],
    response_model=LocationResult,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InactiveDuty(),
            exceptions.DailyLocationCapReached(MAX_POINTS_PER_DAY),
        ]
    ),
    description="""
    Records a batch of location points for an active duty session of the calling account.
    Each account may record at most 600 points per day (IST).
    Points with out of range coordinates are rejected.
    Points less accurate than 100 meters are rejected unless `force_low_accuracy` is set.
    Rejected points are reported by their index in the batch.
    """,
)
async def add_locations(
    fParam: LocationForm,
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        duty = activeDuty(session, fParam.session_id, token.account_id)

        now = datetime.now(timezone.utc)
        remaining = MAX_POINTS_PER_DAY - pointsToday(session, token.account_id, now)
        if remaining <= 0:
            raise exceptions.DailyLocationCapReached(MAX_POINTS_PER_DAY)

        accepted, rejected = screenPoints(
            fParam.points, remaining, fParam.force_low_accuracy
        )
        session.add_all(
            [
                LocationPoint(
                    duty_session_id=duty.id,
                    account_id=duty.account_id,
                    latitude=point.latitude,
                    longitude=point.longitude,
                    accuracy=point.accuracy,
                    source=point.source,
                    recorded_at=utc(point.recorded_at, now),
                )
                for point in accepted
            ]
        )
        session.commit()

        result = LocationResult(
            inserted=len(accepted),
            rejected=len(rejected),
            rejected_details=rejected,
            daily_remaining=remaining - len(accepted),
        )
        logEvent(
            token,
            request_info,
            {
                "session_id": duty.id,
                "inserted": result.inserted,
                "rejected": result.rejected,
            },
        )
        return result
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
