import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import delete

from app.src.db import sessionMaker, AccountToken, DutySession, LocationPoint
from app.src.enums import DutyStatus
from app.src.constants import LOCATION_DELETE_BATCH_SIZE
from app.src.retention import thinSession, batched
from app.src.schemas import TenantConfig
from app.src.redis import acquireLock, releaseLock
from app.src import getters

logger = logging.getLogger("Cleaner")


def removeExpiredTokens(session: Session) -> int:
    currentTime = datetime.now(timezone.utc)
    result = session.execute(
        delete(AccountToken).where(AccountToken.expires_at < currentTime)
    )
    session.commit()
    deletedCount = result.rowcount
    logger.info(f"Removed {deletedCount} tokens from {AccountToken.__tablename__} table")
    return deletedCount


def sessionPointIds(session: Session, dutySessionId: int) -> List[int]:
    rows = (
        session.query(LocationPoint.id)
        .filter(LocationPoint.duty_session_id == dutySessionId)
        .order_by(LocationPoint.recorded_at.asc(), LocationPoint.id.asc())
        .all()
    )
    return [row.id for row in rows]


def thinDutySession(
    session: Session,
    dutySessionId: int,
    keepEveryNth: int,
    thinnedOn: datetime,
    batchSize: int = LOCATION_DELETE_BATCH_SIZE,
) -> int:
    """
    Delete the thinned out points of one duty session in batches.

    All batches and the `points_thinned_on` stamp are committed together,
    so a session is either fully thinned or left untouched. A failing batch
    is logged and its error propagates; the caller rolls the session back and
    the next run thins the original trail again.

    Returns:
        int: Points deleted.
    """
    deletable = thinSession(sessionPointIds(session, dutySessionId), keepEveryNth)

    deleted = 0
    for number, batch in enumerate(batched(deletable, batchSize), start=1):
        try:
            result = session.execute(
                delete(LocationPoint).where(LocationPoint.id.in_(batch))
            )
        except Exception:
            logger.error(
                f"Batch {number} ({len(batch)} points) of duty session "
                f"{dutySessionId} failed"
            )
            raise
        deleted += result.rowcount

    session.query(DutySession).filter(DutySession.id == dutySessionId).update(
        {DutySession.points_thinned_on: thinnedOn}
    )
    session.commit()
    return deleted


def cleanLocationPoints(
    session: Session,
    now: Optional[datetime] = None,
    config: Optional[TenantConfig] = None,
) -> dict:
    """
    Thin the location trail of completed duty sessions past the retention window.

    Only sessions finished more than `config.retention_days` ago and not yet
    thinned are considered. Each session is thinned in its own transaction:
    a failure rolls back that session only, which stays unmarked and is
    picked up again by the next run, and the remaining sessions still run.

    Args:
        session (Session): Active SQLAlchemy session.
        now (Optional[datetime]): Reference time, defaults to the current UTC time.
        config (Optional[TenantConfig]): Retention parameters, defaults to the
            tenant configuration stored in the database.

    Returns:
        dict: `{"message", "sessions_processed", "sessions_failed", "points_deleted"}`.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if config is None:
        config = getters.tenantConfig(session)
    cutoff = now - timedelta(days=config.retention_days)

    dutySessionIds = [
        row.id
        for row in session.query(DutySession.id)
        .filter(
            DutySession.status == DutyStatus.COMPLETED,
            DutySession.finished_on < cutoff,
            DutySession.points_thinned_on.is_(None),
        )
        .order_by(DutySession.id.asc())
        .all()
    ]

    processed = 0
    failed = 0
    pointsDeleted = 0
    for dutySessionId in dutySessionIds:
        try:
            pointsDeleted += thinDutySession(
                session,
                dutySessionId,
                config.keep_every_nth,
                now,
                config.delete_batch_size,
            )
            processed += 1
        except Exception:
            session.rollback()
            failed += 1
            logger.exception(f"Failed to thin duty session {dutySessionId}")

    message = (
        f"Location cleanup complete. {pointsDeleted} points deleted "
        f"from {processed} sessions older than {config.retention_days} days."
    )
    if failed:
        message += f" {failed} sessions failed and will be retried."
    logger.info(message)
    return {
        "message": message,
        "sessions_processed": processed,
        "sessions_failed": failed,
        "points_deleted": pointsDeleted,
    }


def main():
    logging.basicConfig(level=logging.INFO)
    lock = None
    try:
        with sessionMaker() as session:
            removeExpiredTokens(session)
            lock = acquireLock(LocationPoint.__tablename__)
            cleanLocationPoints(session)
    except Exception:
        logger.exception("cleaner.py failed")
    finally:
        releaseLock(lock)


if __name__ == "__main__":
    main()
