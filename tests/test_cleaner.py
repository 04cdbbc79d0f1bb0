from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.sql.dml import Delete

from app.src import cleaner
from app.src.cleaner import cleanLocationPoints, removeExpiredTokens
from app.src.db import AccountToken, DutySession, LocationPoint
from app.src.enums import DutyStatus, Role
from app.src.schemas import TenantConfig
from app.src.urls import URL_LOCATION_CLEANUP

NOW = datetime(2026, 3, 31, 6, 0, tzinfo=timezone.utc)


def addDuty(session, accountId, points, finishedDaysAgo=45, status=DutyStatus.COMPLETED):
    finishedOn = NOW - timedelta(days=finishedDaysAgo)
    duty = DutySession(
        account_id=accountId,
        status=status,
        started_on=finishedOn - timedelta(hours=8),
        finished_on=finishedOn if status == DutyStatus.COMPLETED else None,
    )
    session.add(duty)
    session.flush()
    session.add_all(
        [
            LocationPoint(
                duty_session_id=duty.id,
                account_id=accountId,
                latitude=17.40 + index * 0.001,
                longitude=78.48,
                recorded_at=duty.started_on + timedelta(minutes=index),
            )
            for index in range(points)
        ]
    )
    session.commit()
    return duty


def remainingPoints(session, dutyId):
    return (
        session.query(LocationPoint)
        .filter(LocationPoint.duty_session_id == dutyId)
        .count()
    )


def test_old_sessions_are_thinned_once(session, admin):
    account, _ = admin
    old = addDuty(session, account.id, 23)
    recent = addDuty(session, account.id, 23, finishedDaysAgo=10)
    active = addDuty(session, account.id, 23, status=DutyStatus.ACTIVE)

    result = cleanLocationPoints(session, now=NOW, config=TenantConfig())

    assert result["sessions_processed"] == 1
    assert result["points_deleted"] == 17
    assert "17 points deleted" in result["message"]
    assert remainingPoints(session, old.id) == 6
    assert remainingPoints(session, recent.id) == 23
    assert remainingPoints(session, active.id) == 23

    session.expire_all()
    assert session.get(DutySession, old.id).points_thinned_on is not None

    again = cleanLocationPoints(session, now=NOW, config=TenantConfig())
    assert again["sessions_processed"] == 0
    assert again["points_deleted"] == 0
    assert remainingPoints(session, old.id) == 6


def test_retention_parameters_come_from_config(session, admin):
    account, _ = admin
    duty = addDuty(session, account.id, 10, finishedDaysAgo=10)

    result = cleanLocationPoints(
        session, now=NOW, config=TenantConfig(retention_days=7, keep_every_nth=3)
    )

    # Kept: 0, 3, 6, 9
    assert result["points_deleted"] == 6
    assert remainingPoints(session, duty.id) == 4


def pointIds(session, dutyId):
    return [
        row.id
        for row in session.query(LocationPoint.id)
        .filter(LocationPoint.duty_session_id == dutyId)
        .order_by(LocationPoint.recorded_at.asc(), LocationPoint.id.asc())
    ]


def failDelete(session, monkeypatch, failOn):
    """Make the `failOn`-th DELETE statement of the session raise, once."""
    execute = session.execute
    deletes = []

    def flakyExecute(statement, *args, **kwargs):
        if isinstance(statement, Delete):
            deletes.append(statement)
            if len(deletes) == failOn:
                raise RuntimeError("connection reset")
        return execute(statement, *args, **kwargs)

    monkeypatch.setattr(session, "execute", flakyExecute)


def test_failed_batch_rolls_back_the_whole_session(session, admin, monkeypatch):
    account, _ = admin
    duty = addDuty(session, account.id, 23)
    original = pointIds(session, duty.id)
    failDelete(session, monkeypatch, failOn=2)

    result = cleanLocationPoints(
        session, now=NOW, config=TenantConfig(delete_batch_size=5)
    )

    assert result["sessions_processed"] == 0
    assert result["sessions_failed"] == 1
    assert result["points_deleted"] == 0
    assert "1 sessions failed" in result["message"]
    assert pointIds(session, duty.id) == original
    session.expire_all()
    assert session.get(DutySession, duty.id).points_thinned_on is None


@pytest.mark.parametrize("failOn", [1, 2, 4])
def test_retry_after_failed_batch_keeps_the_original_stride(
    session, admin, monkeypatch, failOn
):
    account, _ = admin
    duty = addDuty(session, account.id, 23)
    original = pointIds(session, duty.id)
    config = TenantConfig(delete_batch_size=5)

    with monkeypatch.context() as flaky:
        failDelete(session, flaky, failOn)
        cleanLocationPoints(session, now=NOW, config=config)

    retry = cleanLocationPoints(session, now=NOW, config=config)

    assert retry["sessions_processed"] == 1
    assert retry["points_deleted"] == 17
    assert pointIds(session, duty.id) == [original[i] for i in (0, 5, 10, 15, 20, 22)]
    session.expire_all()
    assert session.get(DutySession, duty.id).points_thinned_on is not None


def test_one_broken_session_does_not_stop_the_others(session, admin, monkeypatch):
    account, _ = admin
    broken = addDuty(session, account.id, 23)
    healthy = addDuty(session, account.id, 23)
    loadIds = cleaner.sessionPointIds

    def sessionPointIds(dbSession, dutySessionId):
        if dutySessionId == broken.id:
            raise RuntimeError("server closed the connection")
        return loadIds(dbSession, dutySessionId)

    monkeypatch.setattr(cleaner, "sessionPointIds", sessionPointIds)

    result = cleanLocationPoints(session, now=NOW, config=TenantConfig())

    assert result["sessions_processed"] == 1
    assert result["sessions_failed"] == 1
    assert result["points_deleted"] == 17
    assert remainingPoints(session, broken.id) == 23
    assert remainingPoints(session, healthy.id) == 6
    session.expire_all()
    assert session.get(DutySession, broken.id).points_thinned_on is None
    assert session.get(DutySession, healthy.id).points_thinned_on is not None


def test_expired_tokens_are_removed(session, make_account):
    make_account("live@raizechem.in", [Role.SALES])
    make_account("stale@raizechem.in", [Role.SALES], expired=True)

    assert removeExpiredTokens(session) == 1
    assert session.query(AccountToken).count() == 1


def test_cleanup_endpoint(client, session, admin, events):
    account, headers = admin
    old = addDuty(session, account.id, 23, finishedDaysAgo=400)

    response = client.post("/functions" + URL_LOCATION_CLEANUP, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["points_deleted"] == 17
    assert remainingPoints(session, old.id) == 6
    assert events[-1]["points_deleted"] == 17
    assert events[-1]["_account_id"] == account.id


def test_cleanup_endpoint_is_admin_only(client, sales):
    _, headers = sales

    response = client.post("/functions" + URL_LOCATION_CLEANUP, headers=headers)

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Forbidden: insufficient role"}
