import time
from uuid import uuid4
from typing import Optional
from redis import Redis
from redis.lock import Lock

from app.src import exceptions

from app.src.constants import (
    REDIS_HOST,
    REDIS_PORT,
    REDIS_PASSWORD,
    MUTEX_LOCK_TIMEOUT,
    MUTEX_LOCK_MAX_WAIT_TIME,
)

# Redis client (single connection)
redisClient = Redis(
    host=REDIS_HOST,
    port=REDIS_PORT,
    password=REDIS_PASSWORD,
    decode_responses=True,
)


def rateLimitKey(endpoint: str, accountId: int) -> str:
    return f"ratelimit:{endpoint}:{accountId}"


def countRecentCalls(
    accountId: int, endpoint: str, window: int, now: Optional[float] = None
) -> int:
    """
    Count the calls recorded for an account on an endpoint in the trailing window.

    Args:
        accountId (int): Caller account.
        endpoint (str): Logical endpoint name (e.g. "gstin-lookup").
        window (int): Window length in seconds.
        now (Optional[float]): Current UNIX time, defaults to `time.time()`.

    Returns:
        int: Number of calls with a timestamp within `[now - window, now]`.
    """
    if now is None:
        now = time.time()
    return redisClient.zcount(rateLimitKey(endpoint, accountId), now - window, "+inf")


def recordCall(
    accountId: int, endpoint: str, window: int, now: Optional[float] = None
) -> None:
    """
    Record one call in the account's sliding window.

    Entries older than the window are pruned and the key expires once the
    window has passed without calls.

    Notes:
        - Counting and recording are separate round trips, so concurrent
          bursts from one account may overshoot the limit slightly.
    """
    if now is None:
        now = time.time()
    key = rateLimitKey(endpoint, accountId)
    pipe = redisClient.pipeline()
    pipe.zadd(key, {uuid4().hex: now})
    pipe.zremrangebyscore(key, "-inf", f"({now - window}")
    pipe.expire(key, window)
    pipe.execute()


def acquireLock(
    tableName: str,
    pk: Optional[int] = None,
    timeOut: int = MUTEX_LOCK_TIMEOUT,
    blockingTimeOut: int = MUTEX_LOCK_MAX_WAIT_TIME,
) -> Lock:
    """
    Acquire a Redis mutex for a table, or for one row when `pk` is given.

    Raises:
        exceptions.LockAcquireTimeout: If the lock is still held by someone
            else after `blockingTimeOut` seconds.
    """
    try:
        lockName = f"lock:{tableName}" if pk is None else f"lock:{tableName}:{pk}"
        lock = redisClient.lock(lockName, timeout=timeOut)
        if lock.acquire(blocking=True, blocking_timeout=blockingTimeOut):
            return lock
        raise exceptions.LockAcquireTimeout()
    except Exception as e:
        exceptions.handle(e)


def releaseLock(lock: Optional[Lock]) -> None:
    """Release a lock acquired with `acquireLock`; no-op for None or foreign locks."""
    if lock and lock.locked() and lock.owned():
        lock.release()
