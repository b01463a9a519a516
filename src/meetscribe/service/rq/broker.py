from __future__ import annotations

import os
import secrets
import time
from typing import Optional

import redis
from rq import Queue

from meetscribe.config import Settings


def _env(*names: str) -> Optional[str]:
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None


def connect(settings: Settings) -> redis.Redis:
    """
    Broker connection for enqueuers and workers. Pings once so a wrong URL
    fails here, not on the first enqueue.
    """
    url = (settings.redis_url or "").strip()
    if not url:
        raise ValueError("MEETSCRIBE_REDIS_URL is empty")

    # RQ pickles job payloads; responses must stay bytes.
    conn = redis.Redis.from_url(url, decode_responses=False)
    try:
        conn.ping()
    except redis.RedisError as e:
        raise RuntimeError(f"Redis ping failed for url={url!r}: {e}") from e
    return conn


def transcription_queue(settings: Settings, conn: Optional[redis.Redis] = None) -> Queue:
    name = (settings.rq_queue_name or "").strip()
    if not name:
        raise ValueError("MEETSCRIBE_RQ_QUEUE_NAME is empty")
    if settings.rq_job_timeout_sec <= 0:
        raise ValueError("MEETSCRIBE_RQ_JOB_TIMEOUT_SEC must be > 0")

    return Queue(
        name=name,
        connection=conn if conn is not None else connect(settings),
        default_timeout=settings.rq_job_timeout_sec,
    )


def worker_name(queue_name: str, *, prefix: str = "meetscribe") -> str:
    """
    RQ worker name, unique per process start.

    RQ refuses a name that is still registered in Redis, and a restarted pod
    usually comes back with the same hostname:
      <prefix>.<host>[.<namespace>].<queue>.<start ns, hex>.<random>
    """
    parts = [prefix, _env("POD_NAME", "HOSTNAME", "COMPUTERNAME") or "local"]
    namespace = _env("POD_NAMESPACE", "K8S_NAMESPACE")
    if namespace:
        parts.append(namespace)
    parts += [queue_name, format(time.time_ns(), "x"), secrets.token_hex(4)]
    return ".".join(parts)
