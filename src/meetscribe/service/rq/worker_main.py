from __future__ import annotations

from typing import Optional

from rq import Worker

from meetscribe.config import Settings, load_settings
from meetscribe.service.rq.broker import connect, transcription_queue, worker_name
from meetscribe.utils.logger import get_logger, set_log_level

logger = get_logger("meetscribe.worker_main")


def main(settings: Optional[Settings] = None, *, burst: bool = False) -> None:
    settings = settings or load_settings()
    set_log_level(settings.log_level)

    conn = connect(settings)
    queue = transcription_queue(settings, conn)
    name = worker_name(queue.name)

    logger.info(f"WORKER_START name={name} queue={queue.name} burst={burst}")
    Worker([queue], connection=conn, name=name).work(with_scheduler=False, burst=burst)


if __name__ == "__main__":
    main()
