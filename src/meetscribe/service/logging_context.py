from __future__ import annotations

import contextlib
from pathlib import Path
from typing import Iterator

from meetscribe.utils.logger import pop_file_log, push_file_log


@contextlib.contextmanager
def job_debug_logging(*, log_path: str | Path, logger_name: str = "meetscribe") -> Iterator[Path]:
    """
    Job-scoped debug.log: every meetscribe.* record emitted inside the block
    is also written to `log_path`. The handler is removed on exit, success
    or failure, so a long-lived worker does not accumulate file handles.
    """
    p = Path(log_path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)

    push_file_log(log_path=str(p), logger_name=logger_name)
    try:
        yield p
    finally:
        pop_file_log(logger_name=logger_name)
