"""Worker pool helper utilities."""

from __future__ import annotations

import os


def normalize_worker_count(requested: int | None) -> int:
    """Return a safe worker count for local multiprocessing.

    ``None`` means one worker per host core.
    """

    cpu = os.cpu_count() or 1
    if requested is None:
        return cpu
    workers = max(1, int(requested))
    return min(workers, cpu)
