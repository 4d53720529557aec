from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Sequence, TypeVar

from joblib import Parallel, delayed
from tqdm import tqdm

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class BatchOutcome(Generic[R]):
    results: list[R]
    interrupted: bool


class Deadline:
    """Whole-run stop condition: elapsed timeout or an external cancel event."""

    def __init__(self, timeout: float | None = None, cancel: threading.Event | None = None) -> None:
        self._until = None if timeout is None else time.monotonic() + float(timeout)
        self._cancel = cancel

    def expired(self) -> bool:
        if self._cancel is not None and self._cancel.is_set():
            return True
        return self._until is not None and time.monotonic() >= self._until


def run_batch(
    fn: Callable[[T], R],
    items: Sequence[T],
    *,
    n_jobs: int = 1,
    timeout: float | None = None,
    cancel: threading.Event | None = None,
    desc: str = "batch",
    show_progress: bool = False,
) -> BatchOutcome[R]:
    """
    Apply `fn` to every item, returning results in input order.

    n_jobs != 1 runs on a joblib thread pool; results are consumed in submission order so the
    merge needs no locking. On timeout/cancel the completed prefix is returned with
    interrupted=True and pending work is abandoned.
    """
    logger = logging.getLogger(__name__)
    try:
        n_jobs = int(n_jobs)
    except (TypeError, ValueError):
        n_jobs = 1
    if n_jobs == 0:
        n_jobs = 1

    deadline = Deadline(timeout, cancel)
    done: list[R] = []
    interrupted = False
    total = len(items)

    with tqdm(total=total, desc=desc, disable=not show_progress) as pbar:
        if n_jobs != 1 and total > 1:
            gen = Parallel(n_jobs=n_jobs, prefer="threads", return_as="generator")(delayed(fn)(x) for x in items)
            try:
                while len(done) < total:
                    if deadline.expired():
                        interrupted = True
                        break
                    done.append(next(gen))
                    pbar.update(1)
            finally:
                gen.close()
        else:
            for x in items:
                if deadline.expired():
                    interrupted = True
                    break
                done.append(fn(x))
                pbar.update(1)

    if interrupted:
        logger.warning("%s interrupted after %d/%d items", desc, len(done), total)
    return BatchOutcome(results=done, interrupted=interrupted)
