# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Optional

LOG = logging.getLogger("webtoon_dl.progress")

KEEP_FINISHED = 32


@dataclass
class ProgressState:
    job_id: str
    progress: float = 0.0
    done: bool = False
    failed: bool = False

    def as_event(self) -> Dict[str, object]:
        return {
            "jobId": self.job_id,
            "progress": round(self.progress),
            "done": self.done,
            "failed": self.failed,
        }


class ProgressTracker:
    """Progress per request id.

    Fetching covers 0-50 and page layout 50-100. Values only move forward
    while a job runs; a finished job keeps its last value with ``done`` set.
    """

    def __init__(self, keep_finished: int = KEEP_FINISHED):
        self._jobs: "OrderedDict[str, ProgressState]" = OrderedDict()
        self._keep_finished = max(1, keep_finished)
        self._current: Optional[str] = None

    def start(self, job_id: str) -> ProgressState:
        state = ProgressState(job_id=job_id)
        self._jobs[job_id] = state
        self._jobs.move_to_end(job_id)
        self._current = job_id
        self._evict()
        return state

    def update(self, job_id: str, value: float) -> None:
        state = self._jobs.get(job_id)
        if state is None or state.done:
            return
        value = min(100.0, max(0.0, float(value)))
        if value > state.progress:
            state.progress = value

    def finish(self, job_id: str, failed: bool = False) -> None:
        state = self._jobs.get(job_id)
        if state is None:
            return
        state.done = True
        state.failed = failed
        LOG.debug("Job %s finished at %.0f%% (failed=%s).", job_id, state.progress, failed)
        self._evict()

    def get(self, job_id: str) -> Optional[ProgressState]:
        return self._jobs.get(job_id)

    def current(self) -> Optional[ProgressState]:
        if self._current is None:
            return None
        return self._jobs.get(self._current)

    def _evict(self) -> None:
        finished = [key for key, state in self._jobs.items() if state.done]
        while len(finished) > self._keep_finished:
            key = finished.pop(0)
            self._jobs.pop(key, None)
            if key == self._current:
                self._current = None
