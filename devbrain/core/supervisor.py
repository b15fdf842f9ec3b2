# devbrain/core/supervisor.py
from __future__ import annotations

import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass
class StageStats:
    executions: int = 0
    failures: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.executions if self.executions else 0.0

    def as_dict(self) -> Dict[str, object]:
        return {
            "executions": self.executions,
            "failures": self.failures,
            "avg_ms": round(self.avg_ms, 3),
            "min_ms": round(self.min_ms, 3) if self.min_ms is not None else None,
            "max_ms": round(self.max_ms, 3),
        }


@dataclass
class QualityStats:
    samples: int = 0
    total: float = 0.0
    last: float = 0.0
    degraded: int = 0

    @property
    def avg(self) -> float:
        return self.total / self.samples if self.samples else 0.0


class _KeyedLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


class Supervisor:
    """
    Cross-request performance counters: per-stage latency/failures and
    per-conversation judge quality. Shared by all requests, one lock per key.
    """

    def __init__(self) -> None:
        self._stage_locks = _KeyedLocks()
        self._quality_locks = _KeyedLocks()
        self._stages: Dict[str, StageStats] = defaultdict(StageStats)
        self._quality: Dict[str, QualityStats] = defaultdict(QualityStats)
        self.started_at = time.time()

    def record_stage(self, name: str, *, duration_ms: float, ok: bool) -> None:
        with self._stage_locks.get(name):
            st = self._stages[name]
            st.executions += 1
            if not ok:
                st.failures += 1
            st.total_ms += duration_ms
            st.min_ms = duration_ms if st.min_ms is None else min(st.min_ms, duration_ms)
            st.max_ms = max(st.max_ms, duration_ms)

    def record_quality(self, conversation_id: str, *, quality: float, degraded: bool) -> None:
        with self._quality_locks.get(conversation_id):
            q = self._quality[conversation_id]
            q.samples += 1
            q.total += quality
            q.last = quality
            if degraded:
                q.degraded += 1

    def stage_stats(self, name: str) -> StageStats:
        with self._stage_locks.get(name):
            st = self._stages.get(name) or StageStats()
            return StageStats(**vars(st))

    def conversation_quality(self, conversation_id: str) -> QualityStats:
        with self._quality_locks.get(conversation_id):
            q = self._quality.get(conversation_id) or QualityStats()
            return QualityStats(**vars(q))

    def snapshot(self) -> Dict[str, object]:
        out: Dict[str, object] = {}
        out["stages"] = {name: self.stage_stats(name).as_dict() for name in list(self._stages.keys())}
        out["conversations"] = len(self._quality)
        out.setdefault("ts_ms", int(time.time() * 1000))
        return out
