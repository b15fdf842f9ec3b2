# devbrain/cognition/mental_state.py
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..core.errors import MentalModelLockError
from ..schemas.emotion import EmotionalContext, UserMentalModel
from ..settings import Settings, settings as default_settings
from . import rules
from .emotion_analyzer import EmotionalAnalyzer, count_matches, normalize_text

logger = logging.getLogger("devbrain.cognition.mental_state")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Slot:
    model: UserMentalModel
    lock: threading.Lock = field(default_factory=threading.Lock)
    # callers currently holding this slot; a pinned slot is never evicted
    pins: int = 0


class MentalStateInferencer:
    """
    Per-user running estimate of confusion/frustration (exponential moving average).

    Concurrency model:
      - one lock per user serialises the read-modify-write of that user's model
      - a short registry lock guards slot creation, pinning and LRU bookkeeping
        only, so different users never wait on each other's updates
      - the LRU cap is soft: slots in use are skipped by eviction and the
        cache may briefly exceed the cap until the next insertion
    """

    def __init__(
        self,
        analyzer: Optional[EmotionalAnalyzer] = None,
        *,
        cfg: Optional[Settings] = None,
    ) -> None:
        cfg = cfg or default_settings
        self.analyzer = analyzer or EmotionalAnalyzer()
        self.decay = cfg.mental_decay
        self.max_users = cfg.mental_cache_max_users
        self.lock_timeout = cfg.lock_timeout_sec
        self.lock_retries = cfg.lock_retries
        self.lock_backoff = cfg.lock_backoff_sec
        self.lock_max_wait = cfg.lock_max_wait_sec

        self._slots: "OrderedDict[str, _Slot]" = OrderedDict()
        self._registry_lock = threading.Lock()

    # ---------- public API ----------

    def infer_from_query(self, user_id: str, message_text: str) -> UserMentalModel:
        """Fold one message into the user's model and return the new snapshot."""
        signal = self.analyzer.analyze(message_text)
        slot = self._pin(user_id)
        try:
            self._acquire(slot.lock, user_id)
            try:
                slot.model = self._update(slot.model, signal, message_text or "")
                snapshot = slot.model.model_copy(deep=True)
            finally:
                slot.lock.release()
        finally:
            self._unpin(slot)

        logger.debug(
            "MentalState[%s]: confusion=%.3f frustration=%.3f level=%d",
            user_id,
            snapshot.confusion_level,
            snapshot.frustration_level,
            snapshot.knowledge_level,
        )
        return snapshot

    def get_mental_model(self, user_id: str) -> UserMentalModel:
        slot = self._pin(user_id)
        try:
            self._acquire(slot.lock, user_id)
            try:
                return slot.model.model_copy(deep=True)
            finally:
                slot.lock.release()
        finally:
            self._unpin(slot)

    def known_users(self) -> List[str]:
        with self._registry_lock:
            return list(self._slots.keys())

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._slots)

    # ---------- update rule ----------

    def _update(self, old: UserMentalModel, signal: EmotionalContext, text: str) -> UserMentalModel:
        d = self.decay
        lowered = normalize_text(text)

        areas = list(old.expertise_areas)
        for area in self._detect_areas(lowered):
            if area not in areas:
                areas.append(area)

        gaps = list(old.knowledge_gaps)
        if signal.confusion_level > 0.5:
            for area in self._detect_areas(lowered) or ["general"]:
                if area not in gaps:
                    gaps.append(area)

        return old.model_copy(
            update={
                "confusion_level": d * old.confusion_level + (1 - d) * signal.confusion_level,
                "frustration_level": d * old.frustration_level + (1 - d) * signal.frustration_level,
                "last_updated": _utcnow(),
                "knowledge_level": self._knowledge_level(old.knowledge_level, lowered),
                "expertise_areas": areas,
                "knowledge_gaps": gaps,
                "learning_style": self._learning_style(old.learning_style, lowered),
                "interaction_count": old.interaction_count + 1,
                "model_confidence": min(0.95, old.model_confidence + 0.05),
            }
        )

    @staticmethod
    def _knowledge_level(current: int, text: str) -> int:
        best_level, best_score = None, 0.0
        for level, cues in rules.KNOWLEDGE_CUES.items():
            score = 0.0
            for phrase, weight in cues.items():
                raw, _ = count_matches(text, (phrase,))
                if raw:
                    score += weight
            if score > best_score:
                best_level, best_score = level, score
        if best_level is None:
            return current
        # move one step towards the detected level per message
        if best_level > current:
            return current + 1
        if best_level < current:
            return current - 1
        return current

    @staticmethod
    def _detect_areas(text: str) -> List[str]:
        found = []
        for area, cues in rules.EXPERTISE_AREAS.items():
            raw, _ = count_matches(text, cues)
            if raw:
                found.append(area)
        return found

    @staticmethod
    def _learning_style(current: str, text: str) -> str:
        for style, cues in rules.LEARNING_STYLE_CUES.items():
            raw, _ = count_matches(text, cues)
            if raw:
                return style
        return current

    # ---------- slots / locking ----------

    def _pin(self, user_id: str) -> _Slot:
        with self._registry_lock:
            slot = self._slots.get(user_id)
            if slot is None:
                slot = _Slot(model=UserMentalModel(user_id=user_id))
                self._slots[user_id] = slot
                slot.pins += 1
                self._evict_locked()
            else:
                slot.pins += 1
                self._slots.move_to_end(user_id)
            return slot

    def _unpin(self, slot: _Slot) -> None:
        with self._registry_lock:
            slot.pins -= 1

    def _evict_locked(self) -> None:
        # least recently used first; pinned or locked slots are skipped
        while len(self._slots) > self.max_users:
            victim = None
            for uid, slot in self._slots.items():
                if slot.pins == 0 and not slot.lock.locked():
                    victim = uid
                    break
            if victim is None:
                return
            del self._slots[victim]
            logger.debug("MentalState: evicted user=%s (cap=%d)", victim, self.max_users)

    def _acquire(self, lock: threading.Lock, user_id: str) -> None:
        for attempt in range(self.lock_retries + 1):
            if lock.acquire(timeout=self.lock_timeout):
                return
            if attempt < self.lock_retries:
                delay = self.lock_backoff * (2 ** attempt)
                logger.warning(
                    "MentalState[%s]: lock busy (attempt=%d), retrying in %.3fs",
                    user_id,
                    attempt + 1,
                    delay,
                )
                time.sleep(delay)
        # final bounded wait before the update is given up
        logger.warning(
            "MentalState[%s]: lock still busy after %d attempts, waiting up to %.2fs",
            user_id,
            self.lock_retries + 1,
            self.lock_max_wait,
        )
        if lock.acquire(timeout=self.lock_max_wait):
            return
        raise MentalModelLockError(user_id, attempts=self.lock_retries + 2)
