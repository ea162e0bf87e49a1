"""Local cache for offline operation."""

import json
import logging
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel

from kidtime_shared import Policy, UsageSnapshot

logger = logging.getLogger(__name__)


class CachedPolicy(BaseModel):
    """Last known policy. ``policy`` is None when the child has none."""

    policy: Policy | None
    cached_at: datetime


class CachedUsage(BaseModel):
    """Last known budget and usage for one day."""

    date: str  # YYYY-MM-DD
    usage: UsageSnapshot
    cached_at: datetime


class PendingUsage(BaseModel):
    """Used time that could not be reported while offline."""

    seconds: float
    timestamp: datetime


class LocalCache:
    """Keeps the last policy, usage and unsynced time on disk."""

    def __init__(self, cache_dir: Path):
        self._cache_dir = cache_dir
        self._cache_dir.mkdir(parents=True, exist_ok=True)

    @property
    def _policy_path(self) -> Path:
        return self._cache_dir / "policy.json"

    @property
    def _usage_path(self) -> Path:
        return self._cache_dir / "usage.json"

    @property
    def _pending_path(self) -> Path:
        return self._cache_dir / "pending_usage.json"

    def save_policy(self, policy: Policy | None) -> None:
        cached = CachedPolicy(policy=policy, cached_at=datetime.now())
        self._policy_path.write_text(cached.model_dump_json(indent=2))
        logger.debug("Saved policy to cache")

    def load_policy(self) -> CachedPolicy | None:
        """Load the cached policy. Returns None if nothing was cached."""
        if not self._policy_path.exists():
            return None
        try:
            return CachedPolicy.model_validate_json(self._policy_path.read_text())
        except Exception:
            logger.exception("Failed to load policy cache")
            return None

    def save_usage(self, day: str, usage: UsageSnapshot) -> None:
        cached = CachedUsage(date=day, usage=usage, cached_at=datetime.now())
        self._usage_path.write_text(cached.model_dump_json(indent=2))
        logger.debug("Saved usage for %s to cache", day)

    def load_usage(self, day: str) -> UsageSnapshot | None:
        """Load cached usage for ``day``. A cache from another day is ignored."""
        if not self._usage_path.exists():
            return None
        try:
            cached = CachedUsage.model_validate_json(self._usage_path.read_text())
        except Exception:
            logger.exception("Failed to load usage cache")
            return None
        if cached.date != day:
            logger.debug("Ignoring usage cache from %s", cached.date)
            return None
        return cached.usage

    def add_pending_time(self, seconds: float) -> None:
        """Queue used time that could not be reported."""
        pending = self._load_pending()
        pending.append(PendingUsage(seconds=seconds, timestamp=datetime.now()))
        self._save_pending(pending)
        logger.debug("Queued %.1f seconds of unsynced usage", seconds)

    def get_and_clear_pending_time(self) -> float:
        """Total queued seconds; the queue is emptied."""
        pending = self._load_pending()
        if not pending:
            return 0.0
        total = sum(p.seconds for p in pending)
        self._save_pending([])
        return total

    def _load_pending(self) -> list[PendingUsage]:
        if not self._pending_path.exists():
            return []
        try:
            data = json.loads(self._pending_path.read_text())
            return [PendingUsage.model_validate(item) for item in data]
        except Exception:
            logger.exception("Failed to load pending usage cache")
            return []

    def _save_pending(self, pending: list[PendingUsage]) -> None:
        data = [p.model_dump(mode="json") for p in pending]
        self._pending_path.write_text(json.dumps(data, indent=2))
