"""Content-addressed cache for per-game stat stacks and season rollups.

Entries are keyed by (game, unit) or by team and stamped with a signature of
the underlying event set. A lookup whose signature matches the stored entry
returns that entry untouched; anything else recomputes and replaces it. Both
maps are bounded and evict the entry with the oldest ``computed_at`` first.

The cache is a service object: construct one at startup and pass it to the
pipeline. Tests call ``clear()`` between cases.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from config.settings import get_settings
from chartstats.data.events import PlayEvent
from chartstats.errors import ChartStatsError

logger = logging.getLogger(__name__)


@dataclass
class StackEntry:
    """A cached per-game stat stack."""

    key: str
    signature: str
    stack: Any  # StatsStack
    last_event_at: Optional[str]
    computed_at: float


@dataclass
class SeasonEntry:
    """A cached season aggregate and projection."""

    signature: str
    aggregate: Any  # SeasonAggregate
    projection: Any  # SeasonProjection
    last_updated: Optional[str]
    computed_at: float


def parse_timestamp_ms(value: Optional[str]) -> int:
    """Parse an ISO-8601 timestamp into epoch milliseconds. Unparsable -> 0."""
    if not value:
        return 0
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return 0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def format_timestamp_ms(ms: int) -> Optional[str]:
    """Format epoch milliseconds as an ISO-8601 UTC string, or None for 0."""
    if not ms:
        return None
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def latest_event_timestamp(events: list[PlayEvent]) -> int:
    return max((parse_timestamp_ms(ev.created_at) for ev in events), default=0)


def event_signature(events: list[PlayEvent], extras: Optional[list[str]] = None) -> str:
    """Deterministic fingerprint of an event set.

    Combines play count, summed yards, summed sequence numbers, the latest
    created_at timestamp, the first event's id and the contextual extras.

    Args:
        events: Events for one game/unit
        extras: Context such as unit and game id

    Returns:
        Pipe-delimited signature string
    """
    extras = list(extras or [])
    if not events:
        return "|".join(["0", *extras])
    yards = sum(ev.gained_yards or 0 for ev in events)
    sequence_sum = sum(ev.sequence or 0 for ev in events)
    first_id = events[0].id or "none"
    parts = [
        str(len(events)),
        f"{yards:.1f}",
        str(sequence_sum),
        str(latest_event_timestamp(events)),
        first_id,
        *extras,
    ]
    return "|".join(parts)


def season_signature(stacks: list[tuple[str, str, int]]) -> str:
    """Signature of a season from each game's (game_id, signature, plays)."""
    if not stacks:
        return "empty"
    return "|".join(f"{game_id}:{signature}:{plays}" for game_id, signature, plays in stacks)


def stack_key(game_id: Optional[str], unit: Optional[str]) -> str:
    return f"{game_id or 'game'}|{unit or 'ALL'}"


class StatsCache:
    """Bounded stack and season caches with signature-based invalidation."""

    def __init__(self, stack_limit: Optional[int] = None, season_limit: Optional[int] = None):
        """Initialize the cache.

        Args:
            stack_limit: Maximum stack entries (default from settings, 200)
            season_limit: Maximum season entries (default from settings, 50)

        Raises:
            ChartStatsError: If a limit is not positive
        """
        settings = get_settings()
        self.stack_limit = stack_limit if stack_limit is not None else settings.stack_cache_limit
        self.season_limit = season_limit if season_limit is not None else settings.season_cache_limit
        if self.stack_limit <= 0 or self.season_limit <= 0:
            raise ChartStatsError(
                f"Cache limits must be positive (stack={self.stack_limit}, season={self.season_limit})"
            )
        self._stacks: dict[str, StackEntry] = {}
        self._seasons: dict[str, SeasonEntry] = {}
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_stack(self, key: str, signature: str, compute: Callable[[], StackEntry]) -> StackEntry:
        """Return the cached stack for key when its signature matches, else compute it."""
        return self._get(self._stacks, self.stack_limit, key, signature, compute)

    def get_season(self, team_key: str, signature: str, compute: Callable[[], SeasonEntry]) -> SeasonEntry:
        """Return the cached season entry for a team when its signature matches, else compute it."""
        return self._get(self._seasons, self.season_limit, team_key, signature, compute)

    def _get(self, store: dict, limit: int, key: str, signature: str, compute: Callable):
        with self._lock:
            cached = store.get(key)
            if cached is not None and cached.signature == signature:
                self._stats["hits"] += 1
                logger.debug(f"Cache HIT: {key}")
                return cached
            self._stats["misses"] += 1

        logger.debug(f"Cache MISS: {key}")
        entry = compute()

        with self._lock:
            store.pop(key, None)
            store[key] = entry
            self._prune(store, limit)
        return entry

    def _prune(self, store: dict, limit: int) -> None:
        """Drop the oldest entries beyond limit. Caller holds the lock."""
        overflow = len(store) - limit
        if overflow <= 0:
            return
        # sorted() is stable, so insertion order breaks computed_at ties
        oldest = sorted(store.items(), key=lambda item: item[1].computed_at)[:overflow]
        for key, _ in oldest:
            del store[key]
            self._stats["evictions"] += 1
            logger.debug(f"Cache EVICT: {key}")

    # =========================================================================
    # Maintenance
    # =========================================================================

    def clear(self) -> dict:
        """Drop every entry and reset counters.

        Returns:
            Stats from before clearing
        """
        with self._lock:
            stats = self._snapshot()
            self._stacks.clear()
            self._seasons.clear()
            self._stats = {"hits": 0, "misses": 0, "evictions": 0}
        logger.debug(f"Cleared stats cache: {stats}")
        return stats

    def get_stats(self) -> dict:
        """Hit/miss/eviction counters, current sizes and hit rate."""
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> dict:
        total = self._stats["hits"] + self._stats["misses"]
        return {
            **self._stats,
            "stack_size": len(self._stacks),
            "season_size": len(self._seasons),
            "hit_rate": self._stats["hits"] / total if total > 0 else 0.0,
        }

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._stacks or key in self._seasons


def now_seconds() -> float:
    """Wall-clock stamp used for computed_at."""
    return time.time()
