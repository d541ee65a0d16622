"""
Snapshot caching and cross-client invalidation.

The cache holds game, participant, bid and sold-rider state per game id
(never riders, which come from reference data). Its lifecycle is owned by
whoever constructs it; nothing here lives at module scope.

FileSnapshotCache uses atomic writes (temp file + rename) so a cache file
is never left half written.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Tuple

from .. import config
from .models import Snapshot

logger = logging.getLogger(__name__)


class SnapshotCache(ABC):
    """Per-game snapshot cache."""

    @abstractmethod
    def get(self, game_id: str) -> Optional[Snapshot]:
        """Return the cached snapshot, or None on a miss or expiry."""

    @abstractmethod
    def set(self, game_id: str, snapshot: Snapshot) -> None:
        """Store a snapshot for a game."""

    @abstractmethod
    def invalidate(self, game_id: str) -> None:
        """Drop the snapshot for a game so the next read is fresh."""


class MemorySnapshotCache(SnapshotCache):
    """In-process cache with expiry and a global version stamp."""

    def __init__(
        self,
        ttl_seconds: float = config.CACHE_DURATION_SECONDS,
        version: int = config.CACHE_VERSION,
        clock=time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self.version = version
        self._clock = clock
        self._entries: Dict[str, Tuple[float, int, Snapshot]] = {}

    def get(self, game_id: str) -> Optional[Snapshot]:
        entry = self._entries.get(game_id)
        if entry is None:
            return None

        stored_at, version, snapshot = entry
        if version != self.version:
            logger.debug(f"Cache version mismatch for {game_id}: {version} != {self.version}")
            self._entries.pop(game_id, None)
            return None
        if self._clock() - stored_at > self.ttl_seconds:
            logger.debug(f"Cache expired for {game_id}")
            self._entries.pop(game_id, None)
            return None

        return snapshot

    def set(self, game_id: str, snapshot: Snapshot) -> None:
        self._entries[game_id] = (self._clock(), self.version, snapshot)
        logger.debug(f"Cached snapshot for {game_id} ({len(snapshot.all_bids)} bids)")

    def invalidate(self, game_id: str) -> None:
        if self._entries.pop(game_id, None) is not None:
            logger.info(f"Invalidated auction cache for {game_id}")

    def bump_version(self) -> None:
        """Invalidate every cached game at once (e.g. after rider data changed)."""
        self.version += 1
        self._entries.clear()
        logger.info(f"Cache version bumped to {self.version}")


class FileSnapshotCache(SnapshotCache):
    """JSON file per game, shared between processes on the same machine."""

    def __init__(
        self,
        cache_dir: Path,
        ttl_seconds: float = config.CACHE_DURATION_SECONDS,
        version: int = config.CACHE_VERSION
    ):
        """
        Initialize file cache.

        Args:
            cache_dir: Directory for cache files
            ttl_seconds: Age after which an entry is treated as a miss
            version: Entries written under another version are ignored
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.ttl_seconds = ttl_seconds
        self.version = version

    def _path(self, game_id: str) -> Path:
        return self.cache_dir / f"auction_{game_id}.json"

    def get(self, game_id: str) -> Optional[Snapshot]:
        path = self._path(game_id)
        if not path.exists():
            return None

        try:
            with open(path, 'r', encoding='utf-8') as f:
                entry = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Failed to read cache {path}: {e}")
            return None

        if entry.get('version') != self.version:
            logger.debug(f"Cache version mismatch for {game_id}")
            return None
        if time.time() - entry.get('timestamp', 0) > self.ttl_seconds:
            logger.debug(f"Cache expired for {game_id}")
            return None

        try:
            return Snapshot.from_dict(entry['data'])
        except (KeyError, ValueError) as e:
            logger.error(f"Corrupt cache entry for {game_id}: {e}")
            return None

    def set(self, game_id: str, snapshot: Snapshot) -> None:
        entry = {
            'key': f"auction_{game_id}",
            'version': self.version,
            'timestamp': time.time(),
            'data': snapshot.to_dict(),
        }

        path = self._path(game_id)
        temp_path = path.with_suffix('.tmp')
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(entry, f, indent=2)
        temp_path.replace(path)

        logger.debug(f"Cached snapshot for {game_id} → {path}")

    def invalidate(self, game_id: str) -> None:
        path = self._path(game_id)
        if path.exists():
            path.unlink()
            logger.info(f"Invalidated auction cache for {game_id}")

    def clear(self) -> None:
        """
        Remove every cache file.

        WARNING: Deletes all cached games.
        """
        for cache_file in self.cache_dir.glob("auction_*.json"):
            cache_file.unlink()
        logger.warning(f"Cleared auction cache directory: {self.cache_dir}")


class Invalidation(NamedTuple):
    game_id: str
    origin: Optional[str] = None


class InvalidationChannel:
    """
    Asyncio pub/sub for "this game's bids changed" signals.

    Each subscriber gets its own queue. Publishing never blocks.
    """

    def __init__(self):
        self._subscribers: List[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, game_id: str, origin: Optional[str] = None) -> None:
        message = Invalidation(game_id, origin)
        for queue in self._subscribers:
            queue.put_nowait(message)
        logger.debug(f"Published invalidation for {game_id} to {len(self._subscribers)} subscriber(s)")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
