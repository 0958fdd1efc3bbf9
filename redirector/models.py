import logging
import random
import string
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from redirector.exceptions import StatsPersistenceError
from redirector.schemas import ReservedPaths, StatsView
from redirector.storage import read_bytes_if_exists, write_text_atomic

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_LENGTH = 16


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_token(rng: random.Random, length: int = TOKEN_LENGTH) -> str:
    """Generates a random alphanumeric token."""
    return ''.join(rng.choice(TOKEN_ALPHABET) for _ in range(length))


class PathRegistry:
    """
    Loads the reserved endpoint tokens from disk, or generates and stores
    new ones when the file is missing or unusable.
    """

    def __init__(self, path, rng: Optional[random.Random] = None):
        self.path = Path(path)
        self.rng = rng if rng is not None else random.SystemRandom()

    def load_or_generate(self) -> ReservedPaths:
        reserved = self._load()
        if reserved is not None:
            return reserved
        return self._generate_and_save()

    def _load(self) -> Optional[ReservedPaths]:
        try:
            data = read_bytes_if_exists(self.path)
        except OSError as e:
            logger.warning(f"Error reading paths file ({self.path}): {e}. Generating new paths.")
            return None
        if data is None:
            return None
        try:
            return ReservedPaths.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Error parsing paths file ({self.path}): {e}. Generating new paths.")
            return None

    def _generate_and_save(self) -> ReservedPaths:
        reserved = ReservedPaths(
            stats_path=generate_token(self.rng),
            stats_json_path=generate_token(self.rng),
            reset_path=generate_token(self.rng),
        )
        try:
            write_text_atomic(self.path, reserved.model_dump_json(indent=2))
        except OSError as e:
            # Tokens stay valid for this run only.
            logger.error(f"Error writing newly generated paths to {self.path}: {e}")
        return reserved


class StatsStore:
    """
    Redirect counters shared by all request workers.

    Every operation takes the same lock. Mutations persist the whole store
    before releasing it, so concurrent writers never interleave on disk.
    """

    def __init__(self, path, clock: Callable[[], datetime] = utcnow):
        self.path = Path(path)
        self._clock = clock
        self._lock = threading.Lock()
        self._total_redirects = 0
        self._paths = {}
        self._start_time = clock()

    def load(self) -> None:
        """Replaces in-memory state with the persisted file, if it is usable."""
        try:
            data = read_bytes_if_exists(self.path)
        except OSError as e:
            logger.warning(f"Error reading stats file ({self.path}): {e}. Continuing with default stats.")
            return
        if data is None:
            return
        try:
            view = StatsView.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Error parsing stats file ({self.path}): {e}. Continuing with default stats.")
            return

        total = sum(view.paths.values())
        if total != view.total_redirects:
            logger.warning(
                f"Stats file {self.path} has total_redirects={view.total_redirects} "
                f"but paths sum to {total}; using {total}"
            )
        start_time = view.start_time
        if start_time.tzinfo is None:
            start_time = start_time.replace(tzinfo=timezone.utc)
        with self._lock:
            self._total_redirects = total
            self._paths = dict(view.paths)
            self._start_time = start_time

    def record_redirect(self, path: str) -> None:
        """
        Counts one redirect for `path` and persists.
        Raises StatsPersistenceError if the write fails; the count is kept.
        """
        with self._lock:
            self._total_redirects += 1
            self._paths[path] = self._paths.get(path, 0) + 1
            self._save_locked()

    def snapshot(self) -> StatsView:
        with self._lock:
            return self._view_locked()

    def reset(self) -> None:
        """Zeroes all counters and restarts the clock, then persists."""
        with self._lock:
            now = self._clock()
            if now <= self._start_time:
                now = self._start_time + timedelta(microseconds=1)
            self._total_redirects = 0
            self._paths = {}
            self._start_time = now
            self._save_locked()

    def save(self) -> None:
        with self._lock:
            self._save_locked()

    def _view_locked(self) -> StatsView:
        return StatsView(
            total_redirects=self._total_redirects,
            paths=dict(self._paths),
            start_time=self._start_time,
        )

    def _save_locked(self) -> None:
        try:
            write_text_atomic(self.path, self._view_locked().model_dump_json(indent=2))
        except OSError as e:
            logger.error(f"Error saving statistics to {self.path}: {e}")
            raise StatsPersistenceError(str(e)) from e
