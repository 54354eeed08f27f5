"""Code buffers with debounced durable persistence.

Buffers are keyed by (problemId, language). Edits land in memory at once;
the durable copy is written by a trailing-edge debounce so only the last
text of a burst of edits ever reaches storage. CodeStore is the single
writer of persisted code.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Dict, Protocol

from .types import CodeKey

logger = logging.getLogger(__name__)

KEY_PREFIX = "code"

StorageErrorHandler = Callable[[CodeKey, Exception], None]


def storage_key(problem_id: str, language: str) -> str:
    """Persistence key for a code buffer, e.g. ``code:p1:cpp``."""
    return f"{KEY_PREFIX}:{problem_id}:{language}"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryKeyValueStore:
    """Process-local store; does not survive a restart."""

    def __init__(self, initial: Dict[str, str] | None = None) -> None:
        self.data: Dict[str, str] = dict(initial or {})
        self.writes: list[tuple[str, str]] = []

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value
        self.writes.append((key, value))


class JsonFileKeyValueStore:
    """Key-value store backed by one JSON file, rewritten atomically."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._data: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable code store {self.path}: {e}")
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


class CodeStore:
    """Buffers plus the debounced durable copy.

    Storage failures never propagate: they are logged and handed to
    `on_error`, and the in-memory buffer is kept.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        debounce_seconds: float = 2.0,
        on_error: StorageErrorHandler | None = None,
    ) -> None:
        if debounce_seconds <= 0:
            raise ValueError("debounce_seconds must be positive")
        self._storage = storage
        self._debounce_seconds = debounce_seconds
        self._on_error = on_error
        self._buffers: Dict[CodeKey, str] = {}
        self._pending: Dict[CodeKey, asyncio.Task] = {}

    def _report(self, key: CodeKey, action: str, error: Exception) -> None:
        logger.warning(f"Could not {action} code for {key[0]}/{key[1]}: {error}")
        if self._on_error is not None:
            self._on_error(key, error)

    def load(self, problem_id: str, language: str) -> str | None:
        """Read the persisted copy; None when nothing was saved or it is unreadable."""
        try:
            value = self._storage.get(storage_key(problem_id, language))
        except Exception as e:
            self._report((problem_id, language), "load", e)
            return None
        if value is None:
            return None
        self._buffers.setdefault((problem_id, language), value)
        return value

    def buffer(self, problem_id: str, language: str) -> str:
        return self._buffers.get((problem_id, language), "")

    def has_pending(self, problem_id: str, language: str) -> bool:
        task = self._pending.get((problem_id, language))
        return task is not None and not task.done()

    def set_code(self, problem_id: str, language: str, text: str) -> None:
        """Update the buffer now and (re)arm the debounced write.

        Empty text never reaches storage; it also drops any write still
        pending for the key, since that text is no longer the latest.
        """
        key = (problem_id, language)
        self._buffers[key] = text
        self._cancel(key)
        if not text:
            return
        self._pending[key] = asyncio.get_running_loop().create_task(
            self._write_later(key), name=f"persist-{problem_id}-{language}"
        )

    async def _write_later(self, key: CodeKey) -> None:
        await asyncio.sleep(self._debounce_seconds)
        # Detach before writing so a cancel from flush() cannot hit a finished write.
        if self._pending.get(key) is asyncio.current_task():
            del self._pending[key]
        self._write(key)

    def _write(self, key: CodeKey) -> bool:
        text = self._buffers.get(key, "")
        if not text:
            return False
        try:
            self._storage.set(storage_key(*key), text)
        except Exception as e:
            self._report(key, "save", e)
            return False
        logger.debug(f"Persisted code for {key[0]}/{key[1]} ({len(text)} chars)")
        return True

    def _cancel(self, key: CodeKey) -> bool:
        task = self._pending.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def flush(self, problem_id: str, language: str) -> bool:
        """Write a pending edit immediately. Returns True if a write happened."""
        key = (problem_id, language)
        if not self._cancel(key):
            return False
        return self._write(key)

    def drop(self, problem_id: str, language: str) -> bool:
        """Discard a pending edit without writing it."""
        return self._cancel((problem_id, language))

    def flush_all(self) -> int:
        return sum(1 for key in list(self._pending) if self.flush(*key))
