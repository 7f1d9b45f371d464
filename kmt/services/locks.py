"""Per-request mutual exclusion for a single-process deployment."""
import threading
from contextlib import contextmanager
from typing import Iterator, Set

from kmt.services.errors import ConflictError


class KeyedLock:
    """
    At most one holder per key. A second caller fails fast with ConflictError
    instead of waiting.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: Set[str] = set()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            if key in self._held:
                raise ConflictError(
                    f"{key} is being modified by another operation; retry"
                )
            self._held.add(key)
        try:
            yield
        finally:
            with self._guard:
                self._held.discard(key)

    def is_held(self, key: str) -> bool:
        with self._guard:
            return key in self._held


# Shared by every service instance in this process
request_locks = KeyedLock()
