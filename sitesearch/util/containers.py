from contextlib import contextmanager
from typing import Hashable, Iterator, TypeVar, Generic
import threading

K = TypeVar("K")
V = TypeVar("V")


class ThreadSafeDict(Generic[K, V]):
    """
    A thread-safe dictionary. put_if_absent is the atomic claim used by crawl
    tasks racing for the same URL.
    """

    def __init__(self):
        self._dict: dict[K, V] = {}
        self._lock = threading.Lock()

    def get(self, key: K, default: V | None = None) -> V | None:
        with self._lock:
            return self._dict.get(key, default)

    def put_if_absent(self, key: K, value: V) -> bool:
        """
        Returns True if the key was absent and is now set to value, False if
        some other caller already owned it.
        """
        with self._lock:
            if key in self._dict:
                return False
            self._dict[key] = value
            return True

    def keys(self) -> list[K]:
        with self._lock:
            return list(self._dict.keys())

    def __contains__(self, key: K) -> bool:
        with self._lock:
            return key in self._dict

    def __len__(self) -> int:
        with self._lock:
            return len(self._dict)


class StripedLock:
    """
    A fixed set of locks shared out by key hash. Two keys may land on the same
    stripe, which only costs some contention; the same key always lands on the
    same stripe, which is what correctness needs. Unlike a lock-per-key map,
    this never grows.
    """

    def __init__(self, stripes: int = 256):
        if stripes < 1:
            raise ValueError("stripes must be at least 1")
        self._locks = [threading.Lock() for _ in range(stripes)]

    def lock_for(self, key: Hashable) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self.lock_for(key):
            yield

    def __len__(self) -> int:
        return len(self._locks)
