"""
Cached queries and mutations over the domain services.

A QueryClient keeps results keyed by tuples such as ("diet-plans", trainer_id).
Entries older than ``stale_time`` seconds are refetched on the next read.
Mutations invalidate every cached key starting with one of the prefixes they
name, and report their outcome as toast notifications.

There is no retry and no optimistic update: a failed query is returned as
an error result and is never cached.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
QueryKey = Tuple[Any, ...]

IDLE = "idle"
SUCCESS = "success"
ERROR = "error"


@dataclass
class QueryResult(Generic[T]):
    data: Optional[T] = None
    error: Optional[Exception] = None
    status: str = IDLE

    @property
    def is_success(self) -> bool:
        return self.status == SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status == ERROR

    @property
    def is_idle(self) -> bool:
        return self.status == IDLE

    def unwrap(self) -> Optional[T]:
        """The data, re-raising the error of a failed call."""
        if self.error is not None:
            raise self.error
        return self.data


@dataclass
class Toast:
    title: str
    description: Optional[str] = None
    variant: str = "default"  # default | destructive


class Toaster:
    """Collects notifications raised by mutations, newest last."""

    MAX_TOASTS = 100

    def __init__(self) -> None:
        self.toasts: List[Toast] = []
        self._lock = threading.Lock()

    def _push(self, toast: Toast) -> Toast:
        with self._lock:
            self.toasts.append(toast)
            del self.toasts[:-self.MAX_TOASTS]
        return toast

    def success(self, title: str, description: Optional[str] = None) -> Toast:
        return self._push(Toast(title, description))

    def error(self, title: str, description: Optional[str] = None) -> Toast:
        return self._push(Toast(title, description, variant="destructive"))

    def last(self) -> Optional[Toast]:
        with self._lock:
            return self.toasts[-1] if self.toasts else None

    def clear(self) -> None:
        with self._lock:
            self.toasts.clear()


@dataclass
class _Entry:
    data: Any
    updated_at: float


@dataclass
class Mutation(Generic[T]):
    client: "QueryClient"
    fn: Callable[..., T]
    invalidates: Tuple[QueryKey, ...] = ()
    success_toast: Optional[str] = None
    error_toast: Optional[str] = None
    on_success: Optional[Callable[[T], None]] = None
    last_result: QueryResult = field(default_factory=QueryResult)

    def mutate(self, *args, **kwargs) -> QueryResult[T]:
        try:
            data = self.fn(*args, **kwargs)
        except Exception as e:
            logger.info(f"Mutation failed: {e}")
            if self.error_toast:
                self.client.toaster.error(self.error_toast, str(e))
            self.last_result = QueryResult(error=e, status=ERROR)
            return self.last_result

        for prefix in self.invalidates:
            self.client.invalidate_queries(prefix)
        if self.on_success:
            self.on_success(data)
        if self.success_toast:
            self.client.toaster.success(self.success_toast)
        self.last_result = QueryResult(data=data, status=SUCCESS)
        return self.last_result

    def mutate_or_raise(self, *args, **kwargs) -> T:
        return self.mutate(*args, **kwargs).unwrap()


class QueryClient:
    def __init__(self, stale_time: float = 30.0, clock: Callable[[], float] = time.monotonic,
                 toaster: Optional[Toaster] = None):
        self.stale_time = stale_time
        self.clock = clock
        self.toaster = toaster or Toaster()
        self._cache: Dict[QueryKey, _Entry] = {}
        self._lock = threading.RLock()

    def get_query_data(self, key: QueryKey) -> Optional[Any]:
        with self._lock:
            entry = self._cache.get(tuple(key))
            return entry.data if entry else None

    def set_query_data(self, key: QueryKey, data: Any) -> None:
        with self._lock:
            self._cache[tuple(key)] = _Entry(data, self.clock())

    def is_fresh(self, key: QueryKey) -> bool:
        with self._lock:
            entry = self._cache.get(tuple(key))
            return entry is not None and self.clock() - entry.updated_at < self.stale_time

    def fetch_query(self, key: QueryKey, fn: Callable[[], T]) -> T:
        """Cached data when fresh, otherwise call ``fn`` and cache the result."""
        key = tuple(key)
        if self.is_fresh(key):
            return self.get_query_data(key)
        data = fn()
        self.set_query_data(key, data)
        return data

    def use_query(self, key: QueryKey, fn: Callable[[], T], enabled: bool = True) -> QueryResult[T]:
        """Run a cached query. Disabled queries return an idle result without calling ``fn``."""
        if not enabled:
            return QueryResult()
        try:
            return QueryResult(data=self.fetch_query(key, fn), status=SUCCESS)
        except Exception as e:
            logger.info(f"Query {key!r} failed: {e}")
            return QueryResult(error=e, status=ERROR)

    def use_mutation(self, fn: Callable[..., T], invalidates: Iterable[QueryKey] = (),
                     success_toast: Optional[str] = None, error_toast: Optional[str] = None,
                     on_success: Optional[Callable[[T], None]] = None) -> Mutation[T]:
        return Mutation(
            client=self,
            fn=fn,
            invalidates=tuple(tuple(k) for k in invalidates),
            success_toast=success_toast,
            error_toast=error_toast,
            on_success=on_success,
        )

    def invalidate_queries(self, prefix: QueryKey = ()) -> int:
        """Drop every entry whose key starts with ``prefix``. Returns how many were dropped."""
        prefix = tuple(prefix)
        with self._lock:
            stale = [k for k in self._cache if k[:len(prefix)] == prefix]
            for key in stale:
                del self._cache[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
        self.toaster.clear()


def get_query_client() -> QueryClient:
    """The application's shared client from the container."""
    from core.container import QUERY_CLIENT, container

    return container.resolve(QUERY_CLIENT)
