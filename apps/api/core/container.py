"""
Dependency-injection container.

Maps string tokens to service implementations. A binding is created with
``container.bind(TOKEN)`` followed by one of:

    .to(cls)             new instance of ``cls`` on every resolve (transient)
    .to_factory(fn)      result of ``fn()`` on every resolve (transient)
    .to_value(obj)       the same object on every resolve (singleton)
    .to_singleton(fn)    ``fn()`` on first resolve, then that instance

Call sites resolve by token and never name the implementation, so the
local and remote backends are swapped in one place (core/modules.py).
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Service tokens
AUTH_SERVICE = "AuthService"
PROFILE_SERVICE = "ProfileService"
WORKOUT_SERVICE = "WorkoutService"
AI_SERVICE = "AIService"
PAYMENT_SERVICE = "PaymentService"
SECURITY_SERVICE = "SecurityService"
TRAINER_SERVICE = "TrainerService"
LOCAL_STORAGE = "LocalStorageService"
QUERY_CLIENT = "QueryClient"

TRANSIENT = "transient"
SINGLETON = "singleton"


class BindingNotFoundError(LookupError):
    def __init__(self, token: str):
        super().__init__(f"No binding found for token: {token}")
        self.token = token


@dataclass
class Binding:
    token: str
    factory: Optional[Callable[[], Any]] = None
    lifetime: str = TRANSIENT
    instance: Any = None
    resolved: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def resolve(self) -> Any:
        if self.lifetime == TRANSIENT:
            return self.factory()
        if not self.resolved:
            with self.lock:
                if not self.resolved:
                    self.instance = self.factory()
                    self.resolved = True
        return self.instance


class BindingBuilder:
    def __init__(self, container: "Container", token: str):
        self._container = container
        self._token = token

    def to(self, cls: type, *args, **kwargs) -> Binding:
        return self._register(Binding(self._token, lambda: cls(*args, **kwargs), TRANSIENT))

    def to_factory(self, factory: Callable[[], Any]) -> Binding:
        return self._register(Binding(self._token, factory, TRANSIENT))

    def to_value(self, value: Any) -> Binding:
        return self._register(Binding(self._token, None, SINGLETON, instance=value, resolved=True))

    def to_singleton(self, factory: Callable[[], Any]) -> Binding:
        return self._register(Binding(self._token, factory, SINGLETON))

    def _register(self, binding: Binding) -> Binding:
        self._container._set(binding)
        return binding


class Container:
    """Registry of token -> binding."""

    def __init__(self) -> None:
        self._bindings: Dict[str, Binding] = {}
        self._lock = threading.Lock()

    def bind(self, token: str) -> BindingBuilder:
        return BindingBuilder(self, token)

    def _set(self, binding: Binding) -> None:
        with self._lock:
            if binding.token in self._bindings:
                logger.debug(f"Rebinding {binding.token}")
            self._bindings[binding.token] = binding

    def resolve(self, token: str) -> Any:
        binding = self._bindings.get(token)
        if binding is None:
            raise BindingNotFoundError(token)
        return binding.resolve()

    def is_bound(self, token: str) -> bool:
        return token in self._bindings

    def tokens(self) -> List[str]:
        return sorted(self._bindings)

    def clear(self) -> None:
        with self._lock:
            self._bindings.clear()


# Application-wide container
container = Container()


def provide(token: str) -> Callable[[], Any]:
    """
    FastAPI dependency factory resolving ``token`` from the app container.

    Usage:
        @router.get("/credits")
        def credits(ai: IAIService = Depends(provide(AI_SERVICE))):
            ...
    """
    def _resolve() -> Any:
        return container.resolve(token)

    _resolve.__name__ = f"provide_{token}"
    return _resolve
