from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventEmitter:
    """Tiny synchronous event: listeners are called in registration order."""

    def __init__(self):
        self._listeners: List[Callable[[Any], None]] = []

    def event(self, listener: Callable[[Any], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    def fire(self, value: Any = None) -> None:
        for listener in list(self._listeners):
            listener(value)


class KernelProvider:
    def __init__(self, provide_kernels: Callable[[], list], on_did_change_kernels: EventEmitter):
        self.provide_kernels = provide_kernels
        self.on_did_change_kernels = on_did_change_kernels


class KernelProviderRegistry:
    """Host-side registry of kernel providers keyed by notebook view type."""

    def __init__(self):
        self._providers: Dict[str, List[KernelProvider]] = {}

    def register(self, view_type: str, provider: KernelProvider) -> Callable[[], None]:
        self._providers.setdefault(view_type, []).append(provider)
        logger.debug("Registered kernel provider for %s", view_type)

        def dispose() -> None:
            providers = self._providers.get(view_type, [])
            if provider in providers:
                providers.remove(provider)

        return dispose

    def providers(self, view_type: str) -> List[KernelProvider]:
        return list(self._providers.get(view_type, []))

    def kernels(self, view_type: str) -> list:
        out: list = []
        for p in self.providers(view_type):
            out.extend(p.provide_kernels())
        return out

    def preferred_kernel(self, view_type: str) -> Optional[Any]:
        kernels = self.kernels(view_type)
        return next((k for k in kernels if getattr(k, "is_preferred", False)), None)
