"""Ordered registry of adapters."""

from __future__ import annotations

import logging
from typing import Iterator, List, Optional

from .adapter import Adapter
from .models import AdapterInfo

logger = logging.getLogger(__name__)


class Registry:
    """Adapters in fallback-chain order.

    Sorted by ``priority`` ascending; equal priorities keep registration
    order. Registration happens once at startup, after which the registry
    is sealed and only read.
    """

    def __init__(self, adapters: Optional[List[Adapter]] = None) -> None:
        self._entries: List[tuple] = []
        self._sealed = False
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: Adapter) -> Adapter:
        if self._sealed:
            raise RuntimeError(
                f"Cannot register adapter '{adapter.id}': registry is sealed."
            )
        if not adapter.id:
            raise ValueError(f"Adapter {adapter!r} has no id.")
        if self.get(adapter.id) is not None:
            raise ValueError(f"Adapter id '{adapter.id}' is already registered.")

        self._entries.append((adapter.priority, len(self._entries), adapter))
        self._entries.sort(key=lambda entry: (entry[0], entry[1]))
        logger.info(
            "Registered adapter '%s' (%s) with priority %d",
            adapter.id,
            adapter.name,
            adapter.priority,
        )
        return adapter

    def seal(self) -> None:
        self._sealed = True
        logger.debug("Adapter registry sealed with %d adapters", len(self))

    @property
    def sealed(self) -> bool:
        return self._sealed

    def get(self, adapter_id: str) -> Optional[Adapter]:
        for _, _, adapter in self._entries:
            if adapter.id == adapter_id:
                return adapter
        return None

    def describe(self) -> List[AdapterInfo]:
        return [adapter.describe() for adapter in self]

    def __iter__(self) -> Iterator[Adapter]:
        return iter([adapter for _, _, adapter in self._entries])

    def __len__(self) -> int:
        return len(self._entries)
