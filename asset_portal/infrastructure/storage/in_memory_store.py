"""
===============================================================================
CRC CARD — infrastructure/storage/in_memory_store.py
===============================================================================

Clase:
  InMemoryDurableStore

Responsabilidades:
  - Implementar DurableStorePort con un dict (dev local / tests).
  - Contar llamadas get/put/delete para verificar el fast path del job index.

Colaboradores:
  - domain.services.DurableStorePort
===============================================================================
"""

from __future__ import annotations

from threading import Lock
from typing import Dict, Optional


class InMemoryDurableStore:
    """Durable store en memoria. Guarda copias inmutables (bytes)."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None) -> None:
        self._objects: Dict[str, bytes] = dict(initial or {})
        self._lock = Lock()
        self.get_calls = 0
        self.put_calls = 0
        self.delete_calls = 0

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            self.get_calls += 1
            return self._objects.get(key)

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self.put_calls += 1
            self._objects[key] = bytes(data)

    def delete(self, key: str) -> None:
        with self._lock:
            self.delete_calls += 1
            self._objects.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._objects)

    @property
    def total_calls(self) -> int:
        return self.get_calls + self.put_calls + self.delete_calls
