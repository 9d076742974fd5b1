"""Persisted per-device exposure decisions with dirty-bit gated saves."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping

LOGGER = logging.getLogger(__name__)

SaveSink = Callable[[dict[str, bool]], None]


class ExposureLedger:
    """Device id -> "should be exposed" map.

    A missing entry means undecided. `save()` hands the full snapshot to the
    sink and only does so when something changed since the last load or save.
    """

    def __init__(self, data: Mapping[str, bool] | None = None, on_save: SaveSink | None = None) -> None:
        self._entries: dict[str, bool] = {}
        for device_id, exposed in (data or {}).items():
            self._entries[device_id] = exposed
        self._dirty = False
        self._on_save = on_save

    def get(self, device_id: str) -> bool | None:
        return self._entries.get(device_id)

    def has(self, device_id: str) -> bool:
        return device_id in self._entries

    def set(self, device_id: str, exposed: bool) -> None:
        if device_id not in self._entries or self._entries[device_id] != exposed:
            self._dirty = True
        self._entries[device_id] = exposed

    def set_all(self, exposed: bool) -> None:
        for device_id in list(self._entries):
            self.set(device_id, exposed)
        self.save()

    def delete(self, device_id: str) -> None:
        if device_id in self._entries:
            del self._entries[device_id]
            self._dirty = True

    def is_dirty(self) -> bool:
        return self._dirty

    def snapshot(self) -> dict[str, bool]:
        return dict(self._entries)

    def save(self) -> bool:
        """Flush the snapshot if dirty; returns whether a write happened."""
        if not self._dirty:
            return False
        if self._on_save is not None:
            self._on_save(self.snapshot())
        else:
            LOGGER.debug("exposure ledger has no save sink, dropping %d entries", len(self._entries))
        self._dirty = False
        return True

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
