"""
Register Store

Fixed-size buffer of register values published as immutable snapshots.
Writers build a new snapshot from the previous one and swap the reference,
so readers never observe a partially-updated buffer.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Sequence

from modbridge.common.config import RegisterRange


@dataclass(frozen=True)
class Snapshot:
    """Full ordered register values at a point in time"""
    values: tuple[int, ...]
    version: int = 0
    updated_at: datetime | None = None

    def to_list(self) -> list[int]:
        return list(self.values)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "data": list(self.values),
        }


class RegisterStore:
    """
    Owned, versioned register buffer.

    Only get(), merge() and replace() are exposed. Length is fixed at
    construction and every update must address whole ranges inside it.
    """

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"Register store size must be positive, got {size}")
        self._size = size
        self._snapshot = Snapshot(values=(0,) * size)

    @property
    def size(self) -> int:
        return self._size

    def get(self) -> Snapshot:
        """Return the current snapshot"""
        return self._snapshot

    def replace(self, snapshot: Snapshot) -> None:
        """Swap in a complete snapshot"""
        if len(snapshot.values) != self._size:
            raise ValueError(
                f"Snapshot has {len(snapshot.values)} values, store holds {self._size}"
            )
        self._snapshot = snapshot

    def merge(self, updates: Iterable[tuple[RegisterRange, Sequence[int]]]) -> Snapshot:
        """
        Apply range updates in order and publish the result as a new snapshot.

        All updates are checked before anything is written; an invalid
        update leaves the store unchanged.

        Args:
            updates: (range, values) pairs; values must match range length

        Returns:
            The new current snapshot
        """
        updates = list(updates)
        for rng, values in updates:
            if len(values) != rng.length:
                raise ValueError(
                    f"Range {rng.name} expects {rng.length} values, got {len(values)}"
                )
            if rng.start < 0 or rng.end > self._size:
                raise ValueError(
                    f"Range {rng.name} [{rng.start}, {rng.end}) outside store of {self._size}"
                )

        previous = self._snapshot
        buffer = list(previous.values)
        for rng, values in updates:
            buffer[rng.start:rng.end] = [int(v) for v in values]

        snapshot = Snapshot(
            values=tuple(buffer),
            version=previous.version + 1,
            updated_at=datetime.now(timezone.utc),
        )
        self._snapshot = snapshot
        return snapshot
