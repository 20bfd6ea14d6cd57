"""
Frozen-unit registry.

Frozen groups and modules are exempt from recomputation: the scheduler treats
them as already completed and resets leave them untouched.
"""

from collections.abc import Iterable


class FreezeRegistry:
    """Tracks which group/module ids are frozen."""

    def __init__(self, frozen: Iterable[str] = ()):
        self._frozen: set[str] = set(frozen)

    def toggle(self, unit_id: str) -> bool:
        """Flip the frozen flag; returns the new state."""
        if unit_id in self._frozen:
            self._frozen.discard(unit_id)
            return False
        self._frozen.add(unit_id)
        return True

    def freeze(self, unit_id: str) -> None:
        self._frozen.add(unit_id)

    def unfreeze(self, unit_id: str) -> None:
        self._frozen.discard(unit_id)

    def is_frozen(self, unit_id: str) -> bool:
        return unit_id in self._frozen

    def frozen_ids(self) -> frozenset[str]:
        return frozenset(self._frozen)

    def __contains__(self, unit_id: str) -> bool:
        return unit_id in self._frozen

    def __len__(self) -> int:
        return len(self._frozen)
