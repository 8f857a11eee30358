"""Where computed cover types end up.

The coordinator only needs to apply, clear and read a token's current set
of cover type ids. Hosts plug in their own store (active effects, status
icons, a database row); InMemoryCoverEffectStore keeps them in a dict.
"""

from __future__ import annotations

from typing import Protocol, Sequence


class CoverEffectStore(Protocol):
    def apply(self, token_id: str, type_ids: Sequence[str]) -> None: ...

    def clear(self, token_id: str) -> None: ...

    def get(self, token_id: str) -> tuple[str, ...]: ...


class InMemoryCoverEffectStore:
    def __init__(self) -> None:
        self._effects: dict[str, tuple[str, ...]] = {}
        # Number of apply/clear calls that changed something
        self.changes = 0

    def __repr__(self) -> str:
        return f"InMemoryCoverEffectStore({self._effects!r})"

    def apply(self, token_id: str, type_ids: Sequence[str]) -> None:
        ids = tuple(type_ids)
        if not ids:
            self.clear(token_id)
            return
        if self._effects.get(token_id) != ids:
            self._effects[token_id] = ids
            self.changes += 1

    def clear(self, token_id: str) -> None:
        if self._effects.pop(token_id, None) is not None:
            self.changes += 1

    def get(self, token_id: str) -> tuple[str, ...]:
        return self._effects.get(token_id, ())
