"""
Domain: Row selection for bulk actions (pure).

A SelectionSet holds store ids. It is independent of filters, sorting and the
current page: changing any of those keeps the selection. Ids of rows that
have since disappeared are harmless; bulk actions skip them.

"Select all" is always scoped to the rows currently on screen, so the
operator can never act on rows they have not seen.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable


@dataclass(frozen=True, slots=True)
class SelectionSet:
    ids: FrozenSet[str] = field(default_factory=frozenset)

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, row_id: object) -> bool:
        return row_id in self.ids

    def __iter__(self):
        return iter(sorted(self.ids))

    def toggle(self, row_id: str) -> "SelectionSet":
        if row_id in self.ids:
            return SelectionSet(self.ids - {row_id})
        return SelectionSet(self.ids | {row_id})

    def add(self, row_id: str) -> "SelectionSet":
        return SelectionSet(self.ids | {row_id})

    def remove(self, row_id: str) -> "SelectionSet":
        return SelectionSet(self.ids - {row_id})

    def without(self, row_ids: Iterable[str]) -> "SelectionSet":
        return SelectionSet(self.ids - frozenset(row_ids))

    def clear(self) -> "SelectionSet":
        return SelectionSet()

    def select_page(self, page_ids: Iterable[str]) -> "SelectionSet":
        """Add exactly the ids visible on the current page."""

        return SelectionSet(self.ids | frozenset(page_ids))

    def deselect_page(self, page_ids: Iterable[str]) -> "SelectionSet":
        return SelectionSet(self.ids - frozenset(page_ids))

    def covers(self, page_ids: Iterable[str]) -> bool:
        """True when every id on a non-empty page is selected."""

        ids = frozenset(page_ids)
        return bool(ids) and ids <= self.ids

    def prune(self, existing_ids: Iterable[str]) -> "SelectionSet":
        """Drop ids that no longer reference a known row."""

        return SelectionSet(self.ids & frozenset(existing_ids))
