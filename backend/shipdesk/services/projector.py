"""Pure projection of the canonical shipment list into one table page.

Nothing here holds state or touches a backend: the same items and query
always give the same page.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any

from shipdesk.schemas.shipment import Shipment

PAGE_SIZE = 10
DEFAULT_SORT = "updatedAt:desc"


@dataclass(frozen=True)
class ViewQuery:
    text: str = ""
    status: str = ""
    sort_key: str = "updatedAt"
    sort_dir: str = "desc"
    page_index: int = 0

    @staticmethod
    def parse_sort(value: str | None) -> tuple[str, str]:
        """Split a ``key:dir`` select value; anything but ``asc`` sorts descending."""
        key, _, direction = (value or DEFAULT_SORT).partition(":")
        key = key.strip() or "updatedAt"
        return key, "asc" if direction.strip().lower() == "asc" else "desc"

    @property
    def sort(self) -> str:
        return f"{self.sort_key}:{self.sort_dir}"

    def with_text(self, text: str) -> ViewQuery:
        return replace(self, text=text, page_index=0)

    def with_status(self, status: str) -> ViewQuery:
        return replace(self, status=status, page_index=0)

    def with_sort(self, value: str) -> ViewQuery:
        key, direction = self.parse_sort(value)
        return replace(self, sort_key=key, sort_dir=direction, page_index=0)

    def with_page(self, page_index: int) -> ViewQuery:
        return replace(self, page_index=max(page_index, 0))

    def next_page(self) -> ViewQuery:
        return replace(self, page_index=self.page_index + 1)

    def prev_page(self) -> ViewQuery:
        return replace(self, page_index=max(self.page_index - 1, 0))


@dataclass(frozen=True)
class TablePage:
    page: tuple[Shipment, ...]
    total: int
    page_index: int

    @property
    def start(self) -> int:
        return self.page_index * PAGE_SIZE

    @property
    def has_prev(self) -> bool:
        return self.page_index > 0

    @property
    def has_next(self) -> bool:
        return self.start + PAGE_SIZE < self.total

    @property
    def summary(self) -> str:
        label = f"{self.total} result{'' if self.total == 1 else 's'}"
        if self.total > PAGE_SIZE:
            label += f" • showing {self.start + 1}-{min(self.start + PAGE_SIZE, self.total)}"
        return label


def search_haystack(item: Shipment) -> str:
    return " ".join(
        (item.tracking_no, item.sender.name, item.receiver.name, item.status, item.origin, item.destination)
    ).lower()


def matches(item: Shipment, query: ViewQuery) -> bool:
    needle = (query.text or "").strip().lower()
    if needle and needle not in search_haystack(item):
        return False
    return not query.status or item.status == query.status


def _sort_key(value: Any) -> tuple[int, Any]:
    # Missing values first, then numbers, then everything else as text.
    if value is None or value == "":
        return (0, 0)
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, str(value))


def project(items: Sequence[Shipment], query: ViewQuery | None = None) -> TablePage:
    query = query or ViewQuery()
    filtered = [item for item in items if matches(item, query)]
    # sorted() is stable in both directions, so equal keys keep their input order.
    ordered = sorted(
        filtered,
        key=lambda item: _sort_key(item.lookup(query.sort_key)),
        reverse=query.sort_dir != "asc",
    )
    page_index = max(query.page_index, 0)
    start = page_index * PAGE_SIZE
    return TablePage(page=tuple(ordered[start : start + PAGE_SIZE]), total=len(ordered), page_index=page_index)
