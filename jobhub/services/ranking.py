from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from jobhub.services.records import SearchEntry, SearchFilters

Tier = Literal["featured", "hot", "normal"]
SortKey = Literal["createdAt", "salary"]
SortOrder = Literal["asc", "desc"]

TIER_PATTERN: tuple[Tier, ...] = ("featured", "hot", "normal", "normal", "normal")


@dataclass(slots=True)
class RankedEntry:
    entry: SearchEntry
    job_category: Tier


@dataclass(slots=True)
class SearchPage:
    items: list[RankedEntry]
    total: int
    page: int
    limit: int
    total_pages: int
    interleaving_enabled: bool
    stats: dict[str, int] = field(default_factory=dict)


def tier_of(entry: SearchEntry) -> Tier:
    if entry.is_featured:
        return "featured"
    if entry.is_hot:
        return "hot"
    return "normal"


def sort_entries(
    entries: Sequence[SearchEntry],
    sort_by: SortKey = "createdAt",
    order: SortOrder = "desc",
) -> list[SearchEntry]:
    reverse = order == "desc"
    if sort_by == "salary":
        # Equal salaries keep newest first regardless of order.
        by_recency = sorted(entries, key=lambda entry: entry.created_at, reverse=True)
        return sorted(by_recency, key=lambda entry: entry.salary, reverse=reverse)
    return sorted(entries, key=lambda entry: entry.created_at, reverse=reverse)


def interleave(
    featured: Sequence[SearchEntry],
    hot: Sequence[SearchEntry],
    normal: Sequence[SearchEntry],
    pattern: Sequence[Tier] = TIER_PATTERN,
) -> list[RankedEntry]:
    """Walk `pattern` repeatedly, skipping slots whose tier has run out."""
    queues: dict[Tier, list[SearchEntry]] = {"featured": list(featured), "hot": list(hot), "normal": list(normal)}
    cursors: dict[Tier, int] = {"featured": 0, "hot": 0, "normal": 0}
    remaining = sum(len(items) for items in queues.values())
    merged: list[RankedEntry] = []
    while remaining:
        for tier in pattern:
            cursor = cursors[tier]
            if cursor >= len(queues[tier]):
                continue
            merged.append(RankedEntry(entry=queues[tier][cursor], job_category=tier))
            cursors[tier] = cursor + 1
            remaining -= 1
    return merged


class SearchEngine:
    def __init__(self, store, *, enable_interleaving: bool = True) -> None:
        self.store = store
        self.enable_interleaving = enable_interleaving

    async def search(
        self,
        filters: SearchFilters,
        *,
        sort_by: SortKey = "createdAt",
        order: SortOrder = "desc",
        page: int = 1,
        limit: int = 10,
        enable_interleaving: bool | None = None,
    ) -> SearchPage:
        page = max(1, page)
        limit = max(1, min(limit, 100))
        interleaving = self.enable_interleaving if enable_interleaving is None else enable_interleaving

        entries = sort_entries(await self.store.find_search_entries(filters), sort_by, order)
        featured = [entry for entry in entries if tier_of(entry) == "featured"]
        hot = [entry for entry in entries if tier_of(entry) == "hot"]
        normal = [entry for entry in entries if tier_of(entry) == "normal"]

        if interleaving:
            ranked = interleave(featured, hot, normal)
        else:
            ranked = [RankedEntry(entry=entry, job_category=tier_of(entry)) for entry in featured + hot + normal]

        start = (page - 1) * limit
        items = ranked[start : start + limit]
        stats = {"featured": 0, "hot": 0, "normal": 0}
        for item in items:
            stats[item.job_category] += 1
        return SearchPage(
            items=items,
            total=len(ranked),
            page=page,
            limit=limit,
            total_pages=math.ceil(len(ranked) / limit),
            interleaving_enabled=interleaving,
            stats=stats,
        )
