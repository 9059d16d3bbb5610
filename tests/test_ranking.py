from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from jobhub.services.ranking import SearchEngine, interleave, sort_entries, tier_of
from jobhub.services.records import SearchEntry, SearchFilters
from jobhub.services.store import InMemoryStore

BASE = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _entry(
    slug: str,
    *,
    age_hours: int = 0,
    salary: float = 1000.0,
    featured: bool = False,
    hot: bool = False,
    **fields,
) -> SearchEntry:
    values = {
        "job_id": f"id-{slug}",
        "slug": slug,
        "title": fields.pop("title", slug),
        "company": "c1",
        "company_name": "Acme",
        "location": fields.pop("location", "Remote"),
        "salary": salary,
        "job_type": fields.pop("job_type", "Full-time"),
        "posted_by": "rec-1",
        "status": "Published",
        "created_at": BASE - timedelta(hours=age_hours),
        "is_featured": featured,
        "is_hot": hot,
    }
    values.update(fields)
    return SearchEntry(**values)


def _slugs(items) -> list[str]:
    return [item.entry.slug for item in items]


def _seeded_engine(entries: list[SearchEntry]) -> SearchEngine:
    store = InMemoryStore()
    for entry in entries:
        asyncio.run(store.upsert_search_entry(entry))
    return SearchEngine(store)


def _tiered_entries() -> list[SearchEntry]:
    return [
        _entry("f1", age_hours=1, featured=True),
        _entry("f2", age_hours=2, featured=True),
        _entry("h1", age_hours=3, hot=True),
        *[_entry(f"n{index}", age_hours=3 + index) for index in range(1, 6)],
    ]


def test_tier_of_prefers_featured_over_hot() -> None:
    assert tier_of(_entry("a", featured=True, hot=True)) == "featured"
    assert tier_of(_entry("b", hot=True)) == "hot"
    assert tier_of(_entry("c")) == "normal"


def test_interleave_follows_pattern_and_skips_exhausted_tiers() -> None:
    featured = [_entry("f1"), _entry("f2")]
    hot = [_entry("h1")]
    normal = [_entry(f"n{index}") for index in range(1, 6)]

    merged = interleave(featured, hot, normal)

    assert _slugs(merged) == ["f1", "h1", "n1", "n2", "n3", "f2", "n4", "n5"]
    assert [item.job_category for item in merged[:3]] == ["featured", "hot", "normal"]


def test_interleave_with_only_normal_entries_keeps_order() -> None:
    normal = [_entry(f"n{index}") for index in range(1, 4)]
    assert _slugs(interleave([], [], normal)) == ["n1", "n2", "n3"]


def test_search_pages_slice_the_interleaved_sequence() -> None:
    engine = _seeded_engine(_tiered_entries())

    first = asyncio.run(engine.search(SearchFilters(), page=1, limit=5))
    second = asyncio.run(engine.search(SearchFilters(), page=2, limit=5))

    assert _slugs(first.items) == ["f1", "h1", "n1", "n2", "n3"]
    assert _slugs(second.items) == ["f2", "n4", "n5"]
    assert first.total == 8
    assert first.total_pages == 2
    assert first.stats == {"featured": 1, "hot": 1, "normal": 3}
    assert second.stats == {"featured": 1, "hot": 0, "normal": 2}
    assert first.interleaving_enabled is True


def test_search_without_interleaving_uses_priority_sort() -> None:
    engine = _seeded_engine(_tiered_entries())

    result = asyncio.run(engine.search(SearchFilters(), limit=20, enable_interleaving=False))

    assert _slugs(result.items) == ["f1", "f2", "h1", "n1", "n2", "n3", "n4", "n5"]
    assert result.interleaving_enabled is False


def test_salary_sort_breaks_ties_by_newest_first() -> None:
    entries = [
        _entry("old", age_hours=10, salary=100.0),
        _entry("new", age_hours=1, salary=100.0),
        _entry("rich", age_hours=5, salary=500.0),
    ]

    assert [entry.slug for entry in sort_entries(entries, "salary", "desc")] == ["rich", "new", "old"]
    assert [entry.slug for entry in sort_entries(entries, "salary", "asc")] == ["new", "old", "rich"]
    assert [entry.slug for entry in sort_entries(entries, "createdAt", "asc")] == ["old", "rich", "new"]


def test_search_filters() -> None:
    engine = _seeded_engine(
        [
            _entry("py", title="Python Engineer", skills=["python", "sql"], salary=90.0, location="Berlin"),
            _entry("go", title="Go Engineer", skills=["go"], salary=120.0, location="Remote", job_type="Contract"),
            _entry("pm", title="Product Manager", skills=[], salary=80.0, experience="Senior"),
        ]
    )

    def slugs(filters: SearchFilters) -> set[str]:
        return set(_slugs(asyncio.run(engine.search(filters, limit=50)).items))

    assert slugs(SearchFilters(query="engineer")) == {"py", "go"}
    assert slugs(SearchFilters(location="berl")) == {"py"}
    assert slugs(SearchFilters(job_type="Contract")) == {"go"}
    assert slugs(SearchFilters(min_salary=85.0, max_salary=100.0)) == {"py"}
    assert slugs(SearchFilters(experience="Senior")) == {"pm"}
    assert slugs(SearchFilters(skills=["go", "sql"])) == {"py", "go"}


def test_empty_search_has_zero_pages() -> None:
    result = asyncio.run(SearchEngine(InMemoryStore()).search(SearchFilters(query="nothing")))

    assert result.items == []
    assert result.total == 0
    assert result.total_pages == 0
