from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from download_stats.db.session import Base, engine, SessionLocal
from download_stats.models.event import DownloadEvent
from download_stats.models.product import Product, ProductMeta, PRODUCT_DRAFT, PRODUCT_PUBLISHED, DOWNLOAD_COUNT_META_KEY
from download_stats.schemas.statistics import CountDownloadsQuery, PopularDownloadsQuery
from download_stats.services.cache import TTLCache
from download_stats.services.catalog import ProductCatalog
from download_stats.services.statistics import AllTime, Since, DownloadStatistics, resolve_window


NOW = datetime(2026, 3, 15, 12, 0, 0)


@pytest.fixture(autouse=True)
def _reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_stats(db, cache=None):
    if cache is None:
        cache = TTLCache(ttl_seconds=600)
    return DownloadStatistics(db=db, cache=cache, catalog=ProductCatalog(db), clock=lambda: NOW)


def add_product(db, title, count=None, status=PRODUCT_PUBLISHED):
    product = Product(title=title, status=status)
    db.add(product)
    db.flush()
    if count is not None:
        db.add(ProductMeta(product_id=product.id, meta_key=DOWNLOAD_COUNT_META_KEY, meta_value=str(count)))
    db.commit()
    db.refresh(product)
    return product


def add_event(db, download_id, when, status="success"):
    db.add(DownloadEvent(status=status, date=when, download_id=download_id, user_id=0, user_ip=b"", user_agent=""))
    db.commit()


def test_resolve_window_branches_on_days():
    assert resolve_window(0, NOW) == AllTime()
    assert resolve_window(3, NOW) == Since(start=NOW - timedelta(days=3))
    with pytest.raises(ValueError):
        resolve_window(-1, NOW)


def test_query_models_validate_and_default():
    q = PopularDownloadsQuery()
    assert q.days == 0 and q.limit == 5 and q.use_cache is True
    with pytest.raises(ValidationError):
        PopularDownloadsQuery(limit=0)
    with pytest.raises(ValidationError):
        CountDownloadsQuery(days=-1)


def test_count_downloads_all_time_sums_counters(db):
    a = add_product(db, "Alpha", count=5)
    b = add_product(db, "Beta", count=12)
    add_product(db, "No counter")
    stats = make_stats(db)

    assert stats.count_downloads(CountDownloadsQuery(use_cache=False)) == 17
    assert stats.count_downloads(CountDownloadsQuery(download_id=a.id, use_cache=False)) == 5
    assert stats.count_downloads(CountDownloadsQuery(download_id=b.id, use_cache=False)) == 12


def test_count_downloads_all_time_is_zero_when_absent(db):
    stats = make_stats(db)
    assert stats.count_downloads() == 0
    assert stats.count_downloads(CountDownloadsQuery(download_id=999, use_cache=False)) == 0


def test_count_downloads_all_time_ignores_events(db):
    product = add_product(db, "Alpha", count=2)
    add_event(db, product.id, NOW - timedelta(hours=1))
    add_event(db, product.id, NOW - timedelta(hours=2))
    add_event(db, product.id, NOW - timedelta(hours=3))

    stats = make_stats(db)
    assert stats.count_downloads(CountDownloadsQuery(download_id=product.id, use_cache=False)) == 2


def test_count_downloads_windowed_uses_success_events_only(db):
    for hours in (1, 20, 47):
        add_event(db, 42, NOW - timedelta(hours=hours))
    add_event(db, 42, NOW - timedelta(days=10))
    add_event(db, 42, NOW - timedelta(hours=5), status="denied")
    add_event(db, 7, NOW - timedelta(hours=5))

    stats = make_stats(db)
    assert stats.count_downloads(CountDownloadsQuery(days=5, download_id=42, use_cache=False)) == 3
    # all products in the window
    assert stats.count_downloads(CountDownloadsQuery(days=5, use_cache=False)) == 4


def test_count_downloads_windowed_matches_count_logs(db):
    for days_ago in (0, 1, 2, 6, 8, 30):
        add_event(db, 42, NOW - timedelta(days=days_ago))
    add_event(db, 42, NOW - timedelta(days=1), status="failed")

    stats = make_stats(db)
    for days in (1, 3, 7, 31):
        expected = stats.count_logs(download_id=42, start_date=NOW - timedelta(days=days), status="success")
        assert stats.count_downloads(CountDownloadsQuery(days=days, download_id=42, use_cache=False)) == expected


def test_count_logs_filters_are_optional_and_conjunctive(db):
    add_event(db, 1, NOW - timedelta(days=3))
    add_event(db, 1, NOW - timedelta(days=2), status="denied")
    add_event(db, 2, NOW - timedelta(days=1))
    add_event(db, 2, NOW)

    stats = make_stats(db)
    assert stats.count_logs() == 4
    assert stats.count_logs(download_id=1) == 2
    assert stats.count_logs(status="success") == 3
    assert stats.count_logs(download_id=1, status="success") == 1
    # both bounds are inclusive
    assert stats.count_logs(start_date=NOW - timedelta(days=2), end_date=NOW - timedelta(days=1)) == 2
    assert stats.count_logs(end_date=NOW - timedelta(days=3)) == 1
    assert stats.count_logs(download_id=3) == 0


def test_popular_windowed_orders_by_count_and_resolves_titles(db):
    a = add_product(db, "Alpha")
    b = add_product(db, "Beta")
    c = add_product(db, "Gamma", status=PRODUCT_DRAFT)
    for _ in range(3):
        add_event(db, b.id, NOW - timedelta(hours=1))
    for _ in range(2):
        add_event(db, c.id, NOW - timedelta(hours=2))
    add_event(db, a.id, NOW - timedelta(hours=3))
    # outside the window or not successful
    for _ in range(5):
        add_event(db, a.id, NOW - timedelta(days=9))
    add_event(db, a.id, NOW - timedelta(hours=1), status="denied")
    # product missing from the catalogue
    add_event(db, 999, NOW - timedelta(hours=1))

    stats = make_stats(db)
    result = stats.get_popular_downloads(PopularDownloadsQuery(days=7, limit=3, use_cache=False))

    assert [(r.download_id, r.title, r.downloads) for r in result] == [
        (b.id, "Beta", 3),
        (c.id, "Gamma", 2),
        (a.id, "Alpha", 1),
    ]

    ranked = stats.get_popular_downloads(PopularDownloadsQuery(days=7, limit=10, use_cache=False))
    assert len(ranked) == 4
    assert ranked[-1].download_id == 999 and ranked[-1].title == ""
    counts = [r.downloads for r in ranked]
    assert counts == sorted(counts, reverse=True)


def test_popular_all_time_casts_counters_and_skips_drafts(db):
    nine = add_product(db, "Nine", count=9)
    hundred = add_product(db, "Hundred", count=100)
    ten = add_product(db, "Ten", count=10)
    add_product(db, "Draft", count=5000, status=PRODUCT_DRAFT)
    add_product(db, "No counter")

    stats = make_stats(db)
    result = stats.get_popular_downloads(PopularDownloadsQuery(limit=5, use_cache=False))
    assert [(r.download_id, r.downloads) for r in result] == [(hundred.id, 100), (ten.id, 10), (nine.id, 9)]

    top = stats.get_popular_downloads(PopularDownloadsQuery(limit=2, use_cache=False))
    assert [r.title for r in top] == ["Hundred", "Ten"]


def test_popular_ties_break_on_product_id(db):
    first = add_product(db, "First", count=4)
    second = add_product(db, "Second", count=4)
    stats = make_stats(db)
    result = stats.get_popular_downloads(PopularDownloadsQuery(use_cache=False))
    assert [r.download_id for r in result] == [first.id, second.id]


def test_cached_count_is_served_until_opt_out(db):
    product = add_product(db, "Alpha", count=5)
    stats = make_stats(db)
    query = CountDownloadsQuery(download_id=product.id)

    assert stats.count_downloads(query) == 5

    meta = db.query(ProductMeta).filter(ProductMeta.product_id == product.id).one()
    meta.meta_value = "8"
    db.commit()

    # stale value stays until the entry expires
    assert stats.count_downloads(query) == 5
    # opting out recomputes and refreshes the cache
    assert stats.count_downloads(CountDownloadsQuery(download_id=product.id, use_cache=False)) == 8
    assert stats.count_downloads(query) == 8


def test_cached_popular_is_identical_and_expires_with_ttl(db):
    ticks = {"now": 0.0}
    cache = TTLCache(ttl_seconds=60, clock=lambda: ticks["now"])
    stats = make_stats(db, cache=cache)
    product = add_product(db, "Alpha")
    add_event(db, product.id, NOW - timedelta(hours=1))

    first = stats.get_popular_downloads(PopularDownloadsQuery(days=1))
    add_event(db, product.id, NOW - timedelta(minutes=5))
    second = stats.get_popular_downloads(PopularDownloadsQuery(days=1))
    assert first == second
    assert second[0].downloads == 1

    ticks["now"] = 61.0
    third = stats.get_popular_downloads(PopularDownloadsQuery(days=1))
    assert third[0].downloads == 2


def test_cache_keys_separate_query_shapes(db):
    add_product(db, "Alpha", count=5)
    add_event(db, 1, NOW - timedelta(hours=1))
    stats = make_stats(db)

    assert stats.count_downloads(CountDownloadsQuery(days=0)) == 5
    assert stats.count_downloads(CountDownloadsQuery(days=1)) == 1
    assert stats.count_downloads(CountDownloadsQuery(days=1, download_id=2)) == 0


def test_catalog_lookups(db):
    live = add_product(db, "Live", count=3)
    draft = add_product(db, "Draft", status=PRODUCT_DRAFT)
    catalog = ProductCatalog(db)

    assert catalog.get_title(live.id) == "Live"
    assert catalog.get_title(12345) == ""
    assert catalog.is_published(live.id) is True
    assert catalog.is_published(draft.id) is False
    assert catalog.is_published(12345) is False
    assert catalog.download_count(live.id) == 3
    assert catalog.download_count(draft.id) == 0


def test_cached_popular_list_cannot_be_altered_by_callers(db):
    alpha = add_product(db, "Alpha", count=7)
    beta = add_product(db, "Beta", count=3)
    stats = make_stats(db)

    first = stats.get_popular_downloads()
    first.clear()
    again = stats.get_popular_downloads()
    assert [(r.title, r.downloads) for r in again] == [("Alpha", 7), ("Beta", 3)]

    again.append(again[0])
    with pytest.raises(ValidationError):
        again[0].downloads = 999

    assert [(r.download_id, r.downloads) for r in stats.get_popular_downloads()] == [
        (alpha.id, 7),
        (beta.id, 3),
    ]
