from datetime import datetime

import pytest

from download_stats.db.session import Base, engine, SessionLocal
from download_stats.models.event import DownloadEvent, DownloadStatus
from download_stats.models.product import Product, ProductMeta, DOWNLOAD_COUNT_META_KEY
from download_stats.services.catalog import ProductCatalog
from download_stats.services.recorder import pack_ip, unpack_ip, increment_download_count, record_download


NOW = datetime(2026, 3, 15, 12, 0, 0, 123456)


@pytest.fixture(autouse=True)
def _reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def test_pack_ip_handles_v4_v6_and_garbage():
    assert pack_ip("192.168.1.10") == bytes([192, 168, 1, 10])
    assert len(pack_ip("2001:db8::1")) == 16
    assert pack_ip("not-an-ip") == b""
    assert pack_ip(None) == b""
    assert unpack_ip(pack_ip("2001:db8::1")) == "2001:db8::1"
    assert unpack_ip(b"") is None


def test_success_appends_event_and_increments_counter():
    db = SessionLocal()
    try:
        product = Product(title="Alpha")
        product.meta.append(ProductMeta(meta_key=DOWNLOAD_COUNT_META_KEY, meta_value="4"))
        db.add(product)
        db.commit()

        evt = record_download(db, product.id, user_id=7, user_ip="10.0.0.1", user_agent="curl/8.0", now=NOW)

        assert evt.id is not None
        assert evt.status == "success"
        assert evt.date == NOW.replace(microsecond=0)
        assert evt.user_id == 7
        assert unpack_ip(evt.user_ip) == "10.0.0.1"
        assert ProductCatalog(db).download_count(product.id) == 5
    finally:
        db.close()


def test_first_success_creates_counter():
    db = SessionLocal()
    try:
        product = Product(title="Fresh")
        db.add(product)
        db.commit()

        record_download(db, product.id, now=NOW)
        record_download(db, product.id, now=NOW)
        assert ProductCatalog(db).download_count(product.id) == 2
        assert db.query(ProductMeta).filter(ProductMeta.product_id == product.id).count() == 1
    finally:
        db.close()


def test_denied_attempt_is_logged_without_counting():
    db = SessionLocal()
    try:
        product = Product(title="Locked")
        db.add(product)
        db.commit()

        evt = record_download(db, product.id, status=DownloadStatus.denied, now=NOW)
        assert evt.status == "denied"
        assert evt.user_id == 0
        assert ProductCatalog(db).download_count(product.id) == 0
        assert db.query(DownloadEvent).count() == 1
    finally:
        db.close()


def test_user_agent_is_truncated_and_unknown_status_rejected():
    db = SessionLocal()
    try:
        evt = record_download(db, 1, user_agent="x" * 400, now=NOW)
        assert len(evt.user_agent) == 255
        with pytest.raises(ValueError):
            record_download(db, 1, status="bogus", now=NOW)
    finally:
        db.close()


def test_repeated_first_increments_share_one_counter_row():
    db = SessionLocal()
    try:
        product = Product(title="Fresh")
        db.add(product)
        db.commit()

        # two increments before either is committed must not collide on the counter key
        increment_download_count(db, product.id)
        increment_download_count(db, product.id)
        db.commit()

        rows = db.query(ProductMeta).filter(ProductMeta.product_id == product.id).all()
        assert [(m.meta_key, m.meta_value) for m in rows] == [(DOWNLOAD_COUNT_META_KEY, "2")]
        assert ProductCatalog(db).download_count(product.id) == 2
    finally:
        db.close()
