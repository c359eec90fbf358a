# tests/conftest.py
from __future__ import annotations

import itertools
from datetime import date

import pytest

from coldstore.core.config import Settings
from coldstore.db.base import Base
from coldstore.db import models  # noqa: F401
from coldstore.db.session import create_db_engine, make_session_factory
from coldstore.services.catalog.service import create_product
from coldstore.services.stock.service import create_batch
from coldstore.services.storage.service import create_storage_location

_seq = itertools.count(1)


# ==========================
# database per test: a temp sqlite file through the production engine factory
# ==========================
@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'coldstore.db'}",
        dispatcher_enabled=False,
        lock_timeout_ms=10000,
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


# ==========================
# factories
# ==========================
@pytest.fixture
def make_product(db):
    def _make(name: str | None = None, category: str = "Ambient", **kw):
        return create_product(db, name=name or f"Product {next(_seq)}", category=category, **kw)

    return _make


@pytest.fixture
def make_location(db):
    def _make(location_type: str = "Ambient", capacity: int = 100, *, zone: str = "A", rack: str = "R1",
              slot: str | None = None, min_temp=None, max_temp=None, **kw):
        if location_type == "Cold Storage":
            min_temp = 2.0 if min_temp is None else min_temp
            max_temp = 8.0 if max_temp is None else max_temp
        return create_storage_location(
            db,
            zone=zone,
            rack=rack,
            slot=slot or f"S{next(_seq)}",
            location_type=location_type,
            capacity=capacity,
            min_temp=min_temp,
            max_temp=max_temp,
            **kw,
        )

    return _make


@pytest.fixture
def receive(db, settings):
    """Intake a batch and return it."""

    def _receive(product, quantity: int, expiry: date, batch_number: str | None = None, **kw):
        res = create_batch(
            db,
            product_id=product.id,
            batch_number=batch_number or f"B-{next(_seq):04d}",
            expiry_date=expiry,
            quantity=quantity,
            settings=settings,
            **kw,
        )
        return res.batch

    return _receive
