"""Shared fixtures for the invoice tests."""

from datetime import date
from decimal import Decimal

import pytest

from billing import Invoice, LineItem, Party
from config import Config
from fonts import DEFAULT_METRICS, FontMetrics
from invoice_service import InvoiceService
from layout import LayoutEngine, PageGeometry
from models import Base, make_engine, make_session_factory
from money import Money


@pytest.fixture
def metrics() -> FontMetrics:
    return DEFAULT_METRICS


@pytest.fixture
def geometry() -> PageGeometry:
    return PageGeometry.letter()


@pytest.fixture
def engine(geometry: PageGeometry, metrics: FontMetrics) -> LayoutEngine:
    return LayoutEngine(geometry, metrics)


@pytest.fixture
def make_invoice():
    """Factory for billing invoices with sensible defaults."""

    def _make(items=(), **kwargs) -> Invoice:
        params = {
            "invoice_id": "ABC075",
            "customer": Party("Acme Pty Ltd", ("1 Main Street", "Phone: 555-0100")),
            "issue_date": date(2026, 10, 1),
            "due_date": date(2026, 10, 31),
        }
        params.update(kwargs)
        return Invoice(line_items=items, **params)

    return _make


@pytest.fixture
def item():
    """Factory for line items priced in USD."""

    def _item(description="Window cleaning", quantity="1", cents=1000, currency="USD") -> LineItem:
        return LineItem(description, Decimal(quantity), Money(cents, currency))

    return _item


@pytest.fixture
def test_config(tmp_path):
    """A Config subclass pointing the database and exports at tmp_path."""
    return type(
        "TestConfig",
        (Config,),
        {
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{(tmp_path / 'test.db').as_posix()}",
            "SQLALCHEMY_ECHO": False,
            "EXPORTS_DIR": (tmp_path / "exports").as_posix(),
            "INVOICE_SEQ_START": 75,
            "INVOICE_SEQ_WIDTH": 3,
            "DEFAULT_CURRENCY": "USD",
            "DEFAULT_TAX_RATE": "0",
            "PAYMENT_TERMS_DAYS": 30,
            "COMPANY_NAME": "Sparkle Cleaning",
            "COMPANY_ABN": "78734213681",
            "COMPANY_ADDRESS": "40 Wyndham Avenue",
            "COMPANY_PHONE": "0403-491446",
            "PAYMENT_INSTRUCTIONS": ("Pay by bank transfer.",),
            "PAGE_SIZE": "LETTER",
            "MAX_PAGES": 0,
            "LOG_LEVEL": "INFO",
        },
    )


@pytest.fixture
def service(test_config) -> InvoiceService:
    db = make_engine(test_config.SQLALCHEMY_DATABASE_URI)
    Base.metadata.create_all(db)
    return InvoiceService(make_session_factory(db), config=test_config)
