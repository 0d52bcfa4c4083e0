"""Tests for customer and invoice operations against a temporary SQLite database."""

import os
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import delete

from billing import LineItem
from errors import AmountOutOfRange, InvalidLineItem, RecordConflict, RecordNotFound
from invoice_service import customer_party, format_invoice_text
from models import Customer, InvoiceSequence, next_invoice_number
from money import Money


def _items(*rows, currency="USD"):
    return [LineItem(desc, qty, Money.parse(price, currency)) for desc, qty, price in rows]


@pytest.fixture
def customer(service):
    return service.add_customer(
        name="Acme Pty Ltd",
        code="abc",
        address="1 Main Street",
        phone="555-0100",
        contact_person="Jo",
        contact_phone="555-0199",
        email="accounts@acme.test",
    )


def _create(service, customer, *rows, **kwargs):
    rows = rows or (("Window cleaning", "2", "150.00"),)
    kwargs.setdefault("issue_date", date(2026, 10, 1))
    return service.create_invoice(customer.id, _items(*rows), **kwargs)


# -----------------------------
# Customers
# -----------------------------
def test_add_customer_normalizes_code(customer) -> None:
    assert customer.id is not None
    assert customer.code == "ABC"


@pytest.mark.parametrize("code", ["A", "ABCD", "A1", ""])
def test_add_customer_rejects_bad_codes(service, code) -> None:
    with pytest.raises(ValueError):
        service.add_customer(name="Bad Code Co", code=code)


def test_duplicate_name_or_code_conflicts(service, customer) -> None:
    with pytest.raises(RecordConflict):
        service.add_customer(name="Acme Pty Ltd", code="XYZ")
    with pytest.raises(RecordConflict):
        service.add_customer(name="Other Co", code="ABC")


def test_edit_customer(service, customer) -> None:
    updated = service.edit_customer(customer.id, phone="555-0111", email="")
    assert updated.phone == "555-0111"
    assert updated.email == ""
    assert updated.name == "Acme Pty Ltd"

    with pytest.raises(ValueError):
        service.edit_customer(customer.id, colour="blue")


def test_new_code_starts_its_own_sequence(service, customer) -> None:
    assert _create(service, customer).invoice_number == "ABC075"
    service.edit_customer(customer.id, code="ACM")
    assert _create(service, customer).invoice_number == "ACM075"


def test_freed_code_never_reissues_a_number(service, customer) -> None:
    _create(service, customer)
    service.edit_customer(customer.id, code="XYZ")
    newcomer = service.add_customer(name="Beta Cafe", code="ABC")

    assert _create(service, newcomer).invoice_number == "ABC076"
    assert _create(service, customer).invoice_number == "XYZ075"


def test_numbering_skips_numbers_already_in_use(service, customer) -> None:
    _create(service, customer)
    _create(service, customer)
    with service.SessionLocal() as s:
        # sequence row lost, invoices ABC075 and ABC076 still stored
        s.execute(delete(InvoiceSequence))
        s.commit()
        assert next_invoice_number(s, "ABC") == "ABC077"


def test_removing_a_customer_keeps_its_numbers_retired(service, customer) -> None:
    inv = _create(service, customer)
    service.delete_invoice(inv.invoice_number)
    service.remove_customer(customer.id)
    again = service.add_customer(name="Acme Again", code="ABC")
    assert _create(service, again).invoice_number == "ABC076"


def test_list_and_get_customers(service, customer) -> None:
    other = service.add_customer(name="Beta Cafe", code="BC")
    assert [c.name for c in service.list_customers()] == ["Acme Pty Ltd", "Beta Cafe"]
    assert service.get_customer(other.id).code == "BC"
    with pytest.raises(RecordNotFound):
        service.get_customer(9999)


def test_remove_customer(service, customer) -> None:
    service.remove_customer(customer.id)
    assert service.list_customers() == []
    with pytest.raises(RecordNotFound):
        service.remove_customer(customer.id)


def test_remove_customer_with_invoices_conflicts(service, customer) -> None:
    _create(service, customer)
    with pytest.raises(RecordConflict):
        service.remove_customer(customer.id)


def test_customer_party_lines() -> None:
    c = Customer(
        name="Acme Pty Ltd\nAccounts Dept",
        code="ABC",
        address="1 Main Street",
        phone="555-0100",
        contact_person="Jo",
        contact_phone="555-0199",
        email="a@acme.test",
    )
    party = customer_party(c)
    assert party.name == "Acme Pty Ltd"
    assert party.lines == (
        "Accounts Dept",
        "1 Main Street",
        "Phone: 555-0100",
        "Attn - Jo (555-0199)",
        "Email: a@acme.test",
    )


# -----------------------------
# Invoices
# -----------------------------
def test_invoice_numbers_start_at_75_per_customer(service, customer) -> None:
    other = service.add_customer(name="Beta Cafe", code="BC")
    assert _create(service, customer).invoice_number == "ABC075"
    assert _create(service, customer).invoice_number == "ABC076"
    assert _create(service, other).invoice_number == "BC075"


def test_create_invoice_defaults(service, customer) -> None:
    inv = _create(service, customer)
    assert inv.due_date == date(2026, 10, 31)
    assert inv.currency == "USD"
    assert inv.paid is False
    assert [(ln.description, ln.quantity, ln.unit_price_minor) for ln in inv.lines] == [
        ("Window cleaning", Decimal("2.00"), 15000)
    ]


def test_create_invoice_rejects_due_before_issue(service, customer) -> None:
    with pytest.raises(ValueError):
        _create(service, customer, due_date=date(2026, 9, 1))


def test_create_invoice_with_mismatched_currency_consumes_no_number(service, customer) -> None:
    with pytest.raises(InvalidLineItem):
        service.create_invoice(customer.id, _items(("Oops", "1", "10"), currency="AUD"), currency="USD")
    assert _create(service, customer).invoice_number == "ABC075"


def test_create_invoice_for_unknown_customer(service) -> None:
    with pytest.raises(RecordNotFound):
        service.create_invoice(42, [])


def test_update_invoice(service, customer) -> None:
    inv = _create(service, customer)
    updated = service.update_invoice(
        inv.invoice_number,
        line_items=_items(("Gutter clean", "1", "80.00"), ("Windows", "3", "25.50")),
        tax_rate="10",
        notes="Side gate code 1234",
    )
    assert [ln.description for ln in updated.lines] == ["Gutter clean", "Windows"]
    doc = service.document(inv.invoice_number)
    assert doc.subtotal() == Money(15650, "USD")
    assert doc.tax_amount() == Money(1565, "USD")
    assert doc.notes.startswith("Side gate code 1234")


def test_update_keeps_items_when_not_given(service, customer) -> None:
    inv = _create(service, customer)
    service.update_invoice(inv.invoice_number, due_date=date(2026, 12, 1))
    again = service.get_invoice(inv.invoice_number)
    assert again.due_date == date(2026, 12, 1)
    assert len(again.lines) == 1


def test_list_invoices_filters(service, customer) -> None:
    other = service.add_customer(name="Beta Cafe", code="BC")
    first = _create(service, customer)
    _create(service, other)
    service.mark_paid(first.invoice_number)

    assert [i.invoice_number for i in service.list_invoices()] == ["ABC075", "BC075"]
    assert [i.invoice_number for i in service.list_invoices(customer_id=customer.id)] == ["ABC075"]
    assert [i.invoice_number for i in service.list_invoices(unpaid_only=True)] == ["BC075"]


def test_mark_paid_zeroes_balance(service, customer) -> None:
    inv = _create(service, customer)
    service.mark_paid(inv.invoice_number)
    doc = service.document(inv.invoice_number)
    assert doc.paid
    assert doc.amount_due().is_zero()
    assert doc.grand_total() == Money(30000, "USD")


def test_delete_invoice(service, customer) -> None:
    inv = _create(service, customer)
    path = service.render_invoice(inv.invoice_number)
    service.delete_invoice(inv.invoice_number, delete_pdf=True)
    assert not os.path.exists(path)
    with pytest.raises(RecordNotFound):
        service.get_invoice(inv.invoice_number)


def test_document_carries_issuer_and_payment_instructions(service, customer) -> None:
    doc = service.document(_create(service, customer, notes="Thanks!").invoice_number)
    assert doc.issuer.name == "Sparkle Cleaning"
    assert doc.issuer.lines == ("A.B.N. 78734213681", "40 Wyndham Avenue", "Ph: 0403-491446")
    assert doc.notes == "Thanks!\nPay by bank transfer."
    assert doc.payment_terms == "Net 30 Days"


def test_view_invoice_aligns_amounts(service, customer) -> None:
    inv = _create(service, customer, ("Window cleaning", "2", "150.00"), ("Gutters", "1", "5"))
    text = service.view_invoice(inv.invoice_number)
    assert "Invoice # ABC075" in text
    assert "Balance Due: $305.00" in text

    amount_lines = [ln for ln in text.splitlines() if "$" in ln and not ln.startswith("Balance")]
    assert len(amount_lines) == 5
    ends = {len(ln) for ln in amount_lines}
    assert len(ends) == 1


def test_format_invoice_text_marks_paid(service, customer) -> None:
    inv = _create(service, customer)
    service.mark_paid(inv.invoice_number)
    text = format_invoice_text(service.document(inv.invoice_number))
    assert "PAID" in [ln.strip() for ln in text.splitlines()]


def test_render_invoice_to_exports_dir(service, customer, test_config) -> None:
    inv = _create(service, customer)
    path = service.render_invoice(inv.invoice_number)

    assert path == os.path.abspath(os.path.join(test_config.EXPORTS_DIR, "ABC", "invoice_ABC075.pdf"))
    with open(path, "rb") as fh:
        assert fh.read(4) == b"%PDF"
    stored = service.get_invoice(inv.invoice_number)
    assert stored.pdf_path == path
    assert stored.pdf_generated_at is not None


def test_render_invoice_to_explicit_destination(service, customer, tmp_path) -> None:
    inv = _create(service, customer)
    out = tmp_path / "custom.pdf"
    assert service.render_invoice(inv.invoice_number, destination=out) == str(out)
    assert out.exists()


def test_render_unknown_invoice(service) -> None:
    with pytest.raises(RecordNotFound):
        service.render_invoice("ZZZ001")


def test_total_beyond_display_limit_is_rejected_before_numbering(service, customer) -> None:
    with pytest.raises(AmountOutOfRange):
        _create(service, customer, ("Big", "1", "9,999,999,999.99"), ("Bigger", "1", "9,999,999,999.99"))
    assert service.list_invoices() == []
    assert _create(service, customer).invoice_number == "ABC075"


def test_tax_pushing_total_past_display_limit_is_rejected(service, customer) -> None:
    with pytest.raises(AmountOutOfRange):
        _create(service, customer, ("Big", "1", "9,999,999,999.99"), tax_rate="10")


def test_update_beyond_display_limit_leaves_invoice_unchanged(service, customer) -> None:
    inv = _create(service, customer)
    with pytest.raises(AmountOutOfRange):
        service.update_invoice(inv.invoice_number, tax_rate="10", line_items=_items(("Big", "1", "9,999,999,999.99")))
    assert service.document(inv.invoice_number).grand_total() == Money(30000, "USD")


def test_update_forgets_the_stale_pdf(service, customer) -> None:
    inv = _create(service, customer)
    service.render_invoice(inv.invoice_number)

    service.update_invoice(inv.invoice_number, line_items=_items(("Gutters", "1", "80")))
    stored = service.get_invoice(inv.invoice_number)
    assert stored.pdf_path is None
    assert stored.pdf_generated_at is None


def test_mark_paid_forgets_the_stale_pdf(service, customer) -> None:
    inv = _create(service, customer)
    service.render_invoice(inv.invoice_number)
    service.mark_paid(inv.invoice_number)
    assert service.get_invoice(inv.invoice_number).pdf_path is None
