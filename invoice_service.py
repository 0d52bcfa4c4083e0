# invoice_service.py
"""
Customer and invoice operations over the SQLAlchemy store, and the glue that
turns a stored invoice into a billing.Invoice for layout and rendering.
"""
from __future__ import annotations

import contextlib
import logging
import os
import re
import textwrap
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

import billing
from billing import LineItem, Party
from config import Config
from errors import RecordConflict, RecordNotFound, RenderIOError
from fonts import DEFAULT_METRICS, FontMetrics
from layout import LayoutEngine, PageGeometry, format_date, format_decimal
from models import (
    Base,
    Customer,
    Invoice,
    InvoiceLine,
    make_engine,
    make_session_factory,
    next_invoice_number,
)
from money import Money, display_width
from pdf_service import DocumentRenderer, _safe_filename

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ("name", "address", "phone", "contact_person", "contact_phone", "email", "code")


def _normalize_code(code: str | None) -> str:
    value = (code or "").strip().upper()
    if not re.fullmatch(r"[A-Z]{2,3}", value):
        raise ValueError(f"Customer code must be 2-3 letters, got {code!r}")
    return value


def geometry_for(config) -> PageGeometry:
    if (getattr(config, "PAGE_SIZE", "") or "").upper() == "A4":
        return PageGeometry.a4()
    return PageGeometry.letter()


def customer_party(customer: Customer) -> Party:
    name_lines = [ln.strip() for ln in (customer.name or "").splitlines() if ln.strip()]
    lines = list(name_lines[1:])
    if customer.address:
        lines.append(customer.address)
    if customer.phone:
        lines.append(f"Phone: {customer.phone}")
    if customer.contact_person or customer.contact_phone:
        attn = f"Attn - {customer.contact_person}".rstrip()
        if customer.contact_phone:
            attn = f"{attn} ({customer.contact_phone})"
        lines.append(attn)
    if customer.email:
        lines.append(f"Email: {customer.email}")
    return Party(name_lines[0] if name_lines else "", tuple(lines))


def issuer_party(config) -> Party | None:
    name = (getattr(config, "COMPANY_NAME", "") or "").strip()
    if not name:
        return None
    lines = []
    if config.COMPANY_ABN:
        lines.append(f"A.B.N. {config.COMPANY_ABN}")
    if config.COMPANY_ADDRESS:
        lines.append(config.COMPANY_ADDRESS)
    if config.COMPANY_PHONE:
        lines.append(f"Ph: {config.COMPANY_PHONE}")
    return Party(name, tuple(lines))


def format_invoice_text(doc: billing.Invoice) -> str:
    """Plain-text view of an invoice; amounts are padded to a fixed width so columns line up."""
    w = display_width(doc.currency)
    out = []
    if doc.issuer is not None:
        out.append(doc.issuer.name)
        out.extend(doc.issuer.lines)
    out.append(f"Invoice # {doc.invoice_id}")
    out.append(f"Date: {format_date(doc.issue_date)}")
    out.append("")
    out.append("Bill To:")
    out.append(doc.customer.name)
    out.extend(doc.customer.lines)
    if doc.payment_terms:
        out.append(f"Payment Terms: {doc.payment_terms}")
    out.append(f"Due Date: {format_date(doc.due_date)}")
    out.append(f"Balance Due: {doc.amount_due().format()}")
    out.append("")

    out.append(f"{'#':>3}  {'Item':<30}  {'Qty':>8}  {'Rate':>{w}}  {'Amount':>{w}}")
    for idx, item in enumerate(doc.line_items, start=1):
        desc_lines = textwrap.wrap(item.description, 30) or [""]
        out.append(
            f"{idx:>3}  {desc_lines[0]:<30}  {format_decimal(item.quantity):>8}  "
            f"{item.unit_price.format(w)}  {item.line_total.format(w)}"
        )
        for extra in desc_lines[1:]:
            out.append(f"{'':>3}  {extra}")

    totals = doc.totals()
    label_w = 3 + 2 + 30 + 2 + 8 + 2 + w
    out.append("")
    out.append(f"{'Subtotal:':>{label_w}}  {totals.subtotal.format(w)}")
    out.append(f"{f'Tax ({format_decimal(doc.tax_rate)}%):':>{label_w}}  {totals.tax.format(w)}")
    out.append(f"{'Total:':>{label_w}}  {totals.grand_total.format(w)}")
    if doc.paid:
        out.append(f"{'PAID':>{label_w + 2 + w}}")

    if doc.notes.strip():
        out.append("")
        out.append("Notes:")
        out.append(doc.notes.strip())
    return "\n".join(out)


class InvoiceService:
    def __init__(
        self,
        session_factory,
        config=Config,
        geometry: PageGeometry | None = None,
        metrics: FontMetrics | None = None,
    ):
        self.SessionLocal = session_factory
        self.config = config
        self.geometry = geometry or geometry_for(config)
        self.metrics = metrics or DEFAULT_METRICS

    # -----------------------------
    # Lookups
    # -----------------------------
    def _customer(self, s, customer_id: int) -> Customer:
        customer = s.get(Customer, customer_id)
        if customer is None:
            raise RecordNotFound(f"Customer not found: id={customer_id}")
        return customer

    def _invoice(self, s, invoice_number: str) -> Invoice:
        inv = s.execute(
            select(Invoice)
            .options(selectinload(Invoice.lines), selectinload(Invoice.customer))
            .where(Invoice.invoice_number == invoice_number)
        ).scalar_one_or_none()
        if inv is None:
            raise RecordNotFound(f"Invoice not found: {invoice_number}")
        return inv

    def _ensure_unique(self, s, *, name: str | None = None, code: str | None = None, exclude_id: int | None = None):
        for column, value in ((Customer.name, name), (Customer.code, code)):
            if value is None:
                continue
            q = select(Customer.id).where(column == value)
            if exclude_id is not None:
                q = q.where(Customer.id != exclude_id)
            if s.execute(q).first() is not None:
                raise RecordConflict(f"A customer with {column.key} {value!r} already exists")

    # -----------------------------
    # Customers
    # -----------------------------
    def add_customer(
        self,
        name: str,
        code: str,
        address: str = "",
        phone: str = "",
        contact_person: str = "",
        contact_phone: str = "",
        email: str = "",
    ) -> Customer:
        name = (name or "").strip()
        if not name:
            raise ValueError("Customer name is required")
        code = _normalize_code(code)

        with self.SessionLocal() as s:
            self._ensure_unique(s, name=name, code=code)
            customer = Customer(
                name=name,
                code=code,
                address=(address or "").strip(),
                phone=(phone or "").strip(),
                contact_person=(contact_person or "").strip(),
                contact_phone=(contact_phone or "").strip(),
                email=(email or "").strip(),
            )
            s.add(customer)
            s.commit()
            logger.info("Added customer %s (%s)", customer.name, customer.code)
            return customer

    def edit_customer(self, customer_id: int, **changes) -> Customer:
        unknown = set(changes) - set(CUSTOMER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown customer field(s): {', '.join(sorted(unknown))}")

        with self.SessionLocal() as s:
            customer = self._customer(s, customer_id)

            if "name" in changes:
                name = (changes["name"] or "").strip()
                if not name:
                    raise ValueError("Customer name is required")
                self._ensure_unique(s, name=name, exclude_id=customer.id)
                customer.name = name
            if "code" in changes:
                code = _normalize_code(changes["code"])
                self._ensure_unique(s, code=code, exclude_id=customer.id)
                customer.code = code
            for field in ("address", "phone", "contact_person", "contact_phone", "email"):
                if field in changes:
                    setattr(customer, field, (changes[field] or "").strip())

            s.commit()
            logger.info("Updated customer %s (%s)", customer.name, customer.code)
            return customer

    def remove_customer(self, customer_id: int) -> None:
        with self.SessionLocal() as s:
            customer = self._customer(s, customer_id)
            count = s.execute(
                select(func.count(Invoice.id)).where(Invoice.customer_id == customer.id)
            ).scalar_one()
            if count:
                raise RecordConflict(f"Customer {customer.name!r} still has {count} invoice(s)")
            s.delete(customer)
            s.commit()
            logger.info("Removed customer %s (%s)", customer.name, customer.code)

    def get_customer(self, customer_id: int) -> Customer:
        with self.SessionLocal() as s:
            return self._customer(s, customer_id)

    def list_customers(self) -> list[Customer]:
        with self.SessionLocal() as s:
            return list(s.execute(select(Customer).order_by(Customer.name.asc())).scalars())

    # -----------------------------
    # Invoices
    # -----------------------------
    def create_invoice(
        self,
        customer_id: int,
        line_items: Iterable[LineItem],
        due_date: date | None = None,
        issue_date: date | None = None,
        tax_rate=None,
        currency: str | None = None,
        notes: str = "",
    ) -> Invoice:
        issue_date = issue_date or date.today()
        due_date = due_date or (issue_date + timedelta(days=self.config.PAYMENT_TERMS_DAYS))
        if due_date < issue_date:
            raise ValueError(f"Due date {due_date} is before issue date {issue_date}")
        currency = (currency or self.config.DEFAULT_CURRENCY).strip().upper()
        if tax_rate is None:
            tax_rate = self.config.DEFAULT_TAX_RATE

        with self.SessionLocal() as s:
            customer = self._customer(s, customer_id)

            # rejects bad items before a number is consumed
            draft = billing.Invoice(
                "draft",
                Party(customer.name),
                issue_date,
                due_date,
                currency=currency,
                tax_rate=tax_rate,
                line_items=line_items,
            )

            number = next_invoice_number(
                s,
                customer.code,
                start=self.config.INVOICE_SEQ_START,
                seq_width=self.config.INVOICE_SEQ_WIDTH,
            )
            inv = Invoice(
                invoice_number=number,
                customer=customer,
                issue_date=issue_date,
                due_date=due_date,
                currency=currency,
                tax_rate=draft.tax_rate,
                notes=(notes or "").strip(),
                paid=False,
            )
            inv.lines = _line_records(draft.line_items)
            s.add(inv)
            s.commit()
            logger.info("Created invoice %s for %s (%s)", number, customer.name, draft.grand_total())
            return inv

    def update_invoice(
        self,
        invoice_number: str,
        line_items: Iterable[LineItem] | None = None,
        due_date: date | None = None,
        tax_rate=None,
        notes: str | None = None,
    ) -> Invoice:
        with self.SessionLocal() as s:
            inv = self._invoice(s, invoice_number)
            current = self.build_document(inv)

            new_due = due_date or inv.due_date
            if new_due < inv.issue_date:
                raise ValueError(f"Due date {new_due} is before issue date {inv.issue_date}")

            draft = billing.Invoice(
                inv.invoice_number,
                current.customer,
                inv.issue_date,
                new_due,
                currency=inv.currency,
                tax_rate=inv.tax_rate if tax_rate is None else tax_rate,
                line_items=current.line_items if line_items is None else line_items,
            )

            inv.due_date = new_due
            inv.tax_rate = draft.tax_rate
            if notes is not None:
                inv.notes = notes.strip()
            if line_items is not None:
                inv.lines = _line_records(draft.line_items)
            _forget_pdf(inv)
            s.commit()
            logger.info("Updated invoice %s", inv.invoice_number)
            return inv

    def get_invoice(self, invoice_number: str) -> Invoice:
        with self.SessionLocal() as s:
            return self._invoice(s, invoice_number)

    def list_invoices(self, customer_id: int | None = None, unpaid_only: bool = False) -> list[Invoice]:
        with self.SessionLocal() as s:
            q = (
                select(Invoice)
                .options(selectinload(Invoice.lines), selectinload(Invoice.customer))
                .order_by(Invoice.created_at.asc(), Invoice.id.asc())
            )
            if customer_id is not None:
                q = q.where(Invoice.customer_id == customer_id)
            if unpaid_only:
                q = q.where(Invoice.paid.is_(False))
            return list(s.execute(q).scalars())

    def mark_paid(self, invoice_number: str) -> Invoice:
        with self.SessionLocal() as s:
            inv = self._invoice(s, invoice_number)
            inv.paid = True
            _forget_pdf(inv)
            s.commit()
            logger.info("Invoice %s marked as paid", invoice_number)
            return inv

    def delete_invoice(self, invoice_number: str, delete_pdf: bool = False) -> None:
        with self.SessionLocal() as s:
            inv = self._invoice(s, invoice_number)
            pdf_path = inv.pdf_path
            s.delete(inv)
            s.commit()

        if delete_pdf and pdf_path and os.path.exists(pdf_path):
            with contextlib.suppress(OSError):
                os.remove(pdf_path)
        logger.info("Deleted invoice %s", invoice_number)

    # -----------------------------
    # Documents
    # -----------------------------
    def build_document(self, inv: Invoice) -> billing.Invoice:
        notes = "\n".join(
            p for p in [inv.notes or "", *getattr(self.config, "PAYMENT_INSTRUCTIONS", ())] if p.strip()
        )
        days = self.config.PAYMENT_TERMS_DAYS
        return billing.Invoice(
            inv.invoice_number,
            customer_party(inv.customer),
            inv.issue_date,
            inv.due_date,
            currency=inv.currency,
            tax_rate=inv.tax_rate,
            line_items=[
                LineItem(ln.description, ln.quantity, Money(ln.unit_price_minor, inv.currency))
                for ln in inv.lines
            ],
            issuer=issuer_party(self.config),
            notes=notes,
            payment_terms=f"Net {days} Days" if days else "",
            paid=inv.paid,
        )

    def document(self, invoice_number: str) -> billing.Invoice:
        with self.SessionLocal() as s:
            return self.build_document(self._invoice(s, invoice_number))

    def view_invoice(self, invoice_number: str) -> str:
        return format_invoice_text(self.document(invoice_number))

    def render_invoice(self, invoice_number: str, destination: str | os.PathLike | None = None) -> str:
        """
        Lays out and renders one invoice to PDF.
        Saves to EXPORTS_DIR/<customer code>/ unless a destination is given and
        records invoice.pdf_path + invoice.pdf_generated_at.

        Returns: absolute pdf path on disk.
        """
        with self.SessionLocal() as s:
            inv = self._invoice(s, invoice_number)
            doc = self.build_document(inv)

            engine = LayoutEngine(self.geometry, self.metrics, max_pages=self.config.MAX_PAGES or None)
            instructions = engine.layout(doc)

            if destination is None:
                out_dir = os.path.join(self.config.EXPORTS_DIR, inv.customer.code)
                try:
                    os.makedirs(out_dir, exist_ok=True)
                except OSError as e:
                    raise RenderIOError(out_dir, e) from e
                destination = os.path.join(out_dir, _safe_filename(f"invoice_{inv.invoice_number}") + ".pdf")

            DocumentRenderer(self.geometry, self.metrics).write(
                instructions, destination, title=f"Invoice #{inv.invoice_number}"
            )

            inv.pdf_path = os.path.abspath(os.fspath(destination))
            inv.pdf_generated_at = datetime.utcnow()
            s.commit()
            logger.info("Rendered invoice %s -> %s", inv.invoice_number, inv.pdf_path)
            return inv.pdf_path


def _forget_pdf(inv: Invoice) -> None:
    # the stored PDF no longer matches the invoice; the next render replaces it
    inv.pdf_path = None
    inv.pdf_generated_at = None


def _line_records(items: Iterable[LineItem]) -> list[InvoiceLine]:
    return [
        InvoiceLine(
            position=i,
            description=item.description,
            quantity=item.quantity,
            unit_price_minor=item.unit_price.amount,
        )
        for i, item in enumerate(items)
    ]


def ensure_dirs(config) -> None:
    uri = config.SQLALCHEMY_DATABASE_URI
    if uri.startswith("sqlite:///"):
        Path(uri[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    Path(config.EXPORTS_DIR).mkdir(parents=True, exist_ok=True)


def build_service(config=Config) -> InvoiceService:
    """Create tables if needed and return a service bound to config's database."""
    ensure_dirs(config)
    engine = make_engine(config.SQLALCHEMY_DATABASE_URI, echo=config.SQLALCHEMY_ECHO)
    Base.metadata.create_all(engine)
    return InvoiceService(make_session_factory(engine), config=config)
