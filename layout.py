# layout.py
"""
Invoice layout engine.

Turns a billing.Invoice into an ordered list of DrawInstruction records, one
per positioned text run. Pagination and alignment are decided here and only
here; the PDF renderer draws what it is given.

Vertical positions are expressed in whole rows counted from the top margin,
so every page is a grid of ``PageGeometry.rows_per_page`` rows. Right-aligned
text is placed at ``column.text_right - measured_width`` using the shared
FontMetrics, which is what keeps amounts of different lengths flush.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from reportlab.lib.pagesizes import A4, LETTER
from reportlab.lib.units import inch, mm

from billing import Invoice, LineItem
from errors import InvalidGeometry, LayoutError, PageLimitExceeded
from fonts import DEFAULT_METRICS, FontMetrics

logger = logging.getLogger(__name__)

LEFT = "left"
RIGHT = "right"

COLUMN_NAMES = ("description", "quantity", "unit_price", "line_total")

HEADER_GAP_ROWS = 1
CONTINUATION_ROWS = 2  # "(cont.)" caption + blank row
TOTALS_ROWS = 3
DATE_FORMAT = "%b %d, %Y"

_EPS = 1e-6


# -----------------------------
# Geometry
# -----------------------------
@dataclass(frozen=True)
class Column:
    name: str
    label: str
    left: float
    right: float
    align: str = LEFT
    padding: float = 6.0

    @property
    def text_left(self) -> float:
        return self.left + self.padding

    @property
    def text_right(self) -> float:
        return self.right - self.padding

    @property
    def inner_width(self) -> float:
        return self.text_right - self.text_left


@dataclass(frozen=True)
class PageGeometry:
    page_width: float
    page_height: float
    margin_left: float
    margin_right: float
    margin_top: float
    margin_bottom: float
    columns: tuple[Column, ...]
    row_height: float = 16.0
    baseline_offset: float = 4.5

    def __post_init__(self):
        object.__setattr__(self, "columns", tuple(self.columns))

        if self.page_width <= 0 or self.page_height <= 0:
            raise InvalidGeometry("Page width and height must be positive")
        if min(self.margin_left, self.margin_right, self.margin_top, self.margin_bottom) < 0:
            raise InvalidGeometry("Margins must not be negative")
        if self.row_height <= 0:
            raise InvalidGeometry("Row height must be positive")
        if not (0 <= self.baseline_offset < self.row_height):
            raise InvalidGeometry("Baseline offset must lie within the row")

        names = tuple(c.name for c in self.columns)
        if names != COLUMN_NAMES:
            raise InvalidGeometry(f"Columns must be {COLUMN_NAMES}, got {names}")

        prev_right = self.margin_left
        for col in self.columns:
            if col.align not in (LEFT, RIGHT):
                raise InvalidGeometry(f"Column {col.name!r} has unknown alignment {col.align!r}")
            if col.left < prev_right - _EPS:
                raise InvalidGeometry(f"Column {col.name!r} overlaps its neighbour or the left margin")
            if col.inner_width <= 0:
                raise InvalidGeometry(f"Column {col.name!r} has no room for text")
            prev_right = col.right
        if prev_right > self.content_right + _EPS:
            raise InvalidGeometry("Last column extends past the right margin")

        minimum = CONTINUATION_ROWS + TOTALS_ROWS
        if self.rows_per_page < minimum:
            raise InvalidGeometry(f"Page holds {self.rows_per_page} rows; at least {minimum} are needed")

    @classmethod
    def from_page_size(
        cls,
        pagesize,
        *,
        margin_x: float = 0.65 * inch,
        margin_y: float = 0.75 * inch,
        quantity_width: float = 60,
        unit_price_width: float = 115,
        line_total_width: float = 140,
        row_height: float = 16.0,
        baseline_offset: float = 4.5,
    ) -> "PageGeometry":
        page_w, page_h = pagesize
        right = page_w - margin_x
        total_left = right - line_total_width
        price_left = total_left - unit_price_width
        qty_left = price_left - quantity_width
        columns = (
            Column("description", "Description", margin_x, qty_left),
            Column("quantity", "Qty", qty_left, price_left, RIGHT),
            Column("unit_price", "Rate", price_left, total_left, RIGHT),
            Column("line_total", "Amount", total_left, right, RIGHT),
        )
        return cls(
            page_width=page_w,
            page_height=page_h,
            margin_left=margin_x,
            margin_right=margin_x,
            margin_top=margin_y,
            margin_bottom=margin_y,
            columns=columns,
            row_height=row_height,
            baseline_offset=baseline_offset,
        )

    @classmethod
    def letter(cls) -> "PageGeometry":
        return cls.from_page_size(LETTER)

    @classmethod
    def a4(cls) -> "PageGeometry":
        return cls.from_page_size(A4, margin_x=15 * mm, margin_y=20 * mm)

    @property
    def content_left(self) -> float:
        return self.margin_left

    @property
    def content_right(self) -> float:
        return self.page_width - self.margin_right

    @property
    def content_top(self) -> float:
        return self.page_height - self.margin_top

    @property
    def content_width(self) -> float:
        return self.content_right - self.content_left

    @property
    def rows_per_page(self) -> int:
        return math.floor((self.content_top - self.margin_bottom) / self.row_height + _EPS)

    def column(self, name: str) -> Column:
        for col in self.columns:
            if col.name == name:
                return col
        raise KeyError(name)

    def baseline(self, row: int) -> float:
        return self.content_top - (row + 1) * self.row_height + self.baseline_offset


@dataclass(frozen=True)
class DrawInstruction:
    page: int
    x: float
    y: float
    align: str
    text: str
    style: str
    font_size: float
    kind: str = "text"


# -----------------------------
# Text helpers
# -----------------------------
def _fit_prefix(token: str, max_width: float, metrics: FontMetrics, style: str) -> int:
    """Length of the longest prefix of token no wider than max_width (at least 1)."""
    lo, hi = 1, len(token)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if metrics.width(token[:mid], style) <= max_width:
            lo = mid
        else:
            hi = mid - 1
    return lo


def _pieces(word: str, max_width: float, metrics: FontMetrics, style: str):
    # hard-split only words that cannot fit on a line of their own
    while len(word) > 1 and metrics.width(word, style) > max_width:
        n = _fit_prefix(word, max_width, metrics, style)
        yield word[:n]
        word = word[n:]
    yield word


def wrap_text(text, max_width: float, metrics: FontMetrics, style: str = "body") -> list[str]:
    """Greedy wrap on measured widths; an empty text still yields one (empty) line."""
    lines: list[str] = []
    for word in str(text or "").split():
        for piece in _pieces(word, max_width, metrics, style):
            if lines and metrics.width(f"{lines[-1]} {piece}", style) <= max_width:
                lines[-1] = f"{lines[-1]} {piece}"
            else:
                lines.append(piece)
    return lines or [""]


def format_decimal(value: Decimal) -> str:
    """2.50 -> "2.5", 3.00 -> "3"."""
    return f"{value.normalize():f}"


def format_date(value: date | None, fmt: str = DATE_FORMAT) -> str:
    return value.strftime(fmt) if value else ""


# -----------------------------
# Engine
# -----------------------------
class LayoutEngine:
    def __init__(
        self,
        geometry: PageGeometry | None = None,
        metrics: FontMetrics | None = None,
        max_pages: int | None = None,
        date_format: str = DATE_FORMAT,
    ):
        if max_pages is not None and max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        self.geometry = geometry or PageGeometry.letter()
        self.metrics = metrics or DEFAULT_METRICS
        self.max_pages = max_pages
        self.date_format = date_format

    def header_lines(self, invoice: Invoice):
        """Left (issuer, bill-to) and right (invoice facts) header lines as (text, style) pairs."""
        g = self.geometry
        wrap_w = g.content_width / 2 - 12

        def wrapped(text, style):
            return [(ln, style) for ln in wrap_text(text, wrap_w, self.metrics, style)]

        left = []
        if invoice.issuer is not None and invoice.issuer.name:
            left.extend(wrapped(invoice.issuer.name, "body_bold"))
            for ln in invoice.issuer.lines:
                left.extend(wrapped(ln, "body"))
            left.append(("", "body"))
        left.append(("Bill To:", "body_bold"))
        left.extend(wrapped(invoice.customer.name, "body_bold"))
        for ln in invoice.customer.lines:
            left.extend(wrapped(ln, "body"))

        right = [
            ("INVOICE", "title"),
            (f"Invoice #: {invoice.invoice_id}", "body"),
            (f"Date: {format_date(invoice.issue_date, self.date_format)}", "body"),
            (f"Due Date: {format_date(invoice.due_date, self.date_format)}", "body"),
        ]
        if invoice.payment_terms:
            right.append((f"Payment Terms: {invoice.payment_terms}", "body"))
        right.append((f"Balance Due: {invoice.amount_due().format()}", "body_bold"))
        if invoice.paid:
            right.append(("PAID", "body_bold"))
        return left, right

    def header_rows(self, invoice: Invoice) -> int:
        left, right = self.header_lines(invoice)
        return max(len(left), len(right)) + HEADER_GAP_ROWS

    def item_capacity(self, invoice: Invoice) -> tuple[int, int]:
        """Item rows available on the first page and on each continuation page."""
        rows = self.geometry.rows_per_page
        return rows - self.header_rows(invoice) - 1, rows - CONTINUATION_ROWS - 1

    def layout(self, invoice: Invoice) -> list[DrawInstruction]:
        invoice.validate()
        out = _InvoiceLayout(self, invoice).run()
        logger.debug(
            "Laid out invoice %s: %d page(s), %d instruction(s)",
            invoice.invoice_id,
            (out[-1].page + 1) if out else 0,
            len(out),
        )
        return out


class _InvoiceLayout:
    """Cursor state for a single layout call."""

    def __init__(self, engine: LayoutEngine, invoice: Invoice):
        self.engine = engine
        self.invoice = invoice
        self.g = engine.geometry
        self.m = engine.metrics
        self.out: list[DrawInstruction] = []
        self.page = 0
        self.row = 0

    def rows_left(self) -> int:
        return self.g.rows_per_page - self.row

    def text(self, text: str, x: float, style: str, kind: str, align: str = LEFT) -> None:
        if text == "":
            return
        self.out.append(
            DrawInstruction(
                page=self.page,
                x=x,
                y=self.g.baseline(self.row),
                align=align,
                text=text,
                style=style,
                font_size=self.m.size(style),
                kind=kind,
            )
        )

    def right_text(self, text: str, right_edge: float, style: str, kind: str, min_left: float | None = None) -> None:
        x = right_edge - self.m.width(text, style)
        if min_left is not None and x < min_left - _EPS:
            raise LayoutError(f"{text!r} does not fit in the space reserved for {kind}")
        self.text(text, x, style, kind, align=RIGHT)

    def new_page(self) -> None:
        max_pages = self.engine.max_pages
        if max_pages is not None and self.page + 1 >= max_pages:
            raise PageLimitExceeded(max_pages)
        self.page += 1
        self.row = 0
        self.text(f"Invoice #{self.invoice.invoice_id} (cont.)", self.g.content_left, "body_bold", "caption")
        self.row = CONTINUATION_ROWS

    def run(self) -> list[DrawInstruction]:
        self.header()
        self.column_header()
        for index, item in enumerate(self.invoice.line_items):
            self.line_item(index, item)
        self.totals()
        self.notes()
        self.footers()
        self.out.sort(key=lambda d: d.page)
        return self.out

    # -----------------------------
    # Blocks
    # -----------------------------
    def header(self) -> None:
        left, right = self.engine.header_lines(self.invoice)
        middle = self.g.content_left + self.g.content_width / 2

        for i, (text, style) in enumerate(left):
            self.row = i
            self.text(text, self.g.content_left, style, "header")
        for i, (text, style) in enumerate(right):
            self.row = i
            self.right_text(text, self.g.content_right, style, "header", min_left=middle)

        self.row = max(len(left), len(right)) + HEADER_GAP_ROWS
        if self.rows_left() < 2:
            raise LayoutError(f"Header of invoice {self.invoice.invoice_id} leaves no room for line items")

    def column_header(self) -> None:
        for col in self.g.columns:
            if col.align == RIGHT:
                self.right_text(col.label, col.text_right, "column_header", "column_header", min_left=col.text_left)
            else:
                self.text(col.label, col.text_left, "column_header", "column_header")
        self.row += 1

    def cell(self, name: str, text: str, style: str = "body") -> None:
        col = self.g.column(name)
        self.right_text(text, col.text_right, style, name, min_left=col.text_left)

    def line_item(self, index: int, item: LineItem) -> None:
        desc = self.g.column("description")
        lines = wrap_text(item.description, desc.inner_width, self.m, "body")
        need = len(lines)

        capacity = self.g.rows_per_page - CONTINUATION_ROWS - 1
        if need > capacity:
            raise LayoutError(f"Line item {index + 1} needs {need} rows but a page holds {capacity}")
        if need > self.rows_left():
            self.new_page()
            self.column_header()

        first_row = self.row
        for i, line in enumerate(lines):
            self.row = first_row + i
            self.text(line, desc.text_left, "body", "description")

        self.row = first_row
        self.cell("quantity", format_decimal(item.quantity))
        self.cell("unit_price", item.unit_price.format())
        self.cell("line_total", item.line_total.format())
        self.row = first_row + need

    def totals(self) -> None:
        if self.rows_left() < TOTALS_ROWS:
            self.new_page()

        totals = self.invoice.totals()
        label_col = self.g.column("unit_price")
        label_min = self.g.column("quantity").text_left
        value_col = self.g.column("line_total")

        rows = (
            ("Subtotal:", totals.subtotal, "body_bold", "body", "subtotal"),
            (f"Tax ({format_decimal(self.invoice.tax_rate)}%):", totals.tax, "body_bold", "body", "tax"),
            ("Total:", totals.grand_total, "grand_total", "grand_total", "grand_total"),
        )
        for label, amount, label_style, value_style, kind in rows:
            self.right_text(label, label_col.text_right, label_style, f"{kind}_label", min_left=label_min)
            self.right_text(amount.format(), value_col.text_right, value_style, kind, min_left=value_col.text_left)
            self.row += 1

    def notes(self) -> None:
        raw = (self.invoice.notes or "").strip()
        if not raw:
            return

        lines = [("Notes:", "body_bold")]
        for paragraph in raw.splitlines():
            for ln in wrap_text(paragraph, self.g.content_width, self.m, "body"):
                lines.append((ln, "body"))

        if self.rows_left() > 0:
            self.row += 1
        # keep the label with its first line
        if self.rows_left() < 2:
            self.new_page()

        for text, style in lines:
            if self.rows_left() < 1:
                self.new_page()
            self.text(text, self.g.content_left, style, "notes")
            self.row += 1

    def footers(self) -> None:
        total = self.page + 1
        y = self.g.margin_bottom / 2
        for page in range(total):
            label = f"Page {page + 1} of {total}"
            self.out.append(
                DrawInstruction(
                    page=page,
                    x=self.g.content_right - self.m.width(label, "small"),
                    y=y,
                    align=RIGHT,
                    text=label,
                    style="small",
                    font_size=self.m.size("small"),
                    kind="footer",
                )
            )
