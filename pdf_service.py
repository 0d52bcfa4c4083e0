# pdf_service.py
import contextlib
import io
import logging
import os
import re
import tempfile
from itertools import groupby

from reportlab.pdfgen import canvas

from billing import Invoice
from errors import RenderIOError
from fonts import DEFAULT_METRICS, FontMetrics
from layout import DrawInstruction, LayoutEngine, PageGeometry

logger = logging.getLogger(__name__)


def _safe_filename(name: str) -> str:
    # strip characters not allowed on Windows/mac paths
    return re.sub(r'[\\/*?:"<>|]', "", (name or "")).strip() or "Invoice"


class DocumentRenderer:
    """
    Serializes draw instructions into PDF bytes with reportlab.

    Instructions are drawn exactly where they say; this class makes no layout
    decisions. It resolves each style token through the same FontMetrics the
    layout engine measured with.
    """

    def __init__(self, geometry: PageGeometry | None = None, metrics: FontMetrics | None = None):
        self.geometry = geometry or PageGeometry.letter()
        self.metrics = metrics or DEFAULT_METRICS

    def render(self, instructions: list[DrawInstruction], title: str = "") -> bytes:
        ordered = sorted(instructions, key=lambda d: d.page)
        if ordered and ordered[0].page < 0:
            raise ValueError(f"Negative page index {ordered[0].page}")
        page_count = (ordered[-1].page + 1) if ordered else 1
        by_page = {page: list(group) for page, group in groupby(ordered, key=lambda d: d.page)}

        buf = io.BytesIO()
        pdf = canvas.Canvas(buf, pagesize=(self.geometry.page_width, self.geometry.page_height), invariant=1)
        if title:
            pdf.setTitle(title)

        for page in range(page_count):
            for ins in by_page.get(page, ()):
                pdf.setFont(self.metrics.style(ins.style).font_name, ins.font_size)
                pdf.drawString(ins.x, ins.y, ins.text)
            pdf.showPage()

        pdf.save()
        return buf.getvalue()

    def write(self, instructions: list[DrawInstruction], destination, title: str = "") -> None:
        """
        Render, then write to a path or a binary file-like object.

        The whole document is rendered before the first byte is written, and
        paths are replaced atomically, so a failure never leaves a truncated PDF
        at the destination.
        """
        data = self.render(instructions, title=title)

        if hasattr(destination, "write"):
            try:
                destination.write(data)
                if hasattr(destination, "flush"):
                    destination.flush()
            except OSError as e:
                raise RenderIOError(getattr(destination, "name", repr(destination)), e) from e
            logger.info("Wrote %d bytes to %r", len(data), destination)
            return

        path = os.fspath(destination)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=".invoice-", suffix=".pdf.tmp", dir=os.path.dirname(os.path.abspath(path))
            )
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_path, path)
            tmp_path = None
        except OSError as e:
            raise RenderIOError(path, e) from e
        finally:
            if tmp_path:
                with contextlib.suppress(OSError):
                    os.remove(tmp_path)
        logger.info("Wrote %d bytes to %s", len(data), path)


def render_invoice(
    invoice: Invoice,
    geometry: PageGeometry | None = None,
    metrics: FontMetrics | None = None,
    max_pages: int | None = None,
) -> bytes:
    metrics = metrics or DEFAULT_METRICS
    engine = LayoutEngine(geometry, metrics, max_pages=max_pages)
    instructions = engine.layout(invoice)
    return DocumentRenderer(engine.geometry, metrics).render(instructions, title=f"Invoice #{invoice.invoice_id}")


def render_invoice_to_file(
    invoice: Invoice,
    destination,
    geometry: PageGeometry | None = None,
    metrics: FontMetrics | None = None,
    max_pages: int | None = None,
) -> None:
    metrics = metrics or DEFAULT_METRICS
    engine = LayoutEngine(geometry, metrics, max_pages=max_pages)
    instructions = engine.layout(invoice)
    DocumentRenderer(engine.geometry, metrics).write(
        instructions, destination, title=f"Invoice #{invoice.invoice_id}"
    )
