# fonts.py
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.pdfmetrics import stringWidth


@dataclass(frozen=True)
class FontStyle:
    font_name: str
    size: float


DEFAULT_STYLES = {
    "body": FontStyle("Helvetica", 10),
    "body_bold": FontStyle("Helvetica-Bold", 10),
    "column_header": FontStyle("Helvetica-Bold", 9),
    "title": FontStyle("Helvetica-Bold", 16),
    "grand_total": FontStyle("Helvetica-Bold", 12),
    "small": FontStyle("Helvetica-Oblique", 8),
}


class FontMetrics:
    """
    Read-only mapping from style tokens ("body", "grand_total", ...) to a font
    and size, plus text measurement in points.

    The layout engine measures with it and the PDF renderer draws with it, so
    both must be handed the same instance.
    """

    def __init__(self, styles: Mapping[str, FontStyle] | None = None):
        styles = dict(DEFAULT_STYLES if styles is None else styles)
        for name, style in styles.items():
            if style.size <= 0:
                raise ValueError(f"Font style {name!r} needs a positive size")
            # raises KeyError for fonts reportlab does not know
            pdfmetrics.getFont(style.font_name)
        self._styles = MappingProxyType(styles)

    @property
    def styles(self) -> Mapping[str, FontStyle]:
        return self._styles

    def style(self, name: str) -> FontStyle:
        try:
            return self._styles[name]
        except KeyError:
            raise ValueError(f"Unknown font style: {name!r}") from None

    def size(self, name: str) -> float:
        return self.style(name).size

    def width(self, text: str, style: str) -> float:
        fs = self.style(style)
        return stringWidth(str(text), fs.font_name, fs.size)


DEFAULT_METRICS = FontMetrics()
