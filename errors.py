# errors.py
from __future__ import annotations


class InvoiceError(Exception):
    """Base class for every error raised by the invoice modules."""


class IncompatibleCurrency(InvoiceError):
    def __init__(self, left: str, right: str):
        super().__init__(f"Cannot combine amounts in {left} and {right}")
        self.left = left
        self.right = right


class InvalidLineItem(InvoiceError):
    def __init__(self, message: str, index: int | None = None):
        if index is not None:
            message = f"Line item {index + 1}: {message}"
        super().__init__(message)
        self.index = index


class LayoutError(InvoiceError):
    """Content that cannot be placed on the page without truncation or overlap."""


class PageLimitExceeded(LayoutError):
    def __init__(self, max_pages: int):
        super().__init__(f"Invoice needs more than the configured maximum of {max_pages} page(s)")
        self.max_pages = max_pages


class InvalidGeometry(InvoiceError, ValueError):
    pass


class RenderIOError(InvoiceError):
    def __init__(self, destination, cause: Exception | None = None):
        msg = f"Could not write document to {destination}"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)
        self.destination = destination


class RecordNotFound(InvoiceError):
    pass


class RecordConflict(InvoiceError):
    pass


class AmountOutOfRange(InvoiceError, ValueError):
    """An amount larger than an invoice can display."""
