# app.py
import io
import os
import zipfile
from datetime import datetime

from flask import Flask, jsonify, request, send_file

from billing import LineItem
from config import Config
from errors import InvoiceError, LayoutError, RecordConflict, RecordNotFound, RenderIOError
from invoice_service import CUSTOMER_FIELDS, build_service
from money import Money


# -----------------------------
# Helpers
# -----------------------------
def _parse_date(s):
    s = (s or "").strip()
    if not s:
        return None
    return datetime.strptime(s, "%Y-%m-%d").date()


def _parse_items(raw_items, currency: str):
    """JSON items: [{"description": ..., "quantity": "2", "unit_price": "150.00"}, ...]"""
    items = []
    for raw in raw_items or []:
        items.append(
            LineItem(
                raw.get("description") or "",
                str(raw.get("quantity", "0")),
                Money.parse(str(raw.get("unit_price", "0")), currency),
            )
        )
    return items


def _customer_json(c):
    return {
        "id": c.id,
        "name": c.name,
        "code": c.code,
        "address": c.address,
        "phone": c.phone,
        "contact_person": c.contact_person,
        "contact_phone": c.contact_phone,
        "email": c.email,
    }


def _invoice_json(service, inv):
    doc = service.build_document(inv)
    totals = doc.totals()
    return {
        "invoice_number": inv.invoice_number,
        "customer_id": inv.customer_id,
        "customer_name": inv.customer.name,
        "issue_date": inv.issue_date.isoformat(),
        "due_date": inv.due_date.isoformat(),
        "currency": inv.currency,
        "tax_rate": str(doc.tax_rate),
        "notes": inv.notes,
        "paid": inv.paid,
        "items": [
            {
                "description": item.description,
                "quantity": str(item.quantity),
                "unit_price": item.unit_price.amount,
                "line_total": item.line_total.amount,
            }
            for item in doc.line_items
        ],
        # amounts in minor units
        "subtotal": totals.subtotal.amount,
        "tax": totals.tax.amount,
        "total": totals.grand_total.amount,
        "total_display": totals.grand_total.format(),
        "pdf_path": inv.pdf_path,
    }


# -----------------------------
# App factory
# -----------------------------
def create_app(config=None):
    config = config or Config
    app = Flask(__name__)
    app.config.from_object(config)

    service = build_service(config)
    app.extensions["invoice_service"] = service

    # -----------------------------
    # Errors
    # -----------------------------
    def _error(e, status):
        payload = {"error": type(e).__name__, "message": str(e)}
        number = (request.view_args or {}).get("invoice_number")
        if number:
            payload["invoice_number"] = number
        return jsonify(payload), status

    @app.errorhandler(RecordNotFound)
    def handle_not_found(e):
        return _error(e, 404)

    @app.errorhandler(RecordConflict)
    def handle_conflict(e):
        return _error(e, 409)

    @app.errorhandler(RenderIOError)
    def handle_render_io(e):
        app.logger.error("PDF write failed: %s", e)
        return _error(e, 500)

    @app.errorhandler(LayoutError)
    def handle_layout(e):
        return _error(e, 422)

    @app.errorhandler(InvoiceError)
    def handle_invoice_error(e):
        return _error(e, 400)

    @app.errorhandler(ValueError)
    def handle_value_error(e):
        return _error(e, 400)

    # -----------------------------
    # Customers
    # -----------------------------
    @app.route("/customers", methods=["GET"])
    def customers():
        return jsonify([_customer_json(c) for c in service.list_customers()])

    @app.route("/customers", methods=["POST"])
    def customer_new():
        data = request.get_json(silent=True) or {}
        c = service.add_customer(**{k: data.get(k, "") for k in CUSTOMER_FIELDS})
        return jsonify(_customer_json(c)), 201

    @app.route("/customers/<int:customer_id>", methods=["GET"])
    def customer_view(customer_id: int):
        return jsonify(_customer_json(service.get_customer(customer_id)))

    @app.route("/customers/<int:customer_id>", methods=["PUT"])
    def customer_edit(customer_id: int):
        data = request.get_json(silent=True) or {}
        changes = {k: v for k, v in data.items() if k in CUSTOMER_FIELDS}
        return jsonify(_customer_json(service.edit_customer(customer_id, **changes)))

    @app.route("/customers/<int:customer_id>", methods=["DELETE"])
    def customer_delete(customer_id: int):
        service.remove_customer(customer_id)
        return "", 204

    # -----------------------------
    # Invoices
    # -----------------------------
    @app.route("/invoices", methods=["GET"])
    def invoices():
        customer_id = request.args.get("customer_id", type=int)
        unpaid = (request.args.get("unpaid") or "").strip() == "1"
        rows = service.list_invoices(customer_id=customer_id, unpaid_only=unpaid)
        return jsonify([_invoice_json(service, inv) for inv in rows])

    @app.route("/invoices", methods=["POST"])
    def invoice_new():
        data = request.get_json(silent=True) or {}
        currency = (data.get("currency") or config.DEFAULT_CURRENCY).upper()
        inv = service.create_invoice(
            customer_id=int(data.get("customer_id") or 0),
            line_items=_parse_items(data.get("items"), currency),
            due_date=_parse_date(data.get("due_date")),
            issue_date=_parse_date(data.get("issue_date")),
            tax_rate=data.get("tax_rate"),
            currency=currency,
            notes=data.get("notes") or "",
        )
        return jsonify(_invoice_json(service, inv)), 201

    @app.route("/invoices/<invoice_number>", methods=["GET"])
    def invoice_view(invoice_number: str):
        return jsonify(_invoice_json(service, service.get_invoice(invoice_number)))

    @app.route("/invoices/<invoice_number>", methods=["DELETE"])
    def invoice_delete(invoice_number: str):
        delete_pdf = (request.args.get("delete_pdf") or "").strip() == "1"
        service.delete_invoice(invoice_number, delete_pdf=delete_pdf)
        return "", 204

    @app.route("/invoices/<invoice_number>/mark_paid", methods=["POST"])
    def invoice_mark_paid(invoice_number: str):
        return jsonify(_invoice_json(service, service.mark_paid(invoice_number)))

    # -----------------------------
    # PDF routes
    # -----------------------------
    @app.route("/invoices/<invoice_number>/pdf/generate", methods=["POST"])
    def invoice_pdf_generate(invoice_number: str):
        path = service.render_invoice(invoice_number)
        return jsonify({"invoice_number": invoice_number, "pdf_path": path})

    @app.route("/invoices/<invoice_number>/pdf/download")
    def invoice_pdf_download(invoice_number: str):
        inv = service.get_invoice(invoice_number)
        if not inv.pdf_path or not os.path.exists(inv.pdf_path):
            raise RecordNotFound(f"PDF not found for {invoice_number}. Generate it first.")

        return send_file(
            inv.pdf_path,
            as_attachment=True,
            download_name=os.path.basename(inv.pdf_path),
            mimetype="application/pdf"
        )

    @app.route("/pdfs/download_all")
    def pdfs_download_all():
        customer_id = request.args.get("customer_id", type=int)
        rows = [inv for inv in service.list_invoices(customer_id=customer_id) if inv.pdf_path]

        mem = io.BytesIO()
        with zipfile.ZipFile(mem, "w", zipfile.ZIP_DEFLATED) as z:
            for inv in rows:
                if os.path.exists(inv.pdf_path):
                    z.write(inv.pdf_path, arcname=os.path.basename(inv.pdf_path))

        mem.seek(0)
        return send_file(mem, as_attachment=True, download_name="invoices_pdfs.zip")

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True)
