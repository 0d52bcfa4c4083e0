# cli.py
"""
Command-line front end: one sub-command per service operation.

  invoice-desk customer add --name "Acme Pty Ltd" --code ACM --address "1 Main St"
  invoice-desk invoice create --customer 1 --item "Window cleaning|2|150.00" --due 2026-11-30
  invoice-desk invoice render ACM075
"""
import argparse
import logging
import sys
from datetime import date, datetime

from billing import LineItem
from config import Config
from errors import InvoiceError
from invoice_service import InvoiceService, build_service
from money import Money

logger = logging.getLogger(__name__)


def _parse_date(s: str) -> date:
    try:
        return datetime.strptime(s.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got {s!r}") from None


def _parse_items(raw_items, currency: str) -> list[LineItem]:
    """Items come in as "description|quantity|unit price"."""
    items = []
    for raw in raw_items or []:
        parts = raw.split("|")
        if len(parts) != 3:
            raise ValueError(f"Item must look like 'description|quantity|unit price', got {raw!r}")
        desc, qty, price = (p.strip() for p in parts)
        items.append(LineItem(desc, qty, Money.parse(price, currency)))
    return items


# -----------------------------
# Handlers
# -----------------------------
def cmd_init_db(service, args):
    print("Database initialized.")
    print(f"DB: {service.config.SQLALCHEMY_DATABASE_URI}")
    print(f"Exports dir: {service.config.EXPORTS_DIR}")


def cmd_customer_add(service, args):
    c = service.add_customer(
        name=args.name,
        code=args.code,
        address=args.address,
        phone=args.phone,
        contact_person=args.contact_person,
        contact_phone=args.contact_phone,
        email=args.email,
    )
    print(f"Customer added: {c.id}. {c.name} (Code: {c.code})")


def cmd_customer_edit(service, args):
    changes = {
        field: getattr(args, field)
        for field in ("name", "code", "address", "phone", "contact_person", "contact_phone", "email")
        if getattr(args, field) is not None
    }
    if not changes:
        print("Nothing to change.")
        return
    c = service.edit_customer(args.customer_id, **changes)
    print(f"Customer updated: {c.id}. {c.name} (Code: {c.code})")


def cmd_customer_remove(service, args):
    service.remove_customer(args.customer_id)
    print(f"Customer {args.customer_id} removed.")


def cmd_customer_list(service, args):
    customers = service.list_customers()
    if not customers:
        print("No customers found.")
        return
    for c in customers:
        print(f"{c.id}. {c.name} (Code: {c.code})")


def cmd_invoice_create(service, args):
    currency = (args.currency or service.config.DEFAULT_CURRENCY).upper()
    inv = service.create_invoice(
        customer_id=args.customer,
        line_items=_parse_items(args.item, currency),
        due_date=args.due,
        issue_date=args.issued,
        tax_rate=args.tax_rate,
        currency=currency,
        notes=args.notes or "",
    )
    print(f"Invoice {inv.invoice_number} created!")


def cmd_invoice_edit(service, args):
    inv = service.get_invoice(args.number)
    items = _parse_items(args.item, inv.currency) if args.item else None
    inv = service.update_invoice(
        args.number,
        line_items=items,
        due_date=args.due,
        tax_rate=args.tax_rate,
        notes=args.notes,
    )
    print(f"Invoice {inv.invoice_number} updated.")


def cmd_invoice_list(service, args):
    invoices = service.list_invoices(customer_id=args.customer, unpaid_only=args.unpaid)
    if not invoices:
        print("No invoices found.")
        return
    for inv in invoices:
        doc = service.build_document(inv)
        status = "PAID" if inv.paid else "UNPAID"
        print(f"{inv.invoice_number} - {inv.customer.name} - {doc.grand_total().format()} - {status}")


def cmd_invoice_view(service, args):
    print(service.view_invoice(args.number))


def cmd_invoice_render(service, args):
    path = service.render_invoice(args.number, destination=args.output)
    print(f"PDF generated: {path}")


def cmd_invoice_mark_paid(service, args):
    service.mark_paid(args.number)
    print(f"Invoice {args.number} marked as paid!")


def cmd_invoice_delete(service, args):
    service.delete_invoice(args.number, delete_pdf=args.delete_pdf)
    print(f"Invoice {args.number} deleted successfully!")


COMMANDS = {
    ("init-db", None): cmd_init_db,
    ("customer", "add"): cmd_customer_add,
    ("customer", "edit"): cmd_customer_edit,
    ("customer", "remove"): cmd_customer_remove,
    ("customer", "list"): cmd_customer_list,
    ("invoice", "create"): cmd_invoice_create,
    ("invoice", "edit"): cmd_invoice_edit,
    ("invoice", "list"): cmd_invoice_list,
    ("invoice", "view"): cmd_invoice_view,
    ("invoice", "render"): cmd_invoice_render,
    ("invoice", "mark-paid"): cmd_invoice_mark_paid,
    ("invoice", "delete"): cmd_invoice_delete,
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="invoice-desk", description="Manage customers and invoices.")
    groups = p.add_subparsers(dest="group", required=True)

    groups.add_parser("init-db", help="Create tables and the exports directory.")

    # customers
    cust = groups.add_parser("customer", help="Customer records.").add_subparsers(dest="action", required=True)

    add = cust.add_parser("add", help="Add a customer.")
    add.add_argument("--name", required=True)
    add.add_argument("--code", required=True, help="2-3 letter code, prefix of invoice numbers")
    add.add_argument("--address", default="")
    add.add_argument("--phone", default="")
    add.add_argument("--contact-person", default="")
    add.add_argument("--contact-phone", default="")
    add.add_argument("--email", default="")

    edit = cust.add_parser("edit", help="Edit a customer; omitted fields are kept.")
    edit.add_argument("customer_id", type=int)
    for flag in ("--name", "--code", "--address", "--phone", "--contact-person", "--contact-phone", "--email"):
        edit.add_argument(flag, default=None)

    remove = cust.add_parser("remove", help="Remove a customer without invoices.")
    remove.add_argument("customer_id", type=int)

    cust.add_parser("list", help="List customers.")

    # invoices
    inv = groups.add_parser("invoice", help="Invoices.").add_subparsers(dest="action", required=True)

    create = inv.add_parser("create", help="Create an invoice.")
    create.add_argument("--customer", type=int, required=True, help="Customer id")
    create.add_argument("--item", action="append", default=[], help="'description|quantity|unit price' (repeatable)")
    create.add_argument("--due", type=_parse_date, default=None, help="Due date YYYY-MM-DD")
    create.add_argument("--issued", type=_parse_date, default=None, help="Issue date YYYY-MM-DD (default: today)")
    create.add_argument("--tax-rate", default=None, help="Tax rate in percent, e.g. 10 or 8.25")
    create.add_argument("--currency", default=None)
    create.add_argument("--notes", default="")

    edit_inv = inv.add_parser("edit", help="Edit an invoice; --item replaces all items.")
    edit_inv.add_argument("number")
    edit_inv.add_argument("--item", action="append", default=[])
    edit_inv.add_argument("--due", type=_parse_date, default=None)
    edit_inv.add_argument("--tax-rate", default=None)
    edit_inv.add_argument("--notes", default=None)

    lst = inv.add_parser("list", help="List invoices.")
    lst.add_argument("--customer", type=int, default=None)
    lst.add_argument("--unpaid", action="store_true")

    for name, help_text in (
        ("view", "Print an invoice as text."),
        ("mark-paid", "Mark an invoice as paid."),
    ):
        sp = inv.add_parser(name, help=help_text)
        sp.add_argument("number")

    render = inv.add_parser("render", help="Render an invoice to PDF.")
    render.add_argument("number")
    render.add_argument("--output", "-o", default=None, help="Output path (default: EXPORTS_DIR)")

    delete = inv.add_parser("delete", help="Delete an invoice.")
    delete.add_argument("number")
    delete.add_argument("--delete-pdf", action="store_true", help="Also remove the stored PDF")

    return p


def main(argv=None, service: InvoiceService | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    handler = COMMANDS[(args.group, getattr(args, "action", None))]
    service = service or build_service()
    try:
        handler(service, args)
    except (InvoiceError, ValueError) as e:
        number = getattr(args, "number", None)
        where = f" (invoice {number})" if number else ""
        print(f"ERROR {type(e).__name__}{where}: {e}", file=sys.stderr)
        logger.debug("Command %s %s failed", args.group, getattr(args, "action", ""), exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
