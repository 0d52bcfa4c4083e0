# bulk_generate_pdfs.py
import argparse
import os

from config import Config
from invoice_service import InvoiceService, build_service


def run(service: InvoiceService, customer_code: str = "", regenerate: bool = False) -> dict:
    invoices = service.list_invoices()
    if customer_code:
        invoices = [inv for inv in invoices if inv.customer.code == customer_code]

    counts = {"generated": 0, "skipped": 0, "failed": 0}
    if not invoices:
        print("No invoices found for the given filter.")
        return counts

    total = len(invoices)
    for i, inv in enumerate(invoices, start=1):
        has_pdf = bool(inv.pdf_path and inv.pdf_generated_at) and os.path.exists(inv.pdf_path)
        if has_pdf and not regenerate:
            counts["skipped"] += 1
            print(f"[{i}/{total}] SKIP  {inv.invoice_number} (already has PDF)")
            continue

        try:
            path = service.render_invoice(inv.invoice_number)
        except Exception as e:
            counts["failed"] += 1
            print(f"[{i}/{total}] FAIL  {inv.invoice_number}  ({type(e).__name__}: {e})")
            continue

        counts["generated"] += 1
        print(f"[{i}/{total}] DONE  {inv.invoice_number} -> {path}")

    return counts


def main():
    parser = argparse.ArgumentParser(description="Bulk generate invoice PDFs.")
    parser.add_argument("--customer", type=str, default="", help="Only generate PDFs for one customer code (e.g. ABC).")
    parser.add_argument("--all", action="store_true", help="Regenerate PDFs even if one already exists.")
    args = parser.parse_args()

    service = build_service(Config)

    code = (args.customer or "").strip().upper()
    if code and not (code.isalpha() and 2 <= len(code) <= 3):
        raise SystemExit("Customer code must be 2-3 letters, e.g. --customer ABC")

    counts = run(service, customer_code=code, regenerate=args.all)

    print("\nBulk PDF generation complete.")
    print(f"Generated: {counts['generated']}")
    print(f"Skipped:   {counts['skipped']}")
    print(f"Failed:    {counts['failed']}")
    print(f"Exports:   {Config.EXPORTS_DIR}")


if __name__ == "__main__":
    main()
