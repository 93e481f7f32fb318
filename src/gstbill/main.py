from __future__ import annotations

import argparse
import logging
import sys
from datetime import date

from gstbill import __version__
from gstbill.application.container import build_container
from gstbill.config import load_settings
from gstbill.domain.errors import AppError
from gstbill.logging_config import setup_logging, shutdown_logging

log = logging.getLogger(__name__)


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="gstbill", description="GST billing and inventory maintenance commands.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--db", help="database file (defaults to the per-user data directory)")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="create or migrate the database")
    sub.add_parser("audit-stock", help="compare stored stock with purchases minus sales")
    sub.add_parser("next-invoice", help="print the next invoice number")

    rep = sub.add_parser("report", help="combined sales/purchase transactions")
    rep.add_argument("start", type=date.fromisoformat)
    rep.add_argument("end", type=date.fromisoformat)
    rep.add_argument("--type", default="all", choices=["all", "sale", "purchase"])
    rep.add_argument("--xlsx", help="write the full report to this Excel file")

    imp = sub.add_parser("import-purchases", help="record purchases from an Excel sheet")
    imp.add_argument("path")
    return p


def _run(container, args) -> int:
    if args.command == "init":
        print(f"schema version {container.repo.schema_version()} at {container.repo.db_path}")
    elif args.command == "audit-stock":
        mismatches = container.ledger.audit()
        for m in mismatches:
            print(f"{m.product_name}: stored={m.stored} expected={m.expected}")
        if mismatches:
            return 1
        print("stock ledger consistent")
    elif args.command == "next-invoice":
        print(container.invoices.next_invoice_number())
    elif args.command == "report":
        if args.xlsx:
            n = container.reporting.export_combined_report_excel(args.xlsx, args.start, args.end, args.type)
            print(f"{n} rows written to {args.xlsx}")
        else:
            for r in container.reporting.export_combined_report(args.start, args.end, args.type):
                print(f"{r.transaction_date}\t{r.transaction_type}\t{r.reference_number or ''}\t{r.product_name}\t{r.quantity_change:+d}")
    elif args.command == "import-purchases":
        ok, skipped = container.excel.import_purchases_excel(args.path)
        print(f"imported={ok} skipped={skipped}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    try:
        settings = load_settings(args.db)
    except AppError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    setup_logging(settings.paths.logs_dir, level=settings.log_level)
    try:
        container = build_container(settings.paths.db_path, busy_timeout=settings.busy_timeout)
        return _run(container, args)
    except AppError as exc:
        log.error("command_failed command=%s error=%s", args.command, exc, extra={"command": args.command})
        print(f"error: {exc}", file=sys.stderr)
        return 2
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(main())
