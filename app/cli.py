"""
Entrada de linha de comando para cron.

Usage:
    python -m app.cli batch-check
    python -m app.cli check <txid>
    python -m app.cli reconcile --start 2026-01-01 --end 2026-01-31 [--user <uuid>]
    python -m app.cli reconcile --ids ID1,ID2 [--user <uuid>]

Prints the run outcome as JSON. Exits 2 when platform configuration is missing.
"""
import argparse
import asyncio
import json
import logging
import sys

from app.config import get_settings
from app.db.supabase import get_db
from app.services.errors import GatewayError, PlatformConfigError
from app.services.reconciliation import ReconcileRequest, reconcile
from app.services.status_poller import check_status, run_batch_check

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger("pix_cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PIX gateway jobs")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("batch-check", help="Poll one page of pending charges")

    check = sub.add_parser("check", help="Check a single transaction")
    check.add_argument("transaction_id")

    rec = sub.add_parser("reconcile", help="Backfill missing Ativus transactions")
    rec.add_argument("--start", type=str, default=None, help="Start date (YYYY-MM-DD)")
    rec.add_argument("--end", type=str, default=None, help="End date (YYYY-MM-DD)")
    rec.add_argument("--ids", type=str, default=None, help="Comma-separated transaction IDs")
    rec.add_argument("--user", type=str, default=None, help="Pin every record to this merchant")
    return parser


async def run(args) -> dict:
    settings = get_settings()
    db = get_db(settings)
    if args.command == "batch-check":
        return await run_batch_check(db, settings)
    if args.command == "check":
        return await check_status(db, settings, args.transaction_id)
    ids = [i.strip() for i in (args.ids or "").split(",") if i.strip()]
    return await reconcile(db, settings, ReconcileRequest(
        target_user_id=args.user,
        start_date=args.start,
        end_date=args.end,
        transaction_ids=ids or None,
    ))


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        result = asyncio.run(run(args))
    except PlatformConfigError as e:
        logger.critical(str(e))
        return 2
    except (GatewayError, ValueError) as e:
        logger.error(str(e))
        return 1
    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
