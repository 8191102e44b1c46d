#!/usr/bin/env python3
"""
Test script for app/cli.py (cron entry point)

Usage:
    python3 testes/test_cli.py

What it tests:
1. reconcile accepts --start/--end/--ids/--user
2. Subcommand dispatch: batch-check, check, reconcile print JSON and exit 0
3. Missing platform configuration -> exit 2
4. Gateway errors (unknown transaction, missing credential) -> exit 1
5. Reconcile without period or IDs -> exit 1

Settings and the Supabase client are patched with the in-memory fakes.
"""
import contextlib
import io
import json
import sys
import logging
from pathlib import Path
from unittest.mock import patch

# ── Project setup ─────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

import pytest

from app import cli
from app.services.errors import PlatformConfigError
from testes.fake_supabase import FakeSupabase
from testes.fixtures import make_settings

# ── ANSI colours ──────────────────────────────────────────────────────────────
GREEN  = "\033[92m"
RED    = "\033[91m"
RESET  = "\033[0m"

MERCHANT = "0b7c3f5e-6a51-4d38-9a53-2f1c8d9e0a11"


def _invoke(argv: list[str], db: FakeSupabase | None = None, **settings_overrides) -> tuple[int, str]:
    db = db if db is not None else FakeSupabase()
    settings = make_settings(**settings_overrides)
    out = io.StringIO()
    with patch.object(cli, "get_settings", return_value=settings), \
            patch.object(cli, "get_db", return_value=db), \
            contextlib.redirect_stdout(out):
        code = cli.main(argv)
    return code, out.getvalue()


# ── 1. Argument parsing ───────────────────────────────────────────────────────


def test_reconcile_options() -> None:
    args = cli.build_parser().parse_args([
        "reconcile", "--start", "2026-01-01", "--end", "2026-01-31", "--ids", "A,B", "--user", MERCHANT,
    ])
    assert args.command == "reconcile"
    assert (args.start, args.end, args.ids, args.user) == ("2026-01-01", "2026-01-31", "A,B", MERCHANT)


# ── 2. Dispatch ───────────────────────────────────────────────────────────────


def test_batch_check_prints_summary() -> None:
    code, out = _invoke(["batch-check"])
    assert code == 0
    summary = json.loads(out)
    assert summary["checked"] == 0 and summary["results"] == []


def test_check_paid_transaction() -> None:
    db = FakeSupabase({"pix_transactions": [{
        "id": "row-1", "txid": "sp-1", "acquirer": "spedpay", "status": "paid",
        "paid_at": "2026-01-10T15:00:00+00:00", "created_at": "2026-01-10T12:00:00+00:00",
    }]})
    code, out = _invoke(["check", "sp-1"], db)
    assert code == 0
    assert json.loads(out)["status"] == "paid"


def test_reconcile_ids_already_in_ledger() -> None:
    db = FakeSupabase({"pix_transactions": [{"txid": "AT_KNOWN_000000000000000", "status": "paid"}]})
    code, out = _invoke(
        ["reconcile", "--ids", "AT_KNOWN_000000000000000", "--user", MERCHANT], db, ativus_api_key="at-key",
    )
    assert code == 0
    result = json.loads(out)
    assert result["summary"]["already_exists"] == 1
    assert result["summary"]["imported"] == 0


# ── 3-5. Exit codes ───────────────────────────────────────────────────────────


def test_missing_platform_config_exits_2() -> None:
    out = io.StringIO()
    with patch.object(cli, "get_settings", return_value=make_settings()), \
            patch.object(cli, "get_db", side_effect=PlatformConfigError("SUPABASE_URL not configured")), \
            contextlib.redirect_stdout(out):
        code = cli.main(["batch-check"])
    assert code == 2
    assert out.getvalue() == ""


def test_unknown_transaction_exits_1() -> None:
    code, out = _invoke(["check", "does-not-exist"])
    assert code == 1
    assert out == ""


def test_reconcile_without_credential_exits_1() -> None:
    code, _ = _invoke(["reconcile", "--ids", "AT1"])
    assert code == 1


def test_reconcile_without_period_or_ids_exits_1() -> None:
    code, _ = _invoke(["reconcile", "--start", "2026-01-01"], ativus_api_key="at-key")
    assert code == 1


# ── Main ──────────────────────────────────────────────────────────────────────


def main() -> None:
    tests = [v for k, v in globals().items() if k.startswith("test_") and callable(v)]
    failed = 0
    print()
    print("=" * 65)
    print("  CLI - Test Suite")
    print("=" * 65)
    for fn in tests:
        try:
            fn()
            print(f"  {GREEN}PASS{RESET}  {fn.__name__}")
        except (AssertionError, pytest.fail.Exception) as e:
            failed += 1
            print(f"  {RED}FAIL{RESET}  {fn.__name__} - {e}")
    print()
    print(f"  {len(tests) - failed}/{len(tests)} passed")
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
