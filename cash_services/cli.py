#!/usr/bin/env python3
"""
cash-register -- command line access to the cash register.

Every subcommand prints one JSON document on stdout.  Exit status is 0 on
success, 1 when a command is rejected or anything else fails (including an
unreadable config file or an unreachable database), 2 on usage errors.

Usage:
    cash-register init-db
    cash-register open --tenant acme 500.00 --notes "morning float"
    cash-register supply --tenant acme 200
    cash-register withdraw --tenant acme 150.50 --notes "supplier"
    cash-register close --tenant acme --counted 549.50
    cash-register status --tenant acme
    cash-register history --tenant acme --start 2024-01-01 --end 2024-01-31
    cash-register rebuild-summaries --tenant acme

Configuration comes from --config, $CASH_REGISTER_CONFIG and $DATABASE_URL.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from cash_config import CashConfig, get_active_config
from cash_kernel.db.engine import reset_engine
from cash_kernel.db.types import round_money
from cash_kernel.domain.values import SessionProjection, SessionSummary
from cash_kernel.exceptions import CashKernelError, ConfigurationError
from cash_services.bootstrap import bootstrap
from cash_services.facade import CashRegisterFacade, CommandResult


def _money(value: Decimal | None, places: int) -> str | None:
    return None if value is None else str(round_money(value, places))


def _ts(value) -> str | None:
    return value.isoformat() if value is not None else None


def projection_to_dict(p: SessionProjection, places: int) -> dict[str, Any]:
    discrepancy = p.discrepancy
    return {
        "tenant_id": p.tenant_id,
        "session_id": str(p.session_id) if p.session_id else None,
        "status": p.status.value,
        "balance": _money(p.balance, places),
        "opened_at": _ts(p.opened_at),
        "closed_at": _ts(p.closed_at),
        "opening_balance": _money(p.opening_balance, places),
        "total_supplied": _money(p.total_supplied, places),
        "total_withdrawn": _money(p.total_withdrawn, places),
        "entry_count": p.entry_count,
        "counted_amount": _money(p.counted_amount, places),
        "discrepancy": _money(discrepancy, places),
    }


def summary_to_dict(s: SessionSummary, places: int) -> dict[str, Any]:
    data = projection_to_dict(s.projection, places)
    data["business_date"] = s.business_date.isoformat()
    data["operations"] = [
        {
            "type": op.kind.value,
            "amount": _money(op.amount, places),
            "time": op.timestamp.isoformat(),
            "notes": op.notes,
        }
        for op in s.operations
    ]
    return data


def result_to_dict(result: CommandResult, places: int) -> dict[str, Any]:
    data: dict[str, Any] = {
        "status": result.status.value,
        "command": result.command,
        "tenant_id": result.tenant_id,
    }
    if result.is_success:
        data["entry_id"] = str(result.entry_id)
        data["projection"] = projection_to_dict(result.projection, places)
    else:
        data["error_code"] = result.error_code
        data["error_message"] = result.error_message
    return data


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cash-register",
        description="Open, move and close a tenant's cash register.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=Path, help="YAML file merged over the defaults.")
    parser.add_argument("--database-url", help="Overrides database.url.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and append-only triggers.")

    def tenant_parser(name: str, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--tenant", required=True, help="Company (tenant) id.")
        return p

    for name, help_text in (
        ("open", "Open the register with an initial amount."),
        ("supply", "Add cash to the open register."),
        ("withdraw", "Take cash out of the open register."),
    ):
        p = tenant_parser(name, help_text)
        p.add_argument("amount", help="Amount, e.g. 150.50")
        p.add_argument("--notes")
        p.add_argument("--actor", help="Operator id recorded on the entry.")

    p = tenant_parser("close", "Close the open register.")
    p.add_argument("--counted", help="Physically counted cash.")
    p.add_argument("--notes")
    p.add_argument("--actor", help="Operator id recorded on the entry.")

    tenant_parser("status", "Show the current register state.")

    p = tenant_parser("history", "List sessions by business date.")
    p.add_argument("--start", required=True, type=date.fromisoformat)
    p.add_argument("--end", required=True, type=date.fromisoformat)

    tenant_parser("rebuild-summaries", "Regenerate cached session summaries.")
    return parser.parse_args(argv)


def _load_config(args: argparse.Namespace) -> CashConfig:
    try:
        config = get_active_config(args.config)
    except OSError as e:
        raise ConfigurationError("config", str(e)) from e
    except yaml.YAMLError as e:
        raise ConfigurationError("config", f"malformed YAML: {e}") from e
    if args.database_url:
        config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url=args.database_url)
        )
    return config


def _dispatch(args: argparse.Namespace, facade: CashRegisterFacade, places: int) -> tuple[Any, int]:
    if args.command == "init-db":
        return {"status": "ok"}, 0

    if args.command in ("open", "supply", "withdraw", "close"):
        if args.command == "open":
            result = facade.open_session(args.tenant, args.amount, args.notes, actor_id=args.actor)
        elif args.command == "supply":
            result = facade.supply(args.tenant, args.amount, args.notes, actor_id=args.actor)
        elif args.command == "withdraw":
            result = facade.withdraw(args.tenant, args.amount, args.notes, actor_id=args.actor)
        else:
            result = facade.close_session(
                args.tenant, args.notes, counted_amount=args.counted, actor_id=args.actor
            )
        return result_to_dict(result, places), 0 if result.is_success else 1

    if args.command == "status":
        return projection_to_dict(facade.get_status(args.tenant), places), 0
    if args.command == "history":
        summaries = facade.get_history(args.tenant, args.start, args.end)
        return [summary_to_dict(s, places) for s in summaries], 0

    summaries = facade.rebuild_summaries(args.tenant)
    return {"status": "ok", "sessions": len(summaries)}, 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        config = _load_config(args)
        facade = bootstrap(config)
        output, code = _dispatch(args, facade, config.register.decimal_places)
    except CashKernelError as e:
        output = {"status": "error", "error_code": e.code, "error_message": str(e)}
        code = 1
    finally:
        reset_engine()

    print(json.dumps(output, indent=2))
    return code


if __name__ == "__main__":
    sys.exit(main())
