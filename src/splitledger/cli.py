from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from splitledger.config import get_settings
from splitledger.db.repo import Database, LedgerRepository
from splitledger.logging import configure_logging, get_logger
from splitledger.services.report import BalanceReportBuilder
from splitledger.services.summary import format_report, format_violations
from splitledger.services.validation import ValidationError


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="splitledger", description="Print a group's balances and settlement plan.")
    parser.add_argument("group_id", type=int)
    return parser.parse_args(argv)


async def run(group_id: int) -> int:
    settings = get_settings()
    log = get_logger(__name__)
    db = Database(settings.require_database_url())
    await db.connect()
    try:
        repo = LedgerRepository(db)
        snapshot = await repo.load_snapshot(group_id)
        names = await repo.get_group_member_names(group_id)
    finally:
        await db.close()

    try:
        report = BalanceReportBuilder(settings.epsilon).build(snapshot)
    except ValidationError as exc:
        log.warning("cli.report.rejected", group_id=group_id)
        print(f"Group #{group_id} ledger is inconsistent:", file=sys.stderr)
        print(format_violations(exc.violations), file=sys.stderr)
        return 1

    print(format_report(report, names))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    configure_logging(get_settings().log_level)
    return asyncio.run(run(args.group_id))


if __name__ == "__main__":
    sys.exit(main())
