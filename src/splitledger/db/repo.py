from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Any, AsyncIterator, Callable, Iterable, Optional, Sequence

import asyncpg

from splitledger.db.models import Expense, ExpenseShare, Payment, SettlementTransfer, User, normalize_email
from splitledger.logging import get_logger, sql_logger
from splitledger.services.snapshot import LedgerSnapshot


class Transaction:
    """Query helpers bound to one connection inside an open transaction."""

    def __init__(self, conn: asyncpg.Connection) -> None:
        self._conn = conn

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        sql_logger.info("sql.tx.fetch", query=query, args=args)
        return await self._conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        sql_logger.info("sql.tx.fetchrow", query=query, args=args)
        return await self._conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        sql_logger.info("sql.tx.fetchval", query=query, args=args)
        return await self._conn.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        sql_logger.info("sql.tx.execute", query=query, args=args)
        return await self._conn.execute(query, *args)

    async def executemany(self, command: str, args: Iterable[Iterable[Any]]) -> None:
        sql_logger.info("sql.tx.executemany", query=command)
        await self._conn.executemany(command, args)


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg expects a plain postgresql:// scheme, without "+asyncpg"
            dsn = self._dsn.replace("+asyncpg", "")
            self._pool = await asyncpg.create_pool(dsn)
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetch", query=query, args=args)
        return await self._pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchrow", query=query, args=args)
        return await self._pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchval", query=query, args=args)
        return await self._pool.fetchval(query, *args)

    @asynccontextmanager
    async def transaction(self, **options: Any) -> AsyncIterator[Transaction]:
        await self._ensure_pool()
        assert self._pool
        async with self._pool.acquire() as conn:
            async with conn.transaction(**options):
                yield Transaction(conn)

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


def _user_from_row(row: Any) -> User:
    return User(id=int(row["id"]), email=row["email"], name=row["name"])


def _expense_from_row(row: Any) -> Expense:
    return Expense(
        id=int(row["id"]),
        group_id=int(row["group_id"]),
        payer_id=int(row["payer_id"]),
        amount=Decimal(row["amount"]),
        date=row["date"],
        name=row["name"],
        description=row["description"],
    )


def _share_from_row(row: Any) -> ExpenseShare:
    return ExpenseShare(
        expense_id=int(row["expense_id"]),
        user_id=int(row["user_id"]),
        share_amount=Decimal(row["share_amount"]),
        category=row["category"],
    )


def _payment_from_row(row: Any) -> Payment:
    return Payment(
        id=int(row["id"]),
        group_id=int(row["group_id"]),
        payer_id=int(row["payer_id"]),
        receiver_id=int(row["receiver_id"]),
        amount=Decimal(row["amount"]),
        date=row["date"],
    )


ChangeListener = Callable[[int], None]

_INSERT_SHARE = """
    INSERT INTO expense_shares (expense_id, user_id, share_amount, category)
    VALUES ($1, $2, $3, $4)
"""


class LedgerRepository:
    def __init__(self, db: Database) -> None:
        self.db = db
        self.on_change: list[ChangeListener] = []
        self._log = get_logger(__name__)

    def _changed(self, group_id: int) -> None:
        for listener in self.on_change:
            listener(group_id)

    async def ensure_user(self, email: str, name: Optional[str] = None) -> User:
        row = await self.db.fetchrow(
            """
            INSERT INTO users (email, name)
            VALUES ($1, $2)
            ON CONFLICT (email) DO UPDATE
                SET name = COALESCE(EXCLUDED.name, users.name)
            RETURNING *
            """,
            normalize_email(email),
            name,
        )
        assert row is not None
        return _user_from_row(row)

    async def get_user_by_email(self, email: str) -> User | None:
        row = await self.db.fetchrow("SELECT * FROM users WHERE email = $1", normalize_email(email))
        return _user_from_row(row) if row else None

    async def get_group_member_names(self, group_id: int) -> dict[int, str]:
        rows = await self.db.fetch(
            """
            SELECT u.id, u.email, u.name
            FROM group_members gm
            JOIN users u ON u.id = gm.user_id
            WHERE gm.group_id = $1
            """,
            group_id,
        )
        return {int(row["id"]): row["name"] or row["email"] for row in rows}

    async def load_snapshot(self, group_id: int) -> LedgerSnapshot:
        async with self.db.transaction(isolation="repeatable_read", readonly=True) as tx:
            expense_rows = await tx.fetch(
                "SELECT * FROM expenses WHERE group_id = $1 ORDER BY date, id",
                group_id,
            )
            share_rows = await tx.fetch(
                """
                SELECT es.*
                FROM expense_shares es
                JOIN expenses e ON e.id = es.expense_id
                WHERE e.group_id = $1
                ORDER BY es.expense_id, es.user_id
                """,
                group_id,
            )
            payment_rows = await tx.fetch(
                "SELECT * FROM payments WHERE group_id = $1 ORDER BY date, id",
                group_id,
            )

        return LedgerSnapshot.build(
            group_id,
            expenses=(_expense_from_row(row) for row in expense_rows),
            shares=(_share_from_row(row) for row in share_rows),
            payments=(_payment_from_row(row) for row in payment_rows),
        )

    async def create_expense(
        self,
        group_id: int,
        payer_id: int,
        name: str,
        amount: Decimal,
        expense_date: date,
        shares: Sequence[ExpenseShare],
        description: Optional[str] = None,
    ) -> Expense:
        if amount <= 0:
            raise ValueError("Expense amount must be positive")
        if not shares:
            raise ValueError("An expense needs at least one share")

        async with self.db.transaction() as tx:
            row = await tx.fetchrow(
                """
                INSERT INTO expenses (group_id, payer_id, name, description, date, amount)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING *
                """,
                group_id,
                payer_id,
                name,
                description,
                expense_date,
                amount,
            )
            assert row is not None
            expense = _expense_from_row(row)
            await tx.executemany(
                _INSERT_SHARE,
                ((expense.id, share.user_id, share.share_amount, share.category) for share in shares),
            )

        self._log.info("expense.created", expense_id=expense.id, group_id=group_id, shares=len(shares))
        self._changed(group_id)
        return expense

    async def replace_expense_shares(self, expense_id: int, shares: Sequence[ExpenseShare]) -> None:
        if not shares:
            raise ValueError("An expense needs at least one share")
        new_rows = [(expense_id, share.user_id, share.share_amount, share.category) for share in shares]

        async with self.db.transaction() as tx:
            group_id = await tx.fetchval(
                "SELECT group_id FROM expenses WHERE id = $1 FOR UPDATE",
                expense_id,
            )
            if group_id is None:
                raise ValueError(f"Expense #{expense_id} not found")
            await tx.execute("DELETE FROM expense_shares WHERE expense_id = $1", expense_id)
            await tx.executemany(_INSERT_SHARE, new_rows)

        self._log.info("expense.shares.replaced", expense_id=expense_id, shares=len(new_rows))
        self._changed(int(group_id))

    async def delete_expense(self, expense_id: int) -> None:
        async with self.db.transaction() as tx:
            group_id = await tx.fetchval(
                "SELECT group_id FROM expenses WHERE id = $1 FOR UPDATE",
                expense_id,
            )
            if group_id is None:
                raise ValueError(f"Expense #{expense_id} not found")
            await tx.execute("DELETE FROM expense_shares WHERE expense_id = $1", expense_id)
            await tx.execute("DELETE FROM expenses WHERE id = $1", expense_id)

        self._log.info("expense.deleted", expense_id=expense_id)
        self._changed(int(group_id))

    async def create_payment(
        self,
        group_id: int,
        payer_id: int,
        receiver_id: int,
        amount: Decimal,
        payment_date: date,
    ) -> Payment:
        if amount <= 0:
            raise ValueError("Payment amount must be positive")
        if payer_id == receiver_id:
            raise ValueError("Payer and receiver must differ")

        row = await self.db.fetchrow(
            """
            INSERT INTO payments (group_id, payer_id, receiver_id, amount, date)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
            """,
            group_id,
            payer_id,
            receiver_id,
            amount,
            payment_date,
        )
        assert row is not None
        payment = _payment_from_row(row)
        self._log.info("payment.created", payment_id=payment.id, group_id=group_id)
        self._changed(group_id)
        return payment

    async def record_transfer(
        self,
        group_id: int,
        transfer: SettlementTransfer,
        payment_date: date,
    ) -> Payment:
        return await self.create_payment(
            group_id,
            payer_id=transfer.from_user,
            receiver_id=transfer.to_user,
            amount=transfer.amount,
            payment_date=payment_date,
        )

    async def delete_payment(self, payment_id: int) -> None:
        group_id = await self.db.fetchval(
            "DELETE FROM payments WHERE id = $1 RETURNING group_id",
            payment_id,
        )
        if group_id is None:
            raise ValueError(f"Payment #{payment_id} not found")
        self._log.info("payment.deleted", payment_id=payment_id)
        self._changed(int(group_id))
