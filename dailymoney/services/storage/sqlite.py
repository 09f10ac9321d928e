"""
SQLite Storage Implementation

SQLite is the persistent backend because it gives us what the ledger
needs and Google Sheets does not:
1. Atomic increments (`UPDATE jars SET balance = balance + ?`)
2. Real multi-row transactions (`BEGIN IMMEDIATE` ... `COMMIT`)
3. Indexed range queries on timestamps

sqlite3 is blocking, so every public method hands its work to a thread
with asyncio.to_thread. Each call opens its own connection; SQLite's file
lock serialises writers across threads and processes.

Timestamps are stored as fixed-width ISO-8601 UTC strings so that text
comparison in SQL matches chronological order.
"""

import asyncio
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional
from uuid import UUID

import structlog

from dailymoney.models.ledger import (
    AllocationStatus,
    Budget,
    BudgetPeriod,
    FinancialGoal,
    GoalPriority,
    GoalStatus,
    IncomeRecord,
    JarDelta,
    JarPeriodSummary,
    JarState,
    Transaction,
    TransactionType,
    ensure_utc,
)
from dailymoney.services.storage.interface import (
    DuplicateError,
    LedgerStorage,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS jars (
    user_id TEXT NOT NULL,
    code TEXT NOT NULL,
    allocated INTEGER NOT NULL DEFAULT 0,
    spent INTEGER NOT NULL DEFAULT 0,
    balance INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL,
    period_started_at TEXT NOT NULL,
    PRIMARY KEY (user_id, code)
);

CREATE TABLE IF NOT EXISTS jar_periods (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    code TEXT NOT NULL,
    period_start TEXT NOT NULL,
    period_end TEXT NOT NULL,
    allocated INTEGER NOT NULL,
    spent INTEGER NOT NULL,
    balance INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS incomes (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    amount INTEGER NOT NULL,
    source TEXT NOT NULL,
    note TEXT NOT NULL DEFAULT '',
    category TEXT NOT NULL DEFAULT '',
    allocated_json TEXT NOT NULL,
    allocation_status TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    amount INTEGER NOT NULL,
    jar_code TEXT,
    category TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL,
    recognized_text TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS budgets (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    jar_code TEXT NOT NULL,
    category TEXT,
    amount INTEGER NOT NULL,
    period TEXT NOT NULL,
    start_date TEXT NOT NULL,
    end_date TEXT,
    alert_threshold INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS goals (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    target_amount INTEGER NOT NULL,
    current_amount INTEGER NOT NULL,
    target_date TEXT,
    jar_code TEXT,
    status TEXT NOT NULL,
    priority TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_jar_periods_user ON jar_periods (user_id, period_end);
CREATE INDEX IF NOT EXISTS ix_incomes_user_date ON incomes (user_id, created_at);
CREATE INDEX IF NOT EXISTS ix_incomes_status ON incomes (user_id, allocation_status);
CREATE INDEX IF NOT EXISTS ix_txn_user_date ON transactions (user_id, created_at);
CREATE INDEX IF NOT EXISTS ix_txn_user_jar ON transactions (user_id, jar_code, created_at);
CREATE INDEX IF NOT EXISTS ix_txn_user_type ON transactions (user_id, type, created_at);
CREATE INDEX IF NOT EXISTS ix_budgets_user ON budgets (user_id, created_at);
CREATE INDEX IF NOT EXISTS ix_goals_user ON goals (user_id, created_at);
"""


def _ts(value: datetime) -> str:
    return ensure_utc(value).isoformat(timespec="microseconds")


def _opt_ts(value: Optional[datetime]) -> Optional[str]:
    return _ts(value) if value is not None else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteLedgerStorage(LedgerStorage):
    """
    SQLite implementation of the ledger storage.

    The schema is created on construction. Pass ":memory:" only for
    single-connection experiments: each call opens a fresh connection,
    so an in-memory database would not persist between calls.
    """

    def __init__(self, path: str | Path, timeout: float = 30.0):
        self._path = str(path)
        self._timeout = timeout
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        self.init_schema()

    @property
    def path(self) -> str:
        return self._path

    # -- connection handling ------------------------------------------------

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._path, timeout=self._timeout, isolation_level=None)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {self._path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """One write transaction; rolled back on any exception."""
        with self._connect() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageError(f"Failed to start transaction: {e}") from e
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except StorageError:
            raise
        except sqlite3.IntegrityError as e:
            raise DuplicateError(str(e)) from e
        except sqlite3.Error as e:
            logger.error("sqlite_error", error=str(e), operation=func.__name__)
            raise StorageError(f"{func.__name__} failed: {e}") from e

    def init_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize schema: {e}") from e

    # -- jars ---------------------------------------------------------------

    @staticmethod
    def _apply_deltas(
        conn: sqlite3.Connection,
        user_id: str,
        deltas: list[JarDelta],
        now: datetime,
    ) -> None:
        for delta in deltas:
            cursor = conn.execute(
                """
                UPDATE jars
                SET allocated = allocated + ?,
                    spent = spent + ?,
                    balance = balance + ?,
                    updated_at = ?
                WHERE user_id = ? AND code = ?
                """,
                (delta.allocated, delta.spent, delta.balance, _ts(now), user_id, delta.code),
            )
            if cursor.rowcount != 1:
                raise NotFoundError(
                    f"Jar {delta.code} not initialized for user {user_id}"
                )

    @staticmethod
    def _row_to_jar(row: sqlite3.Row) -> JarState:
        return JarState(
            code=row["code"],
            allocated=row["allocated"],
            spent=row["spent"],
            balance=row["balance"],
            updated_at=_parse_ts(row["updated_at"]),
            period_started_at=_parse_ts(row["period_started_at"]),
        )

    def _initialize_jars(self, user_id: str, codes: tuple[str, ...], now: datetime) -> bool:
        created = 0
        with self._transaction() as conn:
            for code in codes:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO jars
                        (user_id, code, allocated, spent, balance, updated_at, period_started_at)
                    VALUES (?, ?, 0, 0, 0, ?, ?)
                    """,
                    (user_id, code, _ts(now), _ts(now)),
                )
                created += cursor.rowcount
        return created > 0

    async def initialize_jars(
        self,
        user_id: str,
        codes: tuple[str, ...],
        now: datetime,
    ) -> bool:
        return await self._run(self._initialize_jars, user_id, codes, now)

    def _get_jars(self, user_id: str) -> dict[str, JarState]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM jars WHERE user_id = ?", (user_id,)
            ).fetchall()
        return {row["code"]: self._row_to_jar(row) for row in rows}

    async def get_jars(self, user_id: str) -> dict[str, JarState]:
        return await self._run(self._get_jars, user_id)

    def _apply_jar_deltas(self, user_id: str, deltas: list[JarDelta], now: datetime) -> None:
        with self._transaction() as conn:
            self._apply_deltas(conn, user_id, deltas, now)

    async def apply_jar_deltas(
        self,
        user_id: str,
        deltas: list[JarDelta],
        now: datetime,
    ) -> None:
        await self._run(self._apply_jar_deltas, user_id, deltas, now)

    def _reset_jars(self, user_id: str, now: datetime) -> list[JarPeriodSummary]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM jars WHERE user_id = ?", (user_id,)
            ).fetchall()
            summaries = []
            for row in rows:
                summary = JarPeriodSummary(
                    code=row["code"],
                    period_start=_parse_ts(row["period_started_at"]),
                    period_end=now,
                    allocated=row["allocated"],
                    spent=row["spent"],
                    balance=row["balance"],
                )
                conn.execute(
                    """
                    INSERT INTO jar_periods
                        (user_id, code, period_start, period_end, allocated, spent, balance)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id, summary.code, _ts(summary.period_start), _ts(now),
                        summary.allocated, summary.spent, summary.balance,
                    ),
                )
                summaries.append(summary)
            conn.execute(
                """
                UPDATE jars
                SET balance = allocated, spent = 0, updated_at = ?, period_started_at = ?
                WHERE user_id = ?
                """,
                (_ts(now), _ts(now), user_id),
            )
        return summaries

    async def reset_jars(self, user_id: str, now: datetime) -> list[JarPeriodSummary]:
        return await self._run(self._reset_jars, user_id, now)

    def _list_jar_periods(self, user_id: str, jar_code: Optional[str]) -> list[JarPeriodSummary]:
        sql = "SELECT * FROM jar_periods WHERE user_id = ?"
        params: list = [user_id]
        if jar_code is not None:
            sql += " AND code = ?"
            params.append(jar_code)
        sql += " ORDER BY period_end DESC, id DESC"
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            JarPeriodSummary(
                code=row["code"],
                period_start=_parse_ts(row["period_start"]),
                period_end=_parse_ts(row["period_end"]),
                allocated=row["allocated"],
                spent=row["spent"],
                balance=row["balance"],
            )
            for row in rows
        ]

    async def list_jar_periods(
        self,
        user_id: str,
        jar_code: Optional[str] = None,
    ) -> list[JarPeriodSummary]:
        return await self._run(self._list_jar_periods, user_id, jar_code)

    # -- incomes ------------------------------------------------------------

    @staticmethod
    def _row_to_income(row: sqlite3.Row) -> IncomeRecord:
        return IncomeRecord(
            id=UUID(row["id"]),
            amount=row["amount"],
            source=row["source"],
            note=row["note"],
            category=row["category"],
            allocated=json.loads(row["allocated_json"]),
            allocation_status=AllocationStatus(row["allocation_status"]),
            created_at=_parse_ts(row["created_at"]),
        )

    def _save_income(self, user_id: str, income: IncomeRecord) -> bool:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO incomes
                    (id, user_id, amount, source, note, category,
                     allocated_json, allocation_status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(income.id), user_id, income.amount, income.source,
                    income.note, income.category, json.dumps(income.allocated),
                    income.allocation_status.value, _ts(income.created_at),
                ),
            )
        return True

    async def save_income(self, user_id: str, income: IncomeRecord) -> bool:
        return await self._run(self._save_income, user_id, income)

    def _get_income(self, user_id: str, income_id: UUID) -> Optional[IncomeRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM incomes WHERE user_id = ? AND id = ?",
                (user_id, str(income_id)),
            ).fetchone()
        return self._row_to_income(row) if row else None

    async def get_income(self, user_id: str, income_id: UUID) -> Optional[IncomeRecord]:
        return await self._run(self._get_income, user_id, income_id)

    def _list_incomes(
        self,
        user_id: str,
        status: Optional[AllocationStatus],
        limit: int,
    ) -> list[IncomeRecord]:
        sql = "SELECT * FROM incomes WHERE user_id = ?"
        params: list = [user_id]
        if status is not None:
            sql += " AND allocation_status = ?"
            params.append(status.value)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_income(row) for row in rows]

    async def list_incomes(
        self,
        user_id: str,
        status: Optional[AllocationStatus] = None,
        limit: int = 50,
    ) -> list[IncomeRecord]:
        return await self._run(self._list_incomes, user_id, status, limit)

    @staticmethod
    def _window_clause(
        date_from: Optional[datetime],
        date_to: Optional[datetime],
    ) -> tuple[str, list]:
        sql = ""
        params: list = []
        if date_from is not None:
            sql += " AND created_at >= ?"
            params.append(_ts(date_from))
        if date_to is not None:
            sql += " AND created_at <= ?"
            params.append(_ts(date_to))
        return sql, params

    def _sum_incomes(
        self,
        user_id: str,
        date_from: Optional[datetime],
        date_to: Optional[datetime],
    ) -> int:
        window_sql, window_params = self._window_clause(date_from, date_to)
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COALESCE(SUM(amount), 0) AS total FROM incomes WHERE user_id = ?"
                + window_sql,
                [user_id, *window_params],
            ).fetchone()
        return int(row["total"])

    async def sum_incomes(
        self,
        user_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> int:
        return await self._run(self._sum_incomes, user_id, date_from, date_to)

    def _apply_income_allocation(
        self,
        user_id: str,
        income_id: UUID,
        deltas: list[JarDelta],
        now: datetime,
    ) -> bool:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT allocation_status FROM incomes WHERE user_id = ? AND id = ?",
                (user_id, str(income_id)),
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Income not found: {income_id}")
            if row["allocation_status"] != AllocationStatus.PENDING.value:
                return False
            self._apply_deltas(conn, user_id, deltas, now)
            conn.execute(
                "UPDATE incomes SET allocation_status = ? WHERE user_id = ? AND id = ?",
                (AllocationStatus.APPLIED.value, user_id, str(income_id)),
            )
        return True

    async def apply_income_allocation(
        self,
        user_id: str,
        income_id: UUID,
        deltas: list[JarDelta],
        now: datetime,
    ) -> bool:
        return await self._run(self._apply_income_allocation, user_id, income_id, deltas, now)

    # -- transactions -------------------------------------------------------

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=UUID(row["id"]),
            amount=row["amount"],
            jar_code=row["jar_code"],
            category=row["category"],
            description=row["description"],
            type=TransactionType(row["type"]),
            recognized_text=row["recognized_text"],
            created_at=_parse_ts(row["created_at"]),
        )

    def _save_transaction(
        self,
        user_id: str,
        transaction: Transaction,
        deltas: list[JarDelta],
        now: datetime,
    ) -> bool:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO transactions
                    (id, user_id, amount, jar_code, category, description,
                     type, recognized_text, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(transaction.id), user_id, transaction.amount,
                    transaction.jar_code, transaction.category,
                    transaction.description, transaction.type.value,
                    transaction.recognized_text, _ts(transaction.created_at),
                ),
            )
            self._apply_deltas(conn, user_id, deltas, now)
        return True

    async def save_transaction(
        self,
        user_id: str,
        transaction: Transaction,
        deltas: list[JarDelta],
        now: datetime,
    ) -> bool:
        return await self._run(self._save_transaction, user_id, transaction, deltas, now)

    def _get_transaction(self, user_id: str, transaction_id: UUID) -> Optional[Transaction]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM transactions WHERE user_id = ? AND id = ?",
                (user_id, str(transaction_id)),
            ).fetchone()
        return self._row_to_transaction(row) if row else None

    async def get_transaction(
        self,
        user_id: str,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        return await self._run(self._get_transaction, user_id, transaction_id)

    @classmethod
    def _transaction_filter(
        cls,
        user_id: str,
        jar_code: Optional[str],
        transaction_type: Optional[TransactionType],
        date_from: Optional[datetime],
        date_to: Optional[datetime],
    ) -> tuple[str, list]:
        sql = " WHERE user_id = ?"
        params: list = [user_id]
        if jar_code is not None:
            sql += " AND jar_code = ?"
            params.append(jar_code)
        if transaction_type is not None:
            sql += " AND type = ?"
            params.append(transaction_type.value)
        window_sql, window_params = cls._window_clause(date_from, date_to)
        return sql + window_sql, params + window_params

    def _list_transactions(
        self,
        user_id: str,
        jar_code: Optional[str],
        transaction_type: Optional[TransactionType],
        date_from: Optional[datetime],
        date_to: Optional[datetime],
        limit: int,
    ) -> list[Transaction]:
        where, params = self._transaction_filter(
            user_id, jar_code, transaction_type, date_from, date_to
        )
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM transactions" + where + " ORDER BY created_at DESC LIMIT ?",
                [*params, limit],
            ).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    async def list_transactions(
        self,
        user_id: str,
        jar_code: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 50,
    ) -> list[Transaction]:
        return await self._run(
            self._list_transactions,
            user_id, jar_code, transaction_type, date_from, date_to, limit,
        )

    def _delete_transaction(self, user_id: str, transaction_id: UUID) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM transactions WHERE user_id = ? AND id = ?",
                (user_id, str(transaction_id)),
            )
        return cursor.rowcount > 0

    async def delete_transaction(self, user_id: str, transaction_id: UUID) -> bool:
        return await self._run(self._delete_transaction, user_id, transaction_id)

    def _sum_transactions(
        self,
        user_id: str,
        transaction_type: TransactionType,
        jar_code: Optional[str],
        date_from: Optional[datetime],
        date_to: Optional[datetime],
    ) -> int:
        where, params = self._transaction_filter(
            user_id, jar_code, transaction_type, date_from, date_to
        )
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COALESCE(SUM(amount), 0) AS total FROM transactions" + where,
                params,
            ).fetchone()
        return int(row["total"])

    async def sum_transactions(
        self,
        user_id: str,
        transaction_type: TransactionType,
        jar_code: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> int:
        return await self._run(
            self._sum_transactions,
            user_id, transaction_type, jar_code, date_from, date_to,
        )

    # -- budgets ------------------------------------------------------------

    @staticmethod
    def _budget_params(user_id: str, budget: Budget) -> tuple:
        return (
            user_id, budget.jar_code, budget.category, budget.amount,
            budget.period.value, _ts(budget.start_date), _opt_ts(budget.end_date),
            budget.alert_threshold, _ts(budget.created_at), _ts(budget.updated_at),
            str(budget.id),
        )

    @staticmethod
    def _row_to_budget(row: sqlite3.Row) -> Budget:
        return Budget(
            id=UUID(row["id"]),
            jar_code=row["jar_code"],
            category=row["category"],
            amount=row["amount"],
            period=BudgetPeriod(row["period"]),
            start_date=_parse_ts(row["start_date"]),
            end_date=_parse_ts(row["end_date"]),
            alert_threshold=row["alert_threshold"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def _save_budget(self, user_id: str, budget: Budget) -> bool:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO budgets
                    (user_id, jar_code, category, amount, period, start_date,
                     end_date, alert_threshold, created_at, updated_at, id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._budget_params(user_id, budget),
            )
        return True

    async def save_budget(self, user_id: str, budget: Budget) -> bool:
        return await self._run(self._save_budget, user_id, budget)

    def _get_budget(self, user_id: str, budget_id: UUID) -> Optional[Budget]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM budgets WHERE user_id = ? AND id = ?",
                (user_id, str(budget_id)),
            ).fetchone()
        return self._row_to_budget(row) if row else None

    async def get_budget(self, user_id: str, budget_id: UUID) -> Optional[Budget]:
        return await self._run(self._get_budget, user_id, budget_id)

    def _list_budgets(self, user_id: str) -> list[Budget]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM budgets WHERE user_id = ? ORDER BY created_at DESC",
                (user_id,),
            ).fetchall()
        return [self._row_to_budget(row) for row in rows]

    async def list_budgets(self, user_id: str) -> list[Budget]:
        return await self._run(self._list_budgets, user_id)

    def _update_budget(self, user_id: str, budget: Budget) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE budgets
                SET user_id = ?, jar_code = ?, category = ?, amount = ?, period = ?,
                    start_date = ?, end_date = ?, alert_threshold = ?,
                    created_at = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
                """,
                (*self._budget_params(user_id, budget), user_id),
            )
            if cursor.rowcount != 1:
                raise NotFoundError(f"Budget not found: {budget.id}")
        return True

    async def update_budget(self, user_id: str, budget: Budget) -> bool:
        return await self._run(self._update_budget, user_id, budget)

    def _delete_budget(self, user_id: str, budget_id: UUID) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM budgets WHERE user_id = ? AND id = ?",
                (user_id, str(budget_id)),
            )
        return cursor.rowcount > 0

    async def delete_budget(self, user_id: str, budget_id: UUID) -> bool:
        return await self._run(self._delete_budget, user_id, budget_id)

    # -- goals --------------------------------------------------------------

    @staticmethod
    def _goal_params(user_id: str, goal: FinancialGoal) -> tuple:
        return (
            user_id, goal.title, goal.description, goal.target_amount,
            goal.current_amount, _opt_ts(goal.target_date), goal.jar_code,
            goal.status.value, goal.priority.value, _ts(goal.created_at),
            _ts(goal.updated_at), str(goal.id),
        )

    @staticmethod
    def _row_to_goal(row: sqlite3.Row) -> FinancialGoal:
        return FinancialGoal(
            id=UUID(row["id"]),
            title=row["title"],
            description=row["description"],
            target_amount=row["target_amount"],
            current_amount=row["current_amount"],
            target_date=_parse_ts(row["target_date"]),
            jar_code=row["jar_code"],
            status=GoalStatus(row["status"]),
            priority=GoalPriority(row["priority"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def _save_goal(self, user_id: str, goal: FinancialGoal) -> bool:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO goals
                    (user_id, title, description, target_amount, current_amount,
                     target_date, jar_code, status, priority, created_at,
                     updated_at, id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._goal_params(user_id, goal),
            )
        return True

    async def save_goal(self, user_id: str, goal: FinancialGoal) -> bool:
        return await self._run(self._save_goal, user_id, goal)

    def _get_goal(self, user_id: str, goal_id: UUID) -> Optional[FinancialGoal]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM goals WHERE user_id = ? AND id = ?",
                (user_id, str(goal_id)),
            ).fetchone()
        return self._row_to_goal(row) if row else None

    async def get_goal(self, user_id: str, goal_id: UUID) -> Optional[FinancialGoal]:
        return await self._run(self._get_goal, user_id, goal_id)

    def _list_goals(self, user_id: str, status: Optional[GoalStatus]) -> list[FinancialGoal]:
        sql = "SELECT * FROM goals WHERE user_id = ?"
        params: list = [user_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        sql += " ORDER BY created_at DESC"
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_goal(row) for row in rows]

    async def list_goals(
        self,
        user_id: str,
        status: Optional[GoalStatus] = None,
    ) -> list[FinancialGoal]:
        return await self._run(self._list_goals, user_id, status)

    def _update_goal(self, user_id: str, goal: FinancialGoal) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE goals
                SET user_id = ?, title = ?, description = ?, target_amount = ?,
                    current_amount = ?, target_date = ?, jar_code = ?, status = ?,
                    priority = ?, created_at = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
                """,
                (*self._goal_params(user_id, goal), user_id),
            )
            if cursor.rowcount != 1:
                raise NotFoundError(f"Goal not found: {goal.id}")
        return True

    async def update_goal(self, user_id: str, goal: FinancialGoal) -> bool:
        return await self._run(self._update_goal, user_id, goal)

    def _delete_goal(self, user_id: str, goal_id: UUID) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM goals WHERE user_id = ? AND id = ?",
                (user_id, str(goal_id)),
            )
        return cursor.rowcount > 0

    async def delete_goal(self, user_id: str, goal_id: UUID) -> bool:
        return await self._run(self._delete_goal, user_id, goal_id)
