"""SQLite storage implementation."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..models import CostInfo, ExecutionResult, PaginatedResult, TokenUsage, Trace, TraceNode


class IStore(Protocol):
    """Persistent storage for executions, costs and traces."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Executions
    async def add_execution(self, result: ExecutionResult) -> None:
        """Save an agent execution result."""
        ...

    async def get_execution(self, execution_id: str) -> ExecutionResult | None:
        """Get an execution result by ID."""
        ...

    async def get_all_executions(self, limit: int | None = None) -> list[ExecutionResult]:
        """Get execution results (newest first)."""
        ...

    # Costs
    async def add_cost(self, cost: CostInfo) -> None:
        """Save a cost record."""
        ...

    async def get_costs(
        self,
        execution_id: str | None = None,
        model: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> PaginatedResult[CostInfo]:
        """Get cost records (newest first) with optional filters."""
        ...

    async def get_total_cost(self, execution_id: str | None = None) -> float:
        """Sum of recorded costs."""
        ...

    # Traces
    async def add_trace(self, trace: Trace) -> None:
        """Save a trace tree."""
        ...

    async def get_trace(self, execution_id: str) -> Trace | None:
        """Get the trace of a workflow execution."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


def _parse_ts(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize database and create tables."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    # Executions
    async def add_execution(self, result: ExecutionResult) -> None:
        """Save an agent execution result."""
        conn = self._require_conn()
        await conn.execute(
            """
            INSERT OR REPLACE INTO executions
            (execution_id, agent_id, status, output, error, started_at,
             completed_at, duration, token_usage, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                result.execution_id,
                result.agent_id,
                result.status.value,
                json.dumps(result.output, default=str),
                result.error_message,
                result.started_at.isoformat(),
                result.completed_at.isoformat(),
                result.duration,
                json.dumps(result.token_usage.to_dict()) if result.token_usage else None,
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        await conn.commit()

    async def get_execution(self, execution_id: str) -> ExecutionResult | None:
        """Get an execution result by ID."""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            SELECT execution_id, agent_id, status, output, error, started_at,
                   completed_at, duration, token_usage
            FROM executions
            WHERE execution_id = ?
            """,
            (execution_id,),
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return self._row_to_execution(row)

    async def get_all_executions(self, limit: int | None = None) -> list[ExecutionResult]:
        """Get execution results (newest first)."""
        conn = self._require_conn()
        query = """
            SELECT execution_id, agent_id, status, output, error, started_at,
                   completed_at, duration, token_usage
            FROM executions
            ORDER BY created_at DESC, rowid DESC
        """
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()
        return [self._row_to_execution(row) for row in rows]

    @staticmethod
    def _row_to_execution(row) -> ExecutionResult:
        return ExecutionResult.from_dict(
            {
                "execution_id": row[0],
                "agent_id": row[1],
                "status": row[2],
                "output": json.loads(row[3]) if row[3] is not None else None,
                "error": row[4],
                "started_at": row[5],
                "completed_at": row[6],
                "duration": row[7],
                "token_usage": json.loads(row[8]) if row[8] else None,
            }
        )

    # Costs
    async def add_cost(self, cost: CostInfo) -> None:
        """Save a cost record."""
        conn = self._require_conn()
        await conn.execute(
            """
            INSERT INTO costs
            (execution_id, model, prompt_tokens, completion_tokens, total_tokens,
             cost, currency, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                cost.execution_id,
                cost.model,
                cost.tokens.prompt_tokens,
                cost.tokens.completion_tokens,
                cost.tokens.total_tokens,
                cost.cost,
                cost.currency,
                cost.created_at.isoformat(),
            ),
        )
        await conn.commit()

    async def get_costs(
        self,
        execution_id: str | None = None,
        model: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> PaginatedResult[CostInfo]:
        """Get cost records (newest first) with optional filters."""
        conn = self._require_conn()

        conditions = []
        params: list = []
        if execution_id:
            conditions.append("execution_id = ?")
            params.append(execution_id)
        if model:
            conditions.append("model = ?")
            params.append(model)
        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        cursor = await conn.execute(f"SELECT COUNT(*) FROM costs {where_clause}", params)
        (total,) = await cursor.fetchone()

        cursor = await conn.execute(
            f"""
            SELECT execution_id, model, prompt_tokens, completion_tokens,
                   total_tokens, cost, currency, created_at
            FROM costs
            {where_clause}
            ORDER BY created_at DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            [*params, limit, offset],
        )
        rows = await cursor.fetchall()

        data = [
            CostInfo(
                execution_id=row[0],
                model=row[1],
                tokens=TokenUsage(
                    prompt_tokens=row[2],
                    completion_tokens=row[3],
                    total_tokens=row[4],
                ),
                cost=row[5],
                currency=row[6],
                created_at=_parse_ts(row[7]),
            )
            for row in rows
        ]
        return PaginatedResult(data=data, total=total, offset=offset, limit=limit)

    async def get_total_cost(self, execution_id: str | None = None) -> float:
        """Sum of recorded costs, optionally for one execution."""
        conn = self._require_conn()
        if execution_id:
            cursor = await conn.execute(
                "SELECT COALESCE(SUM(cost), 0) FROM costs WHERE execution_id = ?",
                (execution_id,),
            )
        else:
            cursor = await conn.execute("SELECT COALESCE(SUM(cost), 0) FROM costs")
        (total,) = await cursor.fetchone()
        return float(total)

    # Traces
    async def add_trace(self, trace: Trace) -> None:
        """Save a trace tree; a later trace for the same execution replaces it."""
        conn = self._require_conn()
        await conn.execute(
            """
            INSERT OR REPLACE INTO traces (id, execution_id, data, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                trace.id,
                trace.execution_id,
                json.dumps(trace.root.to_dict(), default=str),
                trace.created_at.isoformat(),
            ),
        )
        await conn.commit()

    async def get_trace(self, execution_id: str) -> Trace | None:
        """Get the trace of a workflow execution."""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            SELECT id, execution_id, data, created_at
            FROM traces
            WHERE execution_id = ?
            """,
            (execution_id,),
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return Trace(
            id=row[0],
            execution_id=row[1],
            root=TraceNode.from_dict(json.loads(row[2])),
            created_at=_parse_ts(row[3]),
        )

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        conn = self._require_conn()
        for table in ["executions", "costs", "traces"]:
            await conn.execute(f"DELETE FROM {table}")
        await conn.commit()
