from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any
from uuid import uuid4

import asyncpg  # type: ignore[import-untyped]

from jobledger.core.config import get_settings
from jobledger.services.errors import (
    RepositoryConflictError,
    RepositoryError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)
from jobledger.services.ledger import (
    BudgetTransfer,
    budget_deltas,
    build_ledger_statement,
    default_budget,
    starting_earned_for,
)
from jobledger.services.records import DeviceHeartbeat, JobResult, JobSubmission
from jobledger.services.store import InMemoryRepository

__all__ = [
    "InMemoryRepository",
    "PostgresRepository",
    "RepositoryConflictError",
    "RepositoryError",
    "RepositoryNotFoundError",
    "RepositoryUnavailableError",
    "RepositoryValidationError",
    "get_repository",
]

logger = logging.getLogger(__name__)


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float,
        starting_earned_cents: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self.starting_earned_cents = starting_earned_cents
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def upsert_device_heartbeat(self, heartbeat: DeviceHeartbeat) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            insert into devices (
              id,
              user_id,
              url,
              cpu_cores,
              cpu_load,
              ram_total,
              ram_used,
              disk_free,
              status,
              last_seen
            )
            values ($1, $2, $3, $4, $5, $6, $7, $8, $9, now())
            on conflict (user_id) do update
            set
              id = excluded.id,
              url = excluded.url,
              cpu_cores = excluded.cpu_cores,
              cpu_load = excluded.cpu_load,
              ram_total = excluded.ram_total,
              ram_used = excluded.ram_used,
              disk_free = excluded.disk_free,
              status = excluded.status,
              last_seen = excluded.last_seen
            """,
            str(uuid4()),
            heartbeat.user_id,
            heartbeat.url,
            heartbeat.cpu_cores,
            heartbeat.cpu_load,
            heartbeat.ram_total,
            heartbeat.ram_used,
            heartbeat.disk_free,
            heartbeat.status,
        )

    async def list_active_devices(self) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select url, cpu_cores, cpu_load, ram_total, ram_used, disk_free, user_id
            from devices
            where status = 'ACTIVE'
            order by user_id asc
            """
        )
        return [dict(row) for row in rows]

    async def submit_job(self, submission: JobSubmission) -> str:
        pool = await self._get_pool()
        job_id = str(uuid4())
        transfer = BudgetTransfer(
            from_user=submission.requester,
            to_user=submission.device_id,
            amount_cents=submission.amount_cents,
        )

        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    insert into jobs (
                      id,
                      requester,
                      device_id,
                      filename,
                      lang,
                      code,
                      status,
                      cost_usd,
                      stdout,
                      stderr
                    )
                    values ($1, $2, $3, $4, $5, $6, 'QUEUED', $7, '', '')
                    """,
                    job_id,
                    submission.requester,
                    submission.device_id,
                    submission.filename,
                    submission.lang,
                    submission.code,
                    submission.cost_usd,
                )

                device = await conn.fetchval(
                    "update devices set status = 'BUSY' where user_id = $1 returning user_id",
                    submission.device_id,
                )
                if not device:
                    raise RepositoryNotFoundError("device not found")

                await conn.execute(
                    """
                    insert into ledger (id, job_id, from_user, to_user, amount_cents, created_at)
                    values ($1, $2, $3, $4, $5, extract(epoch from now())::bigint)
                    """,
                    str(uuid4()),
                    job_id,
                    transfer.from_user,
                    transfer.to_user,
                    transfer.amount_cents,
                )
                await self._apply_budget_transfer(conn=conn, transfer=transfer)

        logger.info(
            "job submitted job_id=%s requester=%s device_id=%s amount_cents=%s",
            job_id,
            submission.requester,
            submission.device_id,
            submission.amount_cents,
        )
        return job_id

    async def claim_next_job(self, device_user_id: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            with next_job as (
              select id
              from jobs
              where device_id = $1 and status = 'QUEUED'
              order by created_at asc, id asc
              limit 1
              for update skip locked
            )
            update jobs j
            set
              status = 'RUNNING',
              claimed_at = now()
            from next_job
            where j.id = next_job.id
            returning j.id, j.lang, j.code, j.filename
            """,
            device_user_id,
        )
        if not row:
            return None
        return dict(row)

    async def complete_job(self, result: JobResult) -> None:
        pool = await self._get_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                device_id = await conn.fetchval(
                    """
                    update jobs
                    set
                      stdout = $2,
                      stderr = $3,
                      status = 'FINISHED',
                      finished_at = now()
                    where id = $1 and status = 'RUNNING'
                    returning device_id
                    """,
                    result.job_id,
                    result.stdout,
                    result.stderr,
                )
                if device_id is None:
                    job_status = await conn.fetchval("select status from jobs where id = $1", result.job_id)
                    if job_status is None:
                        raise RepositoryNotFoundError("job not found")
                    raise RepositoryConflictError(f"job is not running (status={job_status})")

                await conn.execute(
                    "update devices set status = 'ACTIVE' where user_id = $1",
                    device_id,
                )

    async def list_jobs_for_requester(self, user_id: str) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select id, filename, lang, status, stdout, stderr
            from jobs
            where requester = $1
            order by created_at asc, id asc
            """,
            user_id,
        )
        return [dict(row) for row in rows]

    async def get_budget(self, user_id: str) -> dict[str, int]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            "select spent_cents, earned_cents from budgets where user_id = $1",
            user_id,
        )
        if not row:
            return default_budget(self.starting_earned_cents)
        return {"spent_cents": row["spent_cents"], "earned_cents": row["earned_cents"]}

    async def get_ledger_statement(self, user_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                entry_rows = await conn.fetch(
                    """
                    select id, job_id, from_user, to_user, amount_cents, created_at
                    from ledger
                    where from_user = $1 or to_user = $1
                    order by created_at asc, id asc
                    """,
                    user_id,
                )
                budget_row = await conn.fetchrow(
                    """
                    select spent_cents, earned_cents, starting_earned_cents
                    from budgets
                    where user_id = $1
                    """,
                    user_id,
                )
        return build_ledger_statement(
            user_id,
            [dict(row) for row in entry_rows],
            dict(budget_row) if budget_row else None,
            default_starting_earned_cents=self.starting_earned_cents,
        )

    async def _apply_budget_transfer(self, *, conn: asyncpg.Connection, transfer: BudgetTransfer) -> None:
        # Rows are touched in user_id order so opposite transfers cannot deadlock.
        for user_id in sorted({transfer.from_user, transfer.to_user}):
            starting_earned = starting_earned_for(user_id, transfer, self.starting_earned_cents)
            await conn.execute(
                """
                insert into budgets (user_id, spent_cents, earned_cents, starting_earned_cents)
                values ($1, 0, $2, $2)
                on conflict (user_id) do nothing
                """,
                user_id,
                starting_earned,
            )

        for user_id in sorted({transfer.from_user, transfer.to_user}):
            spent_delta, earned_delta = budget_deltas(user_id, transfer)
            await conn.execute(
                """
                update budgets
                set
                  spent_cents = spent_cents + $2,
                  earned_cents = earned_cents + $3
                where user_id = $1
                """,
                user_id,
                spent_delta,
                earned_delta,
            )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("JL_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc


@lru_cache
def get_repository() -> PostgresRepository | InMemoryRepository:
    settings = get_settings()
    if settings.repository_backend == "memory":
        return InMemoryRepository(starting_earned_cents=settings.budget_starting_earned_cents)
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
        starting_earned_cents=settings.budget_starting_earned_cents,
    )
