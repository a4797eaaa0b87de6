from __future__ import annotations

import asyncio
import os
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import asyncpg  # type: ignore[import-untyped]
import pytest

from jobledger.services.errors import RepositoryConflictError, RepositoryNotFoundError
from jobledger.services.records import parse_heartbeat, parse_job_result, parse_job_submission
from jobledger.services.repository import PostgresRepository

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "db" / "migrations" / "0001_init.sql"

T = TypeVar("T")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("JL_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require JL_DATABASE_URL or DATABASE_URL")
    _run(_execute(url, SCHEMA_PATH.read_text(encoding="utf-8")))
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    _run(_execute(database_url, "truncate table ledger, jobs, devices, budgets"))


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


async def _execute(database_url: str, query: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(query)
    finally:
        await conn.close()


async def _fetch(database_url: str, query: str, *args: Any) -> list[asyncpg.Record]:
    conn = await asyncpg.connect(database_url)
    try:
        return await conn.fetch(query, *args)
    finally:
        await conn.close()


def _repository(database_url: str) -> PostgresRepository:
    return PostgresRepository(
        database_url=database_url,
        min_pool_size=1,
        max_pool_size=8,
        command_timeout_seconds=10.0,
        starting_earned_cents=1000,
    )


def _heartbeat(user_id: str, **overrides: Any):
    fields = {
        "user_id": user_id,
        "url": f"https://{user_id}.ngrok.app",
        "cpu_cores": 4,
        "cpu_load": 0.0,
        "ram_total": 8.0,
        "ram_used": 2.0,
        "disk_free": 0.0,
        "status": "ACTIVE",
    }
    fields.update(overrides)
    return parse_heartbeat(**fields)


def _submission(requester: str, device_id: str, cost_usd: float):
    return parse_job_submission(
        requester=requester,
        device_id=device_id,
        filename="main.py",
        lang="python",
        code="print(1)",
        cost_usd=cost_usd,
    )


def test_heartbeat_upsert_keeps_single_row(database_url: str) -> None:
    async def scenario() -> list[asyncpg.Record]:
        repository = _repository(database_url)
        try:
            await repository.upsert_device_heartbeat(_heartbeat("device-1"))
            await repository.upsert_device_heartbeat(_heartbeat("device-1", url="https://moved.ngrok.app"))
            await repository.upsert_device_heartbeat(_heartbeat("device-1", status="BUSY"))
        finally:
            await repository.close()
        return await _fetch(database_url, "select id, url, status from devices where user_id = 'device-1'")

    rows = _run(scenario())
    assert len(rows) == 1
    assert rows[0]["url"] == "https://moved.ngrok.app"
    assert rows[0]["status"] == "BUSY"


def test_lifecycle_and_concurrent_claims(database_url: str) -> None:
    async def scenario() -> tuple[list[dict[str, Any] | None], str]:
        repository = _repository(database_url)
        try:
            await repository.upsert_device_heartbeat(_heartbeat("device-1"))
            job_id = await repository.submit_job(_submission("requester-1", "device-1", 0.25))
            claims = await asyncio.gather(*(repository.claim_next_job("device-1") for _ in range(6)))

            with pytest.raises(RepositoryNotFoundError):
                await repository.complete_job(parse_job_result(job_id="missing", stdout="", stderr=""))

            await repository.complete_job(parse_job_result(job_id=job_id, stdout="1\n", stderr=None))
            with pytest.raises(RepositoryConflictError):
                await repository.complete_job(parse_job_result(job_id=job_id, stdout="again", stderr=""))

            assert await repository.list_jobs_for_requester("requester-1") == [
                {"id": job_id, "filename": "main.py", "lang": "python", "status": "FINISHED", "stdout": "1\n", "stderr": ""}
            ]
            assert [device["user_id"] for device in await repository.list_active_devices()] == ["device-1"]
        finally:
            await repository.close()
        return claims, job_id

    claims, job_id = _run(scenario())
    claimed = [claim for claim in claims if claim is not None]
    assert len(claimed) == 1
    assert claimed[0]["id"] == job_id


def test_submit_to_unknown_device_rolls_back(database_url: str) -> None:
    async def scenario() -> None:
        repository = _repository(database_url)
        try:
            with pytest.raises(RepositoryNotFoundError):
                await repository.submit_job(_submission("requester-1", "ghost", 0.5))
        finally:
            await repository.close()

    _run(scenario())
    counts = _run(
        _fetch(
            database_url,
            """
            select
              (select count(*) from jobs) as jobs,
              (select count(*) from ledger) as ledger,
              (select count(*) from budgets) as budgets
            """,
        )
    )
    assert dict(counts[0]) == {"jobs": 0, "ledger": 0, "budgets": 0}


def test_concurrent_transfers_reconcile(database_url: str) -> None:
    users = ["alice", "bob", "carol"]

    async def scenario() -> list[dict[str, Any]]:
        repository = _repository(database_url)
        try:
            for user in users:
                await repository.upsert_device_heartbeat(_heartbeat(user))
            submissions = [
                _submission(requester, device, 0.07)
                for requester in users
                for device in users
                if requester != device
            ] * 6
            await asyncio.gather(*(repository.submit_job(submission) for submission in submissions))
            return [await repository.get_ledger_statement(user) for user in users]
        finally:
            await repository.close()

    statements = _run(scenario())
    for statement in statements:
        assert statement["reconciled"] is True
        assert statement["sent_cents"] == 7 * 12
        assert statement["received_cents"] == 7 * 12
