from __future__ import annotations

import asyncio
import copy
import itertools
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from jobledger.services.errors import RepositoryConflictError, RepositoryNotFoundError
from jobledger.services.ledger import (
    DEFAULT_STARTING_EARNED_CENTS,
    BudgetTransfer,
    budget_deltas,
    build_ledger_statement,
    default_budget,
    starting_earned_for,
)
from jobledger.services.records import DeviceHeartbeat, JobResult, JobSubmission

logger = logging.getLogger(__name__)

DEVICE_PROJECTION = ("url", "cpu_cores", "cpu_load", "ram_total", "ram_used", "disk_free", "user_id")
JOB_PROJECTION = ("id", "filename", "lang", "status", "stdout", "stderr")
CLAIM_PROJECTION = ("id", "lang", "code", "filename")


class InMemoryRepository:
    """Process-local repository for development and tests.

    Mutations run one at a time under an asyncio lock and are rolled back to a
    snapshot when they raise, mirroring the transactions of the Postgres
    repository.
    """

    def __init__(self, starting_earned_cents: int = DEFAULT_STARTING_EARNED_CENTS) -> None:
        self.starting_earned_cents = starting_earned_cents
        self.devices: dict[str, dict[str, Any]] = {}
        self.jobs: dict[str, dict[str, Any]] = {}
        self.ledger: list[dict[str, Any]] = []
        self.budgets: dict[str, dict[str, Any]] = {}
        self._sequence = itertools.count(1)
        self._lock = asyncio.Lock()

    async def close(self) -> None:
        return None

    async def upsert_device_heartbeat(self, heartbeat: DeviceHeartbeat) -> None:
        async with self._transaction():
            self.devices[heartbeat.user_id] = {
                "id": str(uuid4()),
                "user_id": heartbeat.user_id,
                "url": heartbeat.url,
                "cpu_cores": heartbeat.cpu_cores,
                "cpu_load": heartbeat.cpu_load,
                "ram_total": heartbeat.ram_total,
                "ram_used": heartbeat.ram_used,
                "disk_free": heartbeat.disk_free,
                "status": heartbeat.status,
                "last_seen": datetime.now(timezone.utc),
            }

    async def list_active_devices(self) -> list[dict[str, Any]]:
        rows = sorted(
            (device for device in self.devices.values() if device["status"] == "ACTIVE"),
            key=lambda device: device["user_id"],
        )
        return [_project(row, DEVICE_PROJECTION) for row in rows]

    async def submit_job(self, submission: JobSubmission) -> str:
        job_id = str(uuid4())
        transfer = BudgetTransfer(
            from_user=submission.requester,
            to_user=submission.device_id,
            amount_cents=submission.amount_cents,
        )

        async with self._transaction():
            self.jobs[job_id] = {
                "id": job_id,
                "requester": submission.requester,
                "device_id": submission.device_id,
                "filename": submission.filename,
                "lang": submission.lang,
                "code": submission.code,
                "status": "QUEUED",
                "cost_usd": submission.cost_usd,
                "stdout": "",
                "stderr": "",
                "sequence": next(self._sequence),
                "created_at": datetime.now(timezone.utc),
                "claimed_at": None,
                "finished_at": None,
            }

            device = self.devices.get(submission.device_id)
            if device is None:
                raise RepositoryNotFoundError("device not found")
            device["status"] = "BUSY"

            self.ledger.append(
                {
                    "id": str(uuid4()),
                    "job_id": job_id,
                    "from_user": transfer.from_user,
                    "to_user": transfer.to_user,
                    "amount_cents": transfer.amount_cents,
                    "created_at": int(time.time()),
                }
            )
            self._apply_budget_transfer(transfer)

        logger.info(
            "job submitted job_id=%s requester=%s device_id=%s amount_cents=%s",
            job_id,
            submission.requester,
            submission.device_id,
            submission.amount_cents,
        )
        return job_id

    async def claim_next_job(self, device_user_id: str) -> dict[str, Any] | None:
        async with self._transaction():
            queued = [
                job
                for job in self.jobs.values()
                if job["device_id"] == device_user_id and job["status"] == "QUEUED"
            ]
            if not queued:
                return None
            job = min(queued, key=lambda row: (row["sequence"], row["id"]))
            job["status"] = "RUNNING"
            job["claimed_at"] = datetime.now(timezone.utc)
            return _project(job, CLAIM_PROJECTION)

    async def complete_job(self, result: JobResult) -> None:
        async with self._transaction():
            job = self.jobs.get(result.job_id)
            if job is None:
                raise RepositoryNotFoundError("job not found")
            if job["status"] != "RUNNING":
                raise RepositoryConflictError(f"job is not running (status={job['status']})")

            job["stdout"] = result.stdout
            job["stderr"] = result.stderr
            job["status"] = "FINISHED"
            job["finished_at"] = datetime.now(timezone.utc)

            device = self.devices.get(job["device_id"])
            if device is not None:
                device["status"] = "ACTIVE"

    async def list_jobs_for_requester(self, user_id: str) -> list[dict[str, Any]]:
        rows = sorted(
            (job for job in self.jobs.values() if job["requester"] == user_id),
            key=lambda job: (job["sequence"], job["id"]),
        )
        return [_project(row, JOB_PROJECTION) for row in rows]

    async def get_budget(self, user_id: str) -> dict[str, int]:
        budget = self.budgets.get(user_id)
        if budget is None:
            return default_budget(self.starting_earned_cents)
        return {"spent_cents": budget["spent_cents"], "earned_cents": budget["earned_cents"]}

    async def get_ledger_statement(self, user_id: str) -> dict[str, Any]:
        async with self._lock:
            entries = [
                dict(entry)
                for entry in self.ledger
                if entry["from_user"] == user_id or entry["to_user"] == user_id
            ]
            budget = self.budgets.get(user_id)
            budget = dict(budget) if budget is not None else None
        return build_ledger_statement(
            user_id,
            entries,
            budget,
            default_starting_earned_cents=self.starting_earned_cents,
        )

    def _apply_budget_transfer(self, transfer: BudgetTransfer) -> None:
        for user_id in sorted({transfer.from_user, transfer.to_user}):
            if user_id not in self.budgets:
                starting_earned = starting_earned_for(user_id, transfer, self.starting_earned_cents)
                self.budgets[user_id] = {
                    "user_id": user_id,
                    "spent_cents": 0,
                    "earned_cents": starting_earned,
                    "starting_earned_cents": starting_earned,
                }
            spent_delta, earned_delta = budget_deltas(user_id, transfer)
            self.budgets[user_id]["spent_cents"] += spent_delta
            self.budgets[user_id]["earned_cents"] += earned_delta

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        async with self._lock:
            snapshot = copy.deepcopy((self.devices, self.jobs, self.ledger, self.budgets))
            try:
                yield
            except BaseException:
                self.devices, self.jobs, self.ledger, self.budgets = snapshot
                raise


def _project(row: dict[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    return {field: row[field] for field in fields}
