from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from jobledger.services.errors import RepositoryValidationError
from jobledger.services.ledger import MAX_COST_USD, cost_usd_to_cents

DEVICE_STATUSES = {"ACTIVE", "BUSY"}
JOB_LANGS = {"python", "javascript"}


@dataclass(slots=True)
class DeviceHeartbeat:
    user_id: str
    url: str
    cpu_cores: int
    cpu_load: float
    ram_total: float
    ram_used: float
    disk_free: float
    status: str


@dataclass(slots=True)
class JobSubmission:
    requester: str
    device_id: str
    filename: str
    lang: str
    code: str
    cost_usd: float
    amount_cents: int


@dataclass(slots=True)
class JobResult:
    job_id: str
    stdout: str
    stderr: str


def parse_heartbeat(
    *,
    user_id: Any,
    url: Any,
    cpu_cores: Any,
    cpu_load: Any,
    ram_total: Any,
    ram_used: Any,
    disk_free: Any,
    status: Any,
) -> DeviceHeartbeat:
    """Validate a heartbeat using presence checks.

    Zero is a legitimate reading for load, used memory and free disk, so only
    absent, blank or non-finite values count as missing.
    """
    texts = {"user_id": coerce_text(user_id), "url": coerce_text(url), "status": coerce_text(status)}
    numbers = {
        "cpu_cores": coerce_number(cpu_cores),
        "cpu_load": coerce_number(cpu_load),
        "ram_total": coerce_number(ram_total),
        "ram_used": coerce_number(ram_used),
        "disk_free": coerce_number(disk_free),
    }
    _require_present({**texts, **numbers})

    invalid = sorted(name for name, value in numbers.items() if value < 0)
    if invalid:
        raise RepositoryValidationError(f"fields must be non-negative: {', '.join(invalid)}")
    if numbers["cpu_cores"] < 1 or numbers["cpu_cores"] != int(numbers["cpu_cores"]):
        raise RepositoryValidationError("cpu_cores must be a positive integer")
    if numbers["ram_total"] <= 0:
        raise RepositoryValidationError("ram_total must be greater than zero")

    normalized_status = texts["status"].upper()
    if normalized_status not in DEVICE_STATUSES:
        raise RepositoryValidationError("status must be one of: ACTIVE, BUSY")

    return DeviceHeartbeat(
        user_id=texts["user_id"],
        url=texts["url"],
        cpu_cores=int(numbers["cpu_cores"]),
        cpu_load=float(numbers["cpu_load"]),
        ram_total=float(numbers["ram_total"]),
        ram_used=float(numbers["ram_used"]),
        disk_free=float(numbers["disk_free"]),
        status=normalized_status,
    )


def parse_job_submission(
    *,
    requester: Any,
    device_id: Any,
    filename: Any,
    lang: Any,
    code: Any,
    cost_usd: Any,
) -> JobSubmission:
    texts = {
        "requester": coerce_text(requester),
        "device_id": coerce_text(device_id),
        "filename": coerce_text(filename),
        "lang": coerce_text(lang),
        "code": code if isinstance(code, str) and code.strip() else None,
    }
    _require_present({**texts, "cost_usd": cost_usd})

    if texts["lang"] not in JOB_LANGS:
        raise RepositoryValidationError("lang must be either 'python' or 'javascript'")

    if isinstance(cost_usd, bool) or not isinstance(cost_usd, (int, float)):
        raise RepositoryValidationError("cost_usd must be a finite number")
    try:
        finite = math.isfinite(cost_usd)
    except OverflowError:
        raise RepositoryValidationError("cost_usd is out of range") from None
    if not finite:
        raise RepositoryValidationError("cost_usd must be a finite number")
    if cost_usd < 0:
        raise RepositoryValidationError("cost_usd must be non-negative")
    if cost_usd > MAX_COST_USD:
        raise RepositoryValidationError("cost_usd is out of range")

    return JobSubmission(
        requester=texts["requester"],
        device_id=texts["device_id"],
        filename=texts["filename"],
        lang=texts["lang"],
        code=texts["code"],
        cost_usd=float(cost_usd),
        amount_cents=cost_usd_to_cents(float(cost_usd)),
    )


def parse_job_result(*, job_id: Any, stdout: Any, stderr: Any) -> JobResult:
    normalized_job_id = coerce_text(job_id)
    if not normalized_job_id:
        raise RepositoryValidationError("Missing job_id")
    return JobResult(
        job_id=normalized_job_id,
        stdout=stdout if isinstance(stdout, str) else "",
        stderr=stderr if isinstance(stderr, str) else "",
    )


def coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return str(value)


def coerce_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _require_present(fields: dict[str, Any]) -> None:
    missing = [name for name, value in fields.items() if value is None]
    if missing:
        raise RepositoryValidationError(f"Missing required fields: {', '.join(missing)}")
