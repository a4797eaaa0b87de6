from typing import Any, Literal

from pydantic import BaseModel

JobLang = Literal["python", "javascript"]
JobStatus = Literal["QUEUED", "RUNNING", "FINISHED"]


class SubmitJobRequest(BaseModel):
    requester: str | None = None
    device_id: str | None = None
    filename: str | None = None
    lang: str | None = None
    code: str | None = None
    # Type-checked by the submission validator so strings and booleans are rejected.
    cost_usd: Any = None


class SubmitJobAccepted(BaseModel):
    success: bool = True
    job_id: str


class UpdateJobRequest(BaseModel):
    job_id: str | None = None
    stdout: str | None = None
    stderr: str | None = None


class JobOut(BaseModel):
    id: str
    filename: str
    lang: JobLang
    status: JobStatus
    stdout: str
    stderr: str


class ClaimedJobOut(BaseModel):
    id: str
    lang: JobLang
    code: str
    filename: str


class CheckForJobsOut(BaseModel):
    job: ClaimedJobOut | None = None
