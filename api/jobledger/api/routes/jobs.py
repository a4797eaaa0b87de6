import logging

from fastapi import APIRouter, Depends, HTTPException, status

from jobledger.core.telemetry import job_span, set_job_attributes
from jobledger.schemas.devices import SuccessOut
from jobledger.schemas.jobs import (
    CheckForJobsOut,
    ClaimedJobOut,
    JobOut,
    SubmitJobAccepted,
    SubmitJobRequest,
    UpdateJobRequest,
)
from jobledger.services.records import parse_job_result, parse_job_submission
from jobledger.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/jobs/{user_id}", response_model=list[JobOut])
async def list_jobs(user_id: str, repository=Depends(get_repository)) -> list[JobOut]:
    rows = await repository.list_jobs_for_requester(user_id)
    return [JobOut(**row) for row in rows]


@router.get("/check-for-jobs/{user_id}", response_model=CheckForJobsOut)
async def check_for_jobs(user_id: str, repository=Depends(get_repository)) -> CheckForJobsOut:
    with job_span("job.claim", device_id=user_id) as span:
        job = await repository.claim_next_job(user_id)
        if job is None:
            return CheckForJobsOut(job=None)
        set_job_attributes(span, id=job["id"])

    logger.info("job claimed id=%s device_id=%s", job["id"], user_id)
    return CheckForJobsOut(job=ClaimedJobOut(**job))


@router.post("/submit-job", response_model=SubmitJobAccepted)
async def submit_job(payload: SubmitJobRequest, repository=Depends(get_repository)) -> SubmitJobAccepted:
    try:
        submission = parse_job_submission(**payload.model_dump())
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    with job_span(
        "job.submit",
        device_id=submission.device_id,
        requester=submission.requester,
        amount_cents=submission.amount_cents,
    ) as span:
        try:
            job_id = await repository.submit_job(submission)
        except RepositoryNotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        set_job_attributes(span, id=job_id)

    logger.info(
        "job submitted id=%s device_id=%s amount_cents=%s",
        job_id,
        submission.device_id,
        submission.amount_cents,
    )
    return SubmitJobAccepted(job_id=job_id)


@router.post("/update-job", response_model=SuccessOut)
async def update_job(payload: UpdateJobRequest, repository=Depends(get_repository)) -> SuccessOut:
    try:
        result = parse_job_result(**payload.model_dump())
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    with job_span("job.complete", id=result.job_id):
        try:
            await repository.complete_job(result)
        except RepositoryNotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        except RepositoryConflictError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    logger.info("job finished id=%s", result.job_id)
    return SuccessOut()
