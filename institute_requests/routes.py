from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from auth.auth_utils import REVIEWER_ROLES, require_roles
from institute_requests.models import ReviewDecision
from institute_requests.repository import InstituteRequestRepository, get_repository
from institute_requests.service import InstituteRequestService

router = APIRouter(prefix="/institute-requests", tags=["Institute Requests"])


def get_service(
    repository: InstituteRequestRepository = Depends(get_repository),
) -> InstituteRequestService:
    return InstituteRequestService(repository)


# ----------------------------
# SUBMIT REGISTRATION (PUBLIC)
# ----------------------------
@router.post("/submit", status_code=201)
def submit_request(
    payload: dict = Body(...),
    service: InstituteRequestService = Depends(get_service),
):
    return service.submit(payload)


# ----------------------------
# LIST REQUESTS (REVIEWERS)
# ----------------------------
@router.get("/all")
def get_all_requests(
    status: Optional[str] = None,
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    current_user=Depends(require_roles(*REVIEWER_ROLES)),
    service: InstituteRequestService = Depends(get_service),
):
    return service.get_all(status=status, page=page, limit=limit)


@router.get("/{request_id}")
def get_request(
    request_id: str,
    current_user=Depends(require_roles(*REVIEWER_ROLES)),
    service: InstituteRequestService = Depends(get_service),
):
    return service.get_by_id(request_id)


# ----------------------------
# REVIEW
# ----------------------------
@router.post("/{request_id}/approve")
def approve_request(
    request_id: str,
    decision: Optional[ReviewDecision] = None,
    current_user=Depends(require_roles(*REVIEWER_ROLES)),
    service: InstituteRequestService = Depends(get_service),
):
    comment = decision.review_comment if decision else None
    return service.approve(request_id, current_user["username"], comment)


@router.post("/{request_id}/reject")
def reject_request(
    request_id: str,
    decision: Optional[ReviewDecision] = None,
    current_user=Depends(require_roles(*REVIEWER_ROLES)),
    service: InstituteRequestService = Depends(get_service),
):
    comment = decision.review_comment if decision else None
    return service.reject(request_id, current_user["username"], comment)
