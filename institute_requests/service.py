"""
Institute registration workflow.

A submission is validated, stored as Pending and reserves its natural keys
(AISHE code and institute email) through unique indexes, so a duplicate
fails at insert time rather than on a separate lookup. Reviewers approve or
reject Pending requests; both are compare-and-set on the current status.
Rejection releases the natural keys, approval keeps them and provisions the
institute with its login.
"""

import logging
import math
import random
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from auth.auth_utils import hash_password
from errors import DuplicateError, InvalidTransitionError, NotFoundError, ServerError, ValidationError
from institute_requests.models import (
    InstituteRequestCreate,
    InstituteRequestOut,
    RequestStatus,
)
from institute_requests.repository import InstituteRequestRepository

logger = logging.getLogger(__name__)

RESOURCE = "Institute request"

# attempts at a free generated institute code before giving up
MAX_CODE_ATTEMPTS = 5
GENERATED_KEYS = ("code", "username")

# page size when a page is asked for without a limit
DEFAULT_PAGE_SIZE = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _first_error(exc: PydanticValidationError) -> ValidationError:
    """Reduce pydantic's error list to the first offending field."""
    err = exc.errors(include_url=False)[0]
    field = ".".join(str(p) for p in err["loc"]) or None
    if err["type"] == "missing":
        message = f"{field} is required"
    elif field:
        message = f"Invalid {field}: {err['msg']}"
    else:
        message = err["msg"]
    return ValidationError(message, field=field)


def generate_institute_id(university_name: str, aishe_code: str) -> str:
    name_prefix = university_name[:3].upper()
    code_prefix = aishe_code[:3].upper()
    return f"{name_prefix}{code_prefix}{random.randint(1000, 9999)}"


def generate_password() -> str:
    return secrets.token_hex(8)


def to_public(doc: dict) -> Dict[str, Any]:
    data = dict(doc)
    data["id"] = str(data.pop("_id"))
    if data.get("linkedInstitute") is not None:
        data["linkedInstitute"] = str(data["linkedInstitute"])
    return InstituteRequestOut.model_validate(data).model_dump(by_alias=True, mode="json")


class InstituteRequestService:
    def __init__(self, repository: InstituteRequestRepository):
        self.repository = repository

    # ----------------------------
    # SUBMIT
    # ----------------------------
    def submit(self, payload: Any) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")

        try:
            data = InstituteRequestCreate.model_validate(payload)
        except PydanticValidationError as e:
            error = _first_error(e)
            logger.info(f"Rejected institute submission: {error.message}")
            raise error

        now = _utcnow()
        doc = data.model_dump(by_alias=True)
        doc["naacGrade"] = doc["naacGrade"] or ""
        doc.update({
            "status": RequestStatus.PENDING.value,
            "createdAt": now,
            "updatedAt": now,
            # reservation fields backing the unique indexes, dropped on rejection
            "activeAisheCode": data.aishe_code.upper(),
            "activeEmail": data.email,
        })

        try:
            request_id = self.repository.insert_request(doc)
        except DuplicateError as e:
            logger.warning(f"Duplicate institute submission on {e.key}: {data.aishe_code}")
            raise

        logger.info(f"Institute request {request_id} submitted for {data.university_name}")
        return {
            "success": True,
            "message": "Institute registration request submitted successfully",
            "requestId": request_id,
        }

    # ----------------------------
    # READ
    # ----------------------------
    def get_all(
        self,
        status: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        if status and status != "all":
            valid = [s.value for s in RequestStatus]
            if status not in valid:
                raise ValidationError(f"status must be one of {', '.join(valid)}", field="status")
        else:
            status = None

        if page and not limit:
            limit = DEFAULT_PAGE_SIZE
        page = page or 1
        skip = (page - 1) * limit if limit else 0
        docs, total = self.repository.list_requests(status=status, skip=skip, limit=limit)

        return {
            "success": True,
            "data": [to_public(d) for d in docs],
            "pagination": {
                "current": page,
                "pages": math.ceil(total / limit) if limit else 1,
                "total": total,
            },
        }

    def get_by_id(self, request_id: str) -> Dict[str, Any]:
        doc = self.repository.get_request(request_id)
        if not doc:
            raise NotFoundError(RESOURCE, request_id)
        return {"success": True, "data": to_public(doc)}

    # ----------------------------
    # REVIEW
    # ----------------------------
    def _require_pending(self, request_id: str) -> dict:
        doc = self.repository.get_request(request_id)
        if not doc:
            raise NotFoundError(RESOURCE, request_id)
        if doc["status"] != RequestStatus.PENDING.value:
            raise InvalidTransitionError("Request has already been reviewed", doc["status"])
        return doc

    def _lost_race(self, request_id: str) -> Exception:
        doc = self.repository.get_request(request_id)
        if not doc:
            return NotFoundError(RESOURCE, request_id)
        return InvalidTransitionError("Request has already been reviewed", doc["status"])

    def _provision(self, request: dict, request_id: str, reviewer: str, now: datetime):
        """
        Create the institute and its login under a fresh generated code.
        Returns ``(institute_id, code, password)``; nothing is left behind
        when it raises.
        """
        password = generate_password()

        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_institute_id(request["universityName"], request["aisheCode"])
            try:
                institute_id = self.repository.insert_institute({
                    "name": request["universityName"],
                    "code": code,
                    "aisheCode": request["aisheCode"],
                    "type": request["instituteType"],
                    "email": request["email"],
                    "address": {
                        "line1": request["address"],
                        "state": request["state"],
                        "district": request["district"],
                        "country": "India",
                    },
                    "headOfInstitute": request["headOfInstitute"],
                    "modalOfficer": request["modalOfficer"],
                    "naacGrading": request["naacGrading"],
                    "naacGrade": request.get("naacGrade", ""),
                    "status": "Active",
                    "approvedBy": reviewer,
                    "approvedAt": now,
                    "requestId": request_id,
                })
            except DuplicateError as e:
                if e.key in GENERATED_KEYS:
                    logger.info(f"Generated institute code {code} already taken, retrying")
                    continue
                raise

            try:
                self.repository.insert_user({
                    "username": code,
                    "password": hash_password(password),
                    "role": "institute",
                    "institute_id": institute_id,
                })
            except DuplicateError as e:
                self.repository.delete_provisioned(institute_id, None)
                if e.key in GENERATED_KEYS:
                    logger.info(f"Username {code} already taken, retrying")
                    continue
                raise
            except Exception:
                self.repository.delete_provisioned(institute_id, None)
                raise

            return institute_id, code, password

        logger.error(f"No free institute code for request {request_id} after {MAX_CODE_ATTEMPTS} attempts")
        raise ServerError("Could not generate a unique institute code")

    def approve(
        self,
        request_id: str,
        reviewer: str,
        review_comment: Optional[str] = None,
    ) -> Dict[str, Any]:
        request = self._require_pending(request_id)
        now = _utcnow()

        institute_id, code, password = self._provision(request, request_id, reviewer, now)

        try:
            updated = self.repository.transition(
                request_id,
                RequestStatus.PENDING,
                {
                    "status": RequestStatus.APPROVED.value,
                    "reviewedBy": reviewer,
                    "reviewedAt": now,
                    "reviewComment": review_comment,
                    "generatedInstituteId": code,
                    "linkedInstitute": institute_id,
                    "updatedAt": now,
                },
            )
        except Exception:
            # request is still Pending, so the approval must be retryable
            self.repository.delete_provisioned(institute_id, code)
            raise

        if updated is None:
            # another reviewer got there between the check and the update
            self.repository.delete_provisioned(institute_id, code)
            raise self._lost_race(request_id)

        logger.info(f"Institute request {request_id} approved by {reviewer} as {code}")
        return {
            "success": True,
            "message": "Institute request approved successfully",
            "institute": {
                "id": institute_id,
                "name": request["universityName"],
                "code": code,
            },
            # shown once; only the hash is stored
            "credentials": {
                "username": code,
                "password": password,
            },
        }

    def reject(self, request_id: str, reviewer: str, review_comment: Optional[str]) -> Dict[str, Any]:
        if not review_comment or not review_comment.strip():
            raise ValidationError("Comment is required for rejection", field="reviewComment")

        now = _utcnow()
        updated = self.repository.transition(
            request_id,
            RequestStatus.PENDING,
            {
                "status": RequestStatus.REJECTED.value,
                "reviewedBy": reviewer,
                "reviewedAt": now,
                "reviewComment": review_comment.strip(),
                "updatedAt": now,
            },
            unset=("activeAisheCode", "activeEmail"),
        )
        if updated is None:
            raise self._lost_race(request_id)

        logger.info(f"Institute request {request_id} rejected by {reviewer}")
        return {
            "success": True,
            "message": "Institute request rejected successfully",
        }
