import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..exceptions import AutomationAccessError
from ..models import Review, User, UserSession
from ..schemas import AutomationJobResponse, SchedulerRequest, TriggerRequest
from ..services.automation_service import AutomationService
from ..services.workflow_service import WorkflowService
from ..utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/automation",
    tags=["automation"],
    responses={403: {"description": "Automation requires an active Pro or Enterprise plan"}},
)

TRIGGER_EVENTS = ("positive_review", "negative_review", "neutral_review")


def _forbidden(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)


async def require_automation_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Session user on an active Pro or Enterprise plan; 403 otherwise"""
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        raise _forbidden("Not authenticated")
    session = (await db.execute(
        select(UserSession).where(UserSession.session_token == token)
    )).scalar_one_or_none()
    if session is None or ensure_utc(session.expires_at) < utcnow():
        raise _forbidden("Invalid session")
    user = await db.get(User, session.user_id)
    try:
        AutomationService.check_access(user)
    except AutomationAccessError as e:
        raise _forbidden(str(e))
    return user


async def _require_own_review(db: AsyncSession, user: User, review_id: int) -> None:
    owned = await db.execute(
        select(Review.id).where(Review.id == review_id, Review.user_id == user.id))
    if owned.scalar_one_or_none() is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review not found")


@router.post("/scheduler")
async def schedule(
    payload: SchedulerRequest,
    current_user: User = Depends(require_automation_user),
    db: AsyncSession = Depends(get_db),
):
    """Queue follow-up jobs for one review, or for the account's recent reviews"""
    if not payload.user_id and not payload.review_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Either userId or reviewId is required")

    if payload.review_id:
        await _require_own_review(db, current_user, payload.review_id)
        result = await AutomationService.schedule_for_review(db, payload.review_id)
    else:
        if payload.user_id != current_user.id:
            raise _forbidden("Cannot schedule automation for another account")
        result = await AutomationService.schedule_for_user(db, current_user.id, payload.event_type)

    return {
        "success": True,
        "data": {"processedJobs": result.get("jobsScheduled", 0), "results": [result]},
    }


@router.get("/scheduler")
async def run_scheduler(
    action: str = Query("process_pending"),
    testMode: bool = Query(False),
    current_user: User = Depends(require_automation_user),
    db: AsyncSession = Depends(get_db),
):
    if action == "process_pending":
        return {"success": True, "data": await AutomationService.process_pending(db, test_mode=testMode)}
    if action == "list_pending":
        pending = await AutomationService.list_pending(db, user_id=current_user.id)
        return {
            "success": True,
            "data": {
                "pendingJobs": [
                    AutomationJobResponse.model_validate(job).model_dump(mode="json")
                    for job in pending["pendingJobs"]
                ],
                "count": pending["count"],
            },
        }
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")


@router.post("/trigger")
async def trigger(
    payload: TriggerRequest,
    current_user: User = Depends(require_automation_user),
    db: AsyncSession = Depends(get_db),
):
    """Run rating-driven workflows for one review or for a rating class"""
    if not payload.review_id and not payload.event_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Either reviewId or eventType is required")

    if payload.review_id:
        await _require_own_review(db, current_user, payload.review_id)
        result = await WorkflowService.trigger_for_review(db, payload.review_id, payload.test_mode)
    else:
        if payload.event_type not in TRIGGER_EVENTS:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid eventType")
        result = await WorkflowService.trigger_for_event(
            db, current_user.id, payload.event_type, payload.test_mode)

    return {
        "success": True,
        "data": {
            "processedWorkflows": result.get("workflowsTriggered", 0),
            "results": [result],
            "testMode": payload.test_mode,
        },
    }


@router.get("/trigger")
async def pending_automations(
    eventType: Optional[str] = Query(None),
    processAll: bool = Query(False),
    current_user: User = Depends(require_automation_user),
    db: AsyncSession = Depends(get_db),
):
    if processAll:
        return {"success": True, "data": await AutomationService.process_pending(db)}
    count = await WorkflowService.pending_count(db, current_user.id, eventType)
    return {
        "success": True,
        "data": {"pendingAutomations": count, "eventType": eventType or "all"},
    }
