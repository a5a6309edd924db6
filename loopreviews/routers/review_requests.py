import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..exceptions import ConfigurationError
from ..models import User
from ..schemas import ReviewRequestCreate, ReviewRequestResponse, SendRequest
from ..services.request_service import RequestService
from ..services.session_service import SessionService
from ..services.sms_service import SMSService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["review-requests"],
    responses={
        401: {"description": "Not authenticated"},
        404: {"description": "Review link or template not configured"},
    },
)


@router.get("/review-requests")
async def list_review_requests(
    contactType: Optional[str] = Query(None),
    query: Optional[str] = Query(None),
    dateFilter: Optional[str] = Query(None),
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    requests = await RequestService.list_requests(
        db, current_user.id, contact_type=contactType, query=query, date_filter=dateFilter)
    return {
        "success": True,
        "data": [ReviewRequestResponse.model_validate(r).model_dump(mode="json") for r in requests],
    }


@router.post("/review-requests")
async def create_review_requests(
    payload: ReviewRequestCreate,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await RequestService.record_requests(
        db,
        current_user.id,
        request_type=payload.type,
        contacts=payload.contacts,
        content=payload.content,
        subject_line=payload.subject_line,
        from_email=payload.from_email,
        sms_sender_name=payload.sms_sender_name,
    )
    return {
        "success": True,
        "data": {
            "requests_sent": len(rows),
            "requests": [ReviewRequestResponse.model_validate(r).model_dump(mode="json") for r in rows],
        },
    }


@router.post("/send-sms")
async def send_sms(
    payload: SendRequest,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Send the SMS review request to each contact through Twilio"""
    data = await RequestService.send_sms(db, current_user.id, payload.contacts)
    return {"success": True, "data": data}


@router.post("/send-email")
async def send_email(
    payload: SendRequest,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = await RequestService.send_email(db, current_user.id, payload.contacts)
    return {"success": True, "data": data}


@router.get("/sms/numbers")
async def sms_numbers(
    current_user: User = Depends(SessionService.get_current_user),
):
    try:
        numbers = await SMSService.list_numbers()
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return {"success": True, "data": numbers}
