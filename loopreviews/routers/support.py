import logging

from fastapi import APIRouter, HTTPException, status

from ..config import settings
from ..exceptions import DeliveryError
from ..schemas import SupportRequest
from ..services import templating
from ..services.email_service import EmailService
from ..utils import is_valid_email, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["support"])


@router.post("/support")
async def contact_support(payload: SupportRequest):
    """Forward a contact-form message to the support inbox; replies go to the sender"""
    if not (payload.name and payload.email and payload.subject and payload.message):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="All fields are required")
    if not is_valid_email(payload.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email format")
    if not EmailService.is_configured():
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Email service not configured")

    received = utcnow()
    message = EmailService.build_message(
        to=settings.support_email,
        subject=f"Support Request: {payload.subject}",
        text=(f"New Support Request\n\n"
              f"Name: {payload.name}\nEmail: {payload.email}\nSubject: {payload.subject}\n\n"
              f"Message:\n{payload.message}\n\n"
              f"Received: {received:%Y-%m-%d %H:%M UTC}\nPlease respond to: {payload.email}"),
        html=templating.render_support_request(
            payload.name, payload.email, payload.subject, payload.message, received),
        from_name="Loop Review Support",
        reply_to=payload.email,
    )
    try:
        await EmailService.send(message)
    except DeliveryError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to send support email")
    return {
        "success": True,
        "message": "Your message has been sent successfully. We'll get back to you soon!",
    }
