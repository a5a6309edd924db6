"""
Message templates: defaults, placeholder substitution and the HTML email body.

Templates accept two placeholder dialects, ``{{customerName}}`` style and the
older ``[Name]`` style; both are substituted everywhere.
"""
import html
from datetime import datetime
from typing import Optional

DEFAULT_EMAIL_SUBJECT = "How was your experience with [Company]?"
DEFAULT_EMAIL_CONTENT = (
    "Hi [Name],\n\n"
    "We hope you enjoyed your experience with [Company]. Could you take 30 seconds to share your thoughts?\n\n"
    "Your feedback helps us improve and lets others know what to expect.\n\n"
    "Leave a review: [reviewUrl]\n\n"
    "Thanks for your time,\n"
    "The [Company] Team"
)
DEFAULT_FROM_EMAIL = "hello@yourbusiness.com"
DEFAULT_SMS_CONTENT = (
    "Hi [Name], how was your experience with [Company]?\n"
    "We'd love your quick feedback: [reviewUrl]\n\n"
)
DEFAULT_SMS_SENDER = "Your Company"
AUTOMATION_SUBJECT = "We'd love your feedback!"
FALLBACK_REVIEW_URL = "https://your-review-link.com"


def personalize(
    text: Optional[str],
    customer_name: str,
    company_name: str,
    review_url: Optional[str] = None,
    rating: Optional[int] = None,
) -> str:
    """Substitute customer, company, link and rating placeholders."""
    if not text:
        return ""
    result = (
        text.replace("{{customerName}}", customer_name)
        .replace("{{companyName}}", company_name)
        .replace("[Name]", customer_name)
        .replace("[Company]", company_name)
    )
    if review_url is not None:
        result = result.replace("{{reviewUrl}}", review_url).replace("[reviewUrl]", review_url)
    if rating is not None:
        result = result.replace("{{rating}}", str(rating))
    return result


def trackable_url(review_url: Optional[str], customer_id: Optional[str]) -> str:
    if not review_url:
        return FALLBACK_REVIEW_URL
    return f"{review_url}?cid={customer_id}" if customer_id else review_url


def render_email_html(
    message: str,
    customer_name: str,
    company_name: str,
    review_url: Optional[str] = None,
) -> str:
    """Wrap a plain-text message in the branded review-request layout."""
    paragraphs = "".join(
        f'<p style="margin: 0 0 16px; color: #374151;">{html.escape(block).replace(chr(10), "<br>")}</p>'
        for block in message.split("\n\n")
        if block.strip()
    )
    button = ""
    if review_url:
        button = (
            '<div style="text-align: center; margin: 32px 0;">'
            f'<a href="{html.escape(review_url, quote=True)}" '
            'style="background: linear-gradient(135deg, #8b5cf6, #6366f1); color: #ffffff; '
            'padding: 14px 32px; border-radius: 9999px; text-decoration: none; font-weight: 600;">'
            "LEAVE A REVIEW</a></div>"
        )
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
<body style="font-family: 'Inter', -apple-system, BlinkMacSystemFont, sans-serif; line-height: 1.6; background: #f5f3ff; margin: 0; padding: 0;">
  <div style="max-width: 600px; margin: 24px auto; background: #ffffff; border-radius: 16px; overflow: hidden;">
    <div style="background: linear-gradient(135deg, #8b5cf6, #6366f1); padding: 32px; color: #ffffff;">
      <h1 style="margin: 0; font-size: 26px;">Hi {html.escape(customer_name)}!</h1>
      <p style="margin: 8px 0 0;">A quick note from <strong>{html.escape(company_name)}</strong></p>
    </div>
    <div style="padding: 32px;">
      {paragraphs}
      {button}
    </div>
    <div style="padding: 24px 32px; background: #faf5ff; font-size: 12px; color: #6b7280;">
      You're receiving this email because a business you interacted with uses Loop Review to collect feedback.
      &copy; {datetime.now().year} Loop Review. All rights reserved.
    </div>
  </div>
</body>
</html>"""


def rating_class(rating: Optional[int]) -> str:
    """Bucket a star rating into the workflow trigger it fires."""
    rating = rating or 0
    if rating >= 4:
        return "positive_review"
    if rating <= 2:
        return "negative_review"
    return "neutral_review"


def render_feedback_notification(
    company_name: str,
    customer_name: str,
    customer_email: str,
    rating: int,
    feedback: str,
    agreed_to_marketing: bool = False,
) -> str:
    """HTML body of the owner alert sent when a customer leaves private feedback."""
    stars = "★" * rating + "☆" * (5 - rating)
    marketing = (
        '<p style="color: #28a745; font-size: 14px;"><strong>&#10003;</strong> '
        "Customer agreed to receive marketing communications</p>"
        if agreed_to_marketing else ""
    )
    safe_feedback = html.escape(feedback).replace("\n", "<br>")
    return f"""<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: linear-gradient(135deg, #e66465 0%, #9198e5 100%); padding: 20px; text-align: center;">
    <h1 style="color: white; margin: 0;">New Customer Feedback</h1>
  </div>
  <div style="padding: 30px; background: #f9f9f9;">
    <div style="background: white; padding: 25px; border-radius: 8px;">
      <h2 style="color: #333; margin-top: 0;">Customer Review for {html.escape(company_name)}</h2>
      <div style="background: #f8f9fa; padding: 15px; border-radius: 6px; margin: 20px 0;">
        <div style="font-size: 24px; color: #ffc107;">{stars}</div>
        <div style="color: #666; font-size: 14px;">{rating} out of 5 stars</div>
      </div>
      <p style="margin: 5px 0; color: #666;"><strong>Name:</strong> {html.escape(customer_name)}</p>
      <p style="margin: 5px 0; color: #666;"><strong>Email:</strong> {html.escape(customer_email)}</p>
      <div style="background: #f8f9fa; padding: 15px; border-radius: 6px; color: #333; line-height: 1.6;">
        {safe_feedback}
      </div>
      {marketing}
    </div>
  </div>
  <div style="text-align: center; padding: 20px; color: #666; font-size: 12px;">
    <p>This notification was sent from your Loop review system</p>
  </div>
</div>"""


def render_support_request(name: str, email: str, subject: str, message: str, received: datetime) -> str:
    """HTML body of a contact-form message forwarded to the support inbox."""
    safe_message = html.escape(message).replace("\n", "<br>")
    return f"""<div style="font-family: -apple-system, 'Segoe UI', sans-serif; max-width: 600px; margin: 0 auto; padding: 30px;">
  <h1 style="color: #333; font-size: 24px;">New Support Request</h1>
  <div style="background-color: #f8f9fa; padding: 20px; border-radius: 6px;">
    <p style="margin: 5px 0;"><strong>Name:</strong> {html.escape(name)}</p>
    <p style="margin: 5px 0;"><strong>Email:</strong> {html.escape(email)}</p>
    <p style="margin: 5px 0;"><strong>Subject:</strong> {html.escape(subject)}</p>
  </div>
  <div style="padding: 15px; border-left: 4px solid #007bff; margin: 20px 0;">{safe_message}</div>
  <p style="color: #6c757d; font-size: 14px;">Received: {received:%Y-%m-%d %H:%M UTC}<br>Please respond to: {html.escape(email)}</p>
</div>"""
