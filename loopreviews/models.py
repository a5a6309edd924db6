import uuid

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text, UniqueConstraint, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return uuid.uuid4().hex


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=True)
    company = Column(String, nullable=True)
    position = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    # ecommerce|local|service ...
    store_type = Column(String, nullable=True)
    business_category = Column(String, nullable=True)
    business_description = Column(Text, nullable=True)
    platform_links = Column(JSON, nullable=True)
    onboarding_completed = Column(Boolean, default=False)
    onboarding_data = Column(JSON, nullable=True)

    # Profile
    street_address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    zip_code = Column(String, nullable=True)
    country = Column(String, nullable=True)
    timezone = Column(String, nullable=True)
    language = Column(String, nullable=True)
    profile_picture_url = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    website = Column(String, nullable=True)

    # Notifications
    email_notifications = Column(Boolean, default=True)
    notification_email = Column(String, nullable=True)
    reply_email = Column(String, nullable=True)

    # Billing
    stripe_customer_id = Column(String, nullable=True, index=True)
    subscription_id = Column(String, nullable=True)
    # free|basic|pro|enterprise
    subscription_type = Column(String, nullable=False, server_default="free")
    # trialing|active|past_due|canceled|inactive
    subscription_status = Column(
        String, nullable=False, server_default="inactive")
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    trial_start = Column(DateTime(timezone=True), nullable=True)
    trial_end = Column(DateTime(timezone=True), nullable=True)
    trial_ending_notified = Column(Boolean, default=False)
    cancel_at_period_end = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    sessions = relationship(
        "UserSession", back_populates="user", cascade="all, delete-orphan")
    review_link = relationship("ReviewLink", back_populates="user", uselist=False)


class UserSession(Base):
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_token = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="sessions")


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    token = Column(String, unique=True, index=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ReviewLink(Base):
    __tablename__ = "review_link"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"),
                     nullable=False, unique=True, index=True)
    company_name = Column(String, nullable=True)
    review_url = Column(String, unique=True, index=True, nullable=False)
    review_qr_code = Column(String, nullable=True)
    primary_color = Column(String, default="#000000")
    secondary_color = Column(String, default="#000000")
    show_badge = Column(Boolean, default=True)
    rating_page_content = Column(Text, nullable=True)
    redirect_message = Column(Text, nullable=True)
    internal_notification_message = Column(Text, nullable=True)
    video_upload_message = Column(Text, nullable=True)
    google_review_link = Column(String, default="")
    trustpilot_review_link = Column(String, default="")
    facebook_review_link = Column(String, default="")
    video_testimonial_link = Column(String, nullable=True)
    # ["Google", "Trustpilot", "Facebook"]
    enabled_platforms = Column(JSON, nullable=True)
    background_color = Column(String, default="#F0F8FF")
    text_color = Column(String, default="#1F2937")
    button_text_color = Column(String, default="#FFFFFF")
    button_style = Column(String, default="rounded-full")
    font = Column(String, default="gothic-a1")
    # [{"platform": ..., "url": ...}]
    links = Column(JSON, nullable=True)
    header_settings = Column(JSON, nullable=True)
    initial_view_settings = Column(JSON, nullable=True)
    negative_settings = Column(JSON, nullable=True)
    video_upload_settings = Column(JSON, nullable=True)
    success_settings = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="review_link")


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=True)
    email = Column(String, nullable=True, index=True)
    phone = Column(String, nullable=True)
    # email|sms|both
    type = Column(String, nullable=True)
    # active|inactive
    status = Column(String, nullable=False, server_default="active")
    # manual|shopify
    source = Column(String, nullable=True)
    shopify_customer_id = Column(String, nullable=True, index=True)
    tags = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow,
                        server_default=func.now())


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    customer_id = Column(String, nullable=True, index=True)
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    rating = Column(Integer, nullable=True)
    title = Column(String, nullable=True)
    comment = Column(Text, nullable=True)
    platform = Column(String, nullable=True)
    # published|pending|hidden
    status = Column(String, nullable=False, server_default="published")
    helpful_count = Column(Integer, default=0)
    verified = Column(Boolean, default=False)
    replied = Column(Boolean, default=False)
    response = Column(Text, nullable=True)
    review_url = Column(String, nullable=True)
    # Imported reviews
    external_review_id = Column(String, nullable=True)
    author_url = Column(String, nullable=True)
    profile_photo_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow,
                        server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class ReviewRequest(Base):
    __tablename__ = "review_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    review_link_id = Column(Integer, ForeignKey("review_link.id"), nullable=True)
    contact_name = Column(String, nullable=True)
    contact_phone = Column(String, nullable=True)
    contact_email = Column(String, nullable=True)
    # sms|email
    request_type = Column(String, nullable=False)
    content = Column(Text, nullable=True)
    subject_line = Column(String, nullable=True)
    from_email = Column(String, nullable=True)
    sms_sender_name = Column(String, nullable=True)
    # sent|failed
    status = Column(String, nullable=False, server_default="sent")
    sent_at = Column(DateTime(timezone=True), default=utcnow)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ClickTracking(Base):
    __tablename__ = "click_tracking"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(String(100), nullable=False, index=True)
    page = Column(String(500), nullable=True)
    user_agent = Column(String(1000), nullable=True)
    referrer = Column(String(500), nullable=True)
    session_id = Column(String(100), nullable=True)
    ip_address = Column(String, nullable=True)
    # page_visit|star_selection|platform_redirect|...
    event_type = Column(String(50), nullable=False, server_default="page_visit")
    star_rating = Column(Integer, nullable=True)
    redirect_platform = Column(String(100), nullable=True)
    redirect_url = Column(String(1000), nullable=True)
    review_completed = Column(Boolean, default=False)
    # JSON-encoded string
    additional_data = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True)


class EmailTemplate(Base):
    __tablename__ = "email_templates"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"),
                     nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    subject = Column(String, nullable=True)
    content = Column(Text, nullable=True)
    from_email = Column(String, nullable=True)
    sequence = Column(JSON, nullable=True)
    # immediate|after_purchase|after_interaction|weekly|monthly
    initial_trigger = Column(String, nullable=False, server_default="immediate")
    initial_wait_days = Column(Integer, default=3)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class SMSTemplate(Base):
    __tablename__ = "sms_templates"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"),
                     nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    content = Column(Text, nullable=True)
    sender_name = Column(String, nullable=True)
    sequence = Column(JSON, nullable=True)
    initial_trigger = Column(String, nullable=False, server_default="immediate")
    initial_wait_days = Column(Integer, default=3)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class AutomationSettings(Base):
    __tablename__ = "automation_settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"),
                     nullable=False, unique=True, index=True)
    automation_enabled = Column(Boolean, default=False)
    email_enabled = Column(Boolean, default=True)
    sms_enabled = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class AutomationJob(Base):
    __tablename__ = "automation_jobs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    review_id = Column(Integer, ForeignKey("reviews.id"), nullable=True)
    template_id = Column(Integer, nullable=True)
    # email|sms
    template_type = Column(String, nullable=False)
    customer_id = Column(String, nullable=True)
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    # pending|processing|completed|failed
    status = Column(String, nullable=False, server_default="pending", index=True)
    trigger_type = Column(String, nullable=True)
    wait_days = Column(Integer, default=0)
    scheduled_for = Column(DateTime(timezone=True), nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow,
                        server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class AutomationWorkflow(Base):
    __tablename__ = "automation_workflows"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    # positive_review|negative_review|neutral_review
    trigger_event = Column(String, nullable=False)
    delay_days = Column(Integer, default=0)
    email_template_id = Column(Integer, ForeignKey("review_templates.id"), nullable=True)
    sms_template_id = Column(Integer, ForeignKey("review_templates.id"), nullable=True)
    is_active = Column(Boolean, default=True)
    sent_count = Column(Integer, default=0)
    opened_count = Column(Integer, default=0)
    clicked_count = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow,
                        server_default=func.now())


class ReviewTemplate(Base):
    __tablename__ = "review_templates"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=True)
    subject = Column(String, nullable=True)
    body = Column(Text, nullable=False)
    # email|sms
    template_type = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TemplateSetting(Base):
    __tablename__ = "template_settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # sms_template|email_template|sms_reminder_3|sms_reminder_7|email_reminder_3|email_reminder_7
    template_type = Column(String, nullable=False)
    sender_name = Column(String, nullable=True)
    sender_email = Column(String, nullable=True)
    subject = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    enabled = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Integration(Base):
    __tablename__ = "integrations"
    __table_args__ = (UniqueConstraint(
        "user_id", "platform", name="uq_integration_user_platform"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # google|shopify|trustpilot|facebook
    platform = Column(String, nullable=False)
    name = Column(String, nullable=True)
    # connected|pending|disconnected
    status = Column(String, nullable=False, server_default="disconnected")
    business_name = Column(String, nullable=True)
    business_id = Column(String, nullable=True)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    additional_data = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
