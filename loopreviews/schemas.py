from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime


class EventType(str, Enum):
    page_visit = "page_visit"
    star_selection = "star_selection"
    platform_redirect = "platform_redirect"


class RequestType(str, Enum):
    sms = "sms"
    email = "email"


class JobStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class TemplateType(str, Enum):
    sms_template = "sms_template"
    email_template = "email_template"
    sms_reminder_3 = "sms_reminder_3"
    sms_reminder_7 = "sms_reminder_7"
    email_reminder_3 = "email_reminder_3"
    email_reminder_7 = "email_reminder_7"


class CamelModel(BaseModel):
    """Request bodies accept both the camelCase keys the web client sends and snake_case."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# Auth

class SignupRequest(CamelModel):
    email: Optional[str] = Field(None, examples=["owner@example.com"])
    password: Optional[str] = Field(None, examples=["s3cretpass"])
    first_name: Optional[str] = Field(None, examples=["Dana"])
    last_name: Optional[str] = None
    company: Optional[str] = Field(None, examples=["Blue Door Bakery"])
    title: Optional[str] = None
    phone: Optional[str] = None


class SigninRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ResetPasswordRequest(CamelModel):
    token: Optional[str] = None
    password: Optional[str] = None


class StoreTypeRequest(CamelModel):
    store_type: Optional[str] = Field(None, alias="storeType", examples=["ecommerce"])


class UserResponse(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None
    phone_number: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class AuthUserResponse(UserResponse):
    store_type: Optional[str] = None
    onboarding_completed: Optional[bool] = None
    subscription_type: Optional[str] = None
    subscription_status: Optional[str] = None
    trial_end: Optional[datetime] = None


# Tracking

class TrackClickRequest(CamelModel):
    customer_id: Optional[str] = Field(None, examples=["cus_123"])
    page: Optional[str] = Field(None, examples=["https://app.example.com/r/ab12cd34"])
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    session_id: Optional[str] = None
    event_type: Optional[str] = Field("page_visit", examples=["star_selection"])
    star_rating: Optional[int] = Field(None, examples=[5])
    redirect_platform: Optional[str] = None
    redirect_url: Optional[str] = None
    review_completed: Optional[bool] = False
    additional_data: Optional[Dict[str, Any]] = None


class RedirectTrackRequest(CamelModel):
    customer_id: Optional[str] = None
    redirect_url: Optional[str] = None
    campaign: Optional[str] = None
    source: Optional[str] = None
    track_only: bool = False
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    session_id: Optional[str] = None


class ReviewFromTrackingRequest(CamelModel):
    customer_id: Optional[str] = None
    page: Optional[str] = None
    event_type: Optional[str] = None
    star_rating: Optional[int] = None
    redirect_platform: Optional[str] = None
    redirect_url: Optional[str] = None
    available_platforms: Optional[List[str]] = None


class ClickResponse(BaseModel):
    id: int
    customer_id: str
    page: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None
    event_type: str
    star_rating: Optional[int] = None
    redirect_platform: Optional[str] = None
    redirect_url: Optional[str] = None
    review_completed: Optional[bool] = None
    additional_data: Optional[str] = None
    timestamp: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Reviews

class ReviewResponse(BaseModel):
    id: int
    user_id: int
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    rating: Optional[int] = None
    title: Optional[str] = None
    comment: Optional[str] = None
    platform: Optional[str] = None
    status: str
    helpful_count: Optional[int] = 0
    verified: Optional[bool] = False
    replied: Optional[bool] = False
    response: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ReviewUpdateRequest(CamelModel):
    id: Optional[int] = None
    updates: Optional[Dict[str, Any]] = None


class ReviewDeleteRequest(CamelModel):
    id: Optional[int] = None


# Review requests

class Contact(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    number: Optional[str] = None
    email: Optional[str] = None


class ReviewRequestCreate(CamelModel):
    type: Optional[str] = Field(None, examples=["sms"])
    contacts: Optional[List[Contact]] = None
    content: Optional[str] = None
    subject_line: Optional[str] = None
    from_email: Optional[str] = None
    sms_sender_name: Optional[str] = None


class SendRequest(CamelModel):
    contacts: Optional[List[Contact]] = None


class ReviewRequestResponse(BaseModel):
    id: int
    review_link_id: Optional[int] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    request_type: str
    content: Optional[str] = None
    subject_line: Optional[str] = None
    from_email: Optional[str] = None
    sms_sender_name: Optional[str] = None
    status: str
    sent_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Review link

class ReviewLinkResponse(BaseModel):
    id: int
    user_id: int
    company_name: Optional[str] = None
    review_url: str
    review_qr_code: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    show_badge: Optional[bool] = None
    rating_page_content: Optional[str] = None
    redirect_message: Optional[str] = None
    internal_notification_message: Optional[str] = None
    video_upload_message: Optional[str] = None
    google_review_link: Optional[str] = None
    trustpilot_review_link: Optional[str] = None
    facebook_review_link: Optional[str] = None
    video_testimonial_link: Optional[str] = None
    enabled_platforms: Optional[List[str]] = None
    background_color: Optional[str] = None
    text_color: Optional[str] = None
    button_text_color: Optional[str] = None
    button_style: Optional[str] = None
    font: Optional[str] = None
    links: Optional[List[Dict[str, Any]]] = None
    header_settings: Optional[Dict[str, Any]] = None
    initial_view_settings: Optional[Dict[str, Any]] = None
    negative_settings: Optional[Dict[str, Any]] = None
    video_upload_settings: Optional[Dict[str, Any]] = None
    success_settings: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ReviewLinkAction(CamelModel):
    action: Optional[str] = Field(None, examples=["regenerate_url"])


# Public

class PublicFeedbackRequest(CamelModel):
    review_url_id: Optional[str] = Field(None, alias="reviewUrlId")
    customer_name: Optional[str] = Field(None, alias="customerName")
    customer_email: Optional[str] = Field(None, alias="customerEmail")
    customer_id: Optional[str] = Field(None, alias="customerId")
    customer_phone: Optional[str] = Field(None, alias="customerPhone")
    rating: Optional[int] = None
    feedback: Optional[str] = None
    agree_to_marketing: bool = Field(False, alias="agreeToMarketing")
    selected_platform: Optional[str] = Field(None, alias="selectedPlatform")


class PublicTrackReviewRequest(CamelModel):
    review_url_id: Optional[str] = Field(None, alias="reviewUrlId")
    customer_id: Optional[str] = Field(None, alias="customerId")
    rating: Optional[int] = None
    platform: Optional[str] = None


# Automation

class SchedulerRequest(CamelModel):
    user_id: Optional[int] = Field(None, alias="userId")
    review_id: Optional[int] = Field(None, alias="reviewId")
    event_type: Optional[str] = Field(None, alias="eventType")


class TriggerRequest(CamelModel):
    review_id: Optional[int] = Field(None, alias="reviewId")
    event_type: Optional[str] = Field(None, alias="eventType")
    test_mode: bool = Field(False, alias="testMode")


class AutomationJobResponse(BaseModel):
    id: int
    user_id: int
    review_id: Optional[int] = None
    template_id: Optional[int] = None
    template_type: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    status: JobStatus
    trigger_type: Optional[str] = None
    wait_days: Optional[int] = None
    scheduled_for: datetime
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# Campaigns and templates

class CampaignRequest(CamelModel):
    type: Optional[str] = Field(None, examples=["email"])
    data: Optional[Dict[str, Any]] = None


class EmailTemplateResponse(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    subject: Optional[str] = None
    content: Optional[str] = None
    from_email: Optional[str] = None
    sequence: Optional[List[Dict[str, Any]]] = None
    initial_trigger: Optional[str] = None
    initial_wait_days: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class SMSTemplateResponse(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    content: Optional[str] = None
    sender_name: Optional[str] = None
    sequence: Optional[List[Dict[str, Any]]] = None
    initial_trigger: Optional[str] = None
    initial_wait_days: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class AutomationSettingsResponse(BaseModel):
    automation_enabled: bool = False
    email_enabled: bool = True
    sms_enabled: bool = True
    model_config = ConfigDict(from_attributes=True)


class TemplateSettingCreate(CamelModel):
    type: Optional[TemplateType] = None
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    subject: Optional[str] = None
    content: Optional[str] = None
    enabled: bool = True


class TemplateSettingUpdate(CamelModel):
    id: Optional[int] = None
    updates: Optional[Dict[str, Any]] = None


class TemplateSettingResponse(BaseModel):
    id: int
    type: str = Field(validation_alias="template_type")
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    subject: Optional[str] = None
    content: str
    enabled: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class WorkflowCreate(CamelModel):
    name: Optional[str] = None
    trigger_event: Optional[str] = None
    delay_days: int = 0
    email_template_id: Optional[int] = None
    sms_template_id: Optional[int] = None
    is_active: bool = True


class WorkflowResponse(BaseModel):
    id: int
    name: str
    trigger_event: str
    delay_days: Optional[int] = 0
    email_template_id: Optional[int] = None
    sms_template_id: Optional[int] = None
    is_active: bool
    sent_count: int = 0
    opened_count: int = 0
    clicked_count: int = 0
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ReviewTemplateCreate(CamelModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    template_type: Optional[str] = Field(None, examples=["email"])


class ReviewTemplateResponse(BaseModel):
    id: int
    name: Optional[str] = None
    subject: Optional[str] = None
    body: str
    template_type: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Integrations

class IntegrationResponse(BaseModel):
    id: int
    platform: str
    name: Optional[str] = None
    status: str
    business_name: Optional[str] = None
    business_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ShopifyAuthRequest(CamelModel):
    shop_domain: Optional[str] = Field(None, alias="shopDomain", examples=["my-store.myshopify.com"])


class GooglePlaceSelect(CamelModel):
    place_id: Optional[str] = Field(None, alias="placeId")
    name: Optional[str] = None


# Billing

class TrialSetupRequest(CamelModel):
    user_id: Optional[int] = Field(None, alias="userId")
    user_email: Optional[str] = Field(None, alias="userEmail")
    plan_name: Optional[str] = Field(None, alias="planName", examples=["pro"])
    billing_period: str = Field("monthly", alias="billingPeriod")


class SubscriptionUpdate(CamelModel):
    cancel_at_period_end: Optional[bool] = None


# Account and onboarding

class ProfileUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    timezone: Optional[str] = None
    language: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None


class NotificationSettings(CamelModel):
    email_notifications: Optional[bool] = None
    notification_email: Optional[str] = None
    reply_email: Optional[str] = None


class CompanySetup(CamelModel):
    company_name: Optional[str] = Field(None, alias="companyName", examples=["Blue Door Bakery"])


class BusinessCategory(CamelModel):
    category: Optional[str] = None
    description: Optional[str] = None


class PlatformLinks(CamelModel):
    platform_links: Optional[Any] = Field(None, alias="platformLinks")


class CompanyProfile(CamelModel):
    display_name: Optional[str] = Field(None, alias="displayName")
    bio: Optional[str] = None
    profile_image: Optional[str] = Field(None, alias="profileImage")


class OnboardingComplete(CamelModel):
    company_name: Optional[str] = Field(None, alias="companyName")
    company_profile: Optional[CompanyProfile] = Field(None, alias="companyProfile")
    business_category: Optional[BusinessCategory] = Field(None, alias="businessCategory")
    selected_platforms: Optional[List[str]] = Field(None, alias="selectedPlatforms")
    platform_links: Optional[Dict[str, str]] = Field(None, alias="platformLinks")
    selected_template: Optional[str] = Field(None, alias="selectedTemplate")


class SupportRequest(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
