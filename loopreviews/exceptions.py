"""
Domain exceptions raised by services and mapped to HTTP errors by routers
"""


class LoopReviewsError(Exception):
    """Base class for application errors"""
    pass


class ConfigurationError(LoopReviewsError):
    """Raised when a vendor integration is used without its credentials"""

    def __init__(self, service: str, message: str = None):
        self.service = service
        super().__init__(
            message or f"{service} configuration is missing. Please check environment variables.")


class DeliveryError(LoopReviewsError):
    """Raised when an email or SMS could not be handed to the provider"""

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(message)


class IntegrationError(LoopReviewsError):
    """Raised when a third-party API returns an unusable response"""

    def __init__(self, platform: str, message: str, status_code: int = 500):
        self.platform = platform
        self.status_code = status_code
        super().__init__(message)


class WebhookVerificationError(LoopReviewsError):
    """Raised when an inbound webhook signature does not match"""

    def __init__(self, source: str):
        self.source = source
        super().__init__(f"Invalid {source} webhook signature")


class AutomationAccessError(LoopReviewsError):
    """Raised when a user without an automation plan calls automation APIs"""

    def __init__(self, message: str = "Automation features require Pro or Enterprise subscription"):
        super().__init__(message)
