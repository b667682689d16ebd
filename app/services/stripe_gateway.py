import stripe

from app.core.config import settings
from app.core.errors import ServiceUnavailableError


def get_stripe():
    """
    Return the stripe module configured with the platform secret key.
    """
    if not settings.STRIPE_SECRET_KEY:
        raise ServiceUnavailableError("STRIPE_SECRET_KEY is not set")
    stripe.api_key = settings.STRIPE_SECRET_KEY
    stripe.api_version = settings.STRIPE_API_VERSION
    return stripe
