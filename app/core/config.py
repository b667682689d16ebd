import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    SUPABASE_URL: str = os.getenv("SUPABASE_URL")
    SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY")
    SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

    STRIPE_SECRET_KEY: str = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET: str = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_API_VERSION: str = os.getenv("STRIPE_API_VERSION", "2025-08-27.basil")

    AI_GATEWAY_URL: str = os.getenv("AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1/chat/completions")
    AI_GATEWAY_API_KEY: str = os.getenv("AI_GATEWAY_API_KEY")
    AI_MODEL: str = os.getenv("AI_MODEL", "google/gemini-2.5-flash")

    MAPBOX_TOKEN: str = os.getenv("MAPBOX_TOKEN")
    FIRECRAWL_API_KEY: str = os.getenv("FIRECRAWL_API_KEY")
    GOOGLE_PLACES_API_KEY: str = os.getenv("GOOGLE_PLACES_API_KEY") or os.getenv("GOOGLE_REVIEWS_API_KEY")

    # Falls back to the notification edge function on the Supabase project
    NOTIFICATION_URL: str = os.getenv("NOTIFICATION_URL")

    ALLOWED_ORIGINS: list[str] = _csv(os.getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:5173,http://localhost:8080,https://stackbnb-60920.lovable.app",
    ))
    ALLOWED_ORIGIN_SUFFIXES: list[str] = _csv(os.getenv("ALLOWED_ORIGIN_SUFFIXES", ".lovable.app,.lovableproject.com"))
    DEFAULT_ORIGIN: str = os.getenv("DEFAULT_ORIGIN", "http://localhost:5173")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    DEFAULT_PLATFORM_FEE_PERCENT: float = float(os.getenv("DEFAULT_PLATFORM_FEE_PERCENT", "10"))
    DEFAULT_HOST_COMMISSION_PERCENT: float = float(os.getenv("DEFAULT_HOST_COMMISSION_PERCENT", "15"))
    DEFAULT_CANCELLATION_HOURS: int = int(os.getenv("DEFAULT_CANCELLATION_HOURS", "24"))
    OTP_TTL_MINUTES: int = int(os.getenv("OTP_TTL_MINUTES", "10"))

    # Tulum Centro
    DEFAULT_ROUTE_ORIGIN: tuple[float, float] = (20.2114, -87.4654)

    @property
    def notification_url(self) -> str | None:
        if self.NOTIFICATION_URL:
            return self.NOTIFICATION_URL
        if self.SUPABASE_URL:
            return f"{self.SUPABASE_URL}/functions/v1/send-admin-notification"
        return None


settings = Settings()
