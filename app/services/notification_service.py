import httpx
from typing import Any, Dict, Optional

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger("NOTIFICATIONS")


class NotificationService:
    """
    Relays notification payloads to the email-sending function.

    Delivery is best-effort: send() logs failures and returns False,
    it never raises into the caller.
    """

    def __init__(self, url: Optional[str] = None, service_key: Optional[str] = None, timeout: float = 10.0):
        self.url = url or settings.notification_url
        self.service_key = service_key or settings.SUPABASE_SERVICE_ROLE_KEY
        self.timeout = timeout

    def send(self, payload: Dict[str, Any]) -> bool:
        kind = payload.get("type")
        if not self.url:
            logger.warning("Notification endpoint not configured, skipping", type=kind)
            return False

        client = httpx.Client(timeout=self.timeout)
        try:
            response = client.post(
                self.url,
                json=payload,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.service_key}",
                },
            )
            response.raise_for_status()
            logger.info("Notification sent", type=kind)
            return True
        except httpx.HTTPStatusError as e:
            logger.warning("Notification failed", type=kind, status=e.response.status_code, body=e.response.text)
            return False
        except Exception as e:
            logger.warning("Notification error", type=kind, error=str(e))
            return False
        finally:
            client.close()


def get_notification_service() -> NotificationService:
    return NotificationService()
