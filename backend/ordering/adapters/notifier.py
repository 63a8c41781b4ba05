from typing import Dict, List, Optional

from ordering.utils.logging import get_logger

logger = get_logger(__name__)


class LoggingNotifier:
    """
    Order notifications without a delivery channel.

    Push/email delivery lives in the notification service; this adapter
    records what would be sent. ``sent`` keeps the last events for inspection.
    """

    def __init__(self, keep: int = 100):
        self.keep = keep
        self.sent: List[Dict] = []

    def order_status_changed(
        self,
        order_id: int,
        user_id: int,
        old_status: Optional[str],
        new_status: str,
    ) -> Dict:
        event = {
            "type": "order_status_changed",
            "order_id": order_id,
            "user_id": user_id,
            "old_status": old_status,
            "new_status": new_status,
        }
        logger.info(
            "Notify user %s: order %s %s -> %s", user_id, order_id, old_status, new_status
        )
        self.sent.append(event)
        del self.sent[: -self.keep]
        return event

    def health_check(self) -> bool:
        return True


default_notifier = LoggingNotifier()
