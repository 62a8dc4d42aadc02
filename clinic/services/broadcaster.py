import json
import logging
from typing import Any, Optional

from pydantic import BaseModel

from ..core.config import settings
from .side_effects import run_best_effort

logger = logging.getLogger(__name__)


class NotificationEvent(BaseModel):
    action: str
    # No target means the event is meant for administrators
    target_doctor_id: Optional[str] = None
    message: str
    data: Any = None


class EventBroadcaster:
    """Publishes realtime notifications to connected clients."""

    def publish(self, topic: str, payload: NotificationEvent) -> None:
        raise NotImplementedError

    def notify(self, event: NotificationEvent, topic: Optional[str] = None) -> bool:
        """Fire-and-forget publish. Never raises."""
        topic = topic or settings.BROADCAST_CHANNEL
        return run_best_effort(f"Broadcast {event.action}", self.publish, topic, event)


class RedisEventBroadcaster(EventBroadcaster):
    """Publishes events as JSON on a Redis pub/sub channel."""

    def __init__(self, redis_client):
        self.redis = redis_client

    def publish(self, topic: str, payload: NotificationEvent) -> None:
        message = json.dumps(payload.model_dump(mode="json"))
        receivers = self.redis.publish(topic, message)
        logger.debug(f"Published {payload.action} on '{topic}' to {receivers} subscribers")
