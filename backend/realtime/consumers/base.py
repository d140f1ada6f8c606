"""Base WebSocket consumer with shared functionality for all consumers."""

import logging
from typing import Dict, Any, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from services.exceptions import BookingError, ValidationError

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer with shared connection management and helper methods.

    Subclasses should override:
        - on_connect(): role checks and extra groups
        - handle_message(msg_type, data): handle incoming messages

    Server-side events arrive through group_send; the handlers below forward
    them to the client unchanged apart from dropping the routing keys.
    """

    async def connect(self):
        self.user = self.scope["user"]

        if self.user.is_anonymous:
            await self.close()
            return

        self.user_id = getattr(self.user, "id", None)
        self.role = getattr(self.user, "role", None)

        # Track joined groups for cleanup
        self.joined_groups: Set[str] = set()

        # Personal group (useful for targeted server->user messages)
        self.user_group = f"user_{self.user_id}"
        await self._join_group(self.user_group)

        await self.accept()
        await self.on_connect()

    async def on_connect(self):
        """Override in subclass for custom connect logic."""
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
        })

    async def disconnect(self, close_code):
        """Leave all joined groups on disconnect."""
        if not hasattr(self, "joined_groups"):
            return
        try:
            for group in list(self.joined_groups):
                await self._leave_group(group)
            await self.on_disconnect(close_code)
        except Exception:
            logger.exception("Error during disconnect for user %s", getattr(self, 'user_id', 'unknown'))

    async def on_disconnect(self, close_code):
        """Override in subclass for custom disconnect logic."""
        pass

    async def receive_json(self, data: Dict[str, Any]):
        """Route incoming messages to appropriate handlers."""
        if not isinstance(data, dict):
            await self.send_error("Message must be a JSON object", code="validation_error")
            return

        msg_type = data.get("type")
        if not msg_type:
            await self.send_error("Message type is required", code="validation_error")
            return

        try:
            await self.handle_message(msg_type, data)
        except ValidationError as e:
            await self.send_error(str(e), code=e.code, source=msg_type, errors=e.errors)
        except BookingError as e:
            await self.send_error(str(e), code=e.code, source=msg_type)
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self.send_error(f"Error processing {msg_type}", code="internal_error", source=msg_type)

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Override in subclass to handle specific message types."""
        await self.send_error(f"Unknown message type: {msg_type}", code="unknown_type")

    # ---------------------- Group Management Helpers ----------------------

    async def _join_group(self, group_name: str):
        """Join a channel group and track it."""
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        """Leave a channel group and untrack it."""
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Response Helpers ----------------------

    async def send_error(self, message: str, code: str = "error", source: str = None, errors=None):
        """Send an error message to the client."""
        payload = {
            "type": "error",
            "code": code,
            "message": message,
        }
        if source:
            payload["source"] = source
        if errors:
            payload["errors"] = errors
        await self.send_json(payload)

    async def send_success(self, event_type: str, **kwargs):
        """Send a success response to the client."""
        await self.send_json({
            "type": event_type,
            **kwargs,
        })

    async def forward_event(self, event):
        """Send a group event to the client as-is."""
        await self.send_json(dict(event))

    # ---------------------- Common Event Handlers ----------------------
    # These handle group_send events from server-side code

    async def booking_created(self, event):
        await self.forward_event(event)

    async def booking_accepted(self, event):
        """Sent to the winning driver and the passenger."""
        await self.forward_event(event)

    async def booking_canceled(self, event):
        await self.forward_event(event)

    async def booking_status(self, event):
        """Status change broadcast to the booking room."""
        await self.forward_event(event)

    async def no_drivers_available(self, event):
        await self.forward_event(event)

    async def trip_started(self, event):
        await self.forward_event(event)

    async def trip_ongoing(self, event):
        """Driver position during the trip."""
        await self.forward_event(event)

    async def pricing_update(self, event):
        """Live fare while the trip is running."""
        await self.forward_event(event)

    async def trip_completed(self, event):
        await self.forward_event(event)
