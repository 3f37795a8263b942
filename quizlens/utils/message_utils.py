"""Utilities for creating and handling standardized Socket.IO messages."""

import enum
from typing import Dict, Any, Union, Optional
from datetime import datetime, timezone


class MessageType(enum.Enum):
    """
    Enumerates the types of messages exchanged with overlay renderers.
    """
    # General Purpose
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    # Overlay -> Server
    TRIGGER_SCAN = "trigger_scan"   # Scan button
    STOP_SERVICE = "stop_service"   # Stop button

    # Server -> Overlay(s)
    OVERLAY_STATE = "overlay_state"  # Every published OverlayState


def create_socket_message(
    message_type: MessageType,
    value: Union[str, Dict[str, Any]],
    sender: str = "quizlens",
    timestamp: bool = True,
    target_sid: Optional[str] = None
) -> Dict[str, Any]:
    """
    Creates a standardized dictionary object for Socket.IO messages.

    Args:
        message_type: The type of the message (from MessageType enum).
        value: The payload of the message (string or dictionary).
        sender: The source of the message.
        timestamp: Whether to include an ISO 8601 timestamp.
        target_sid: Optional SID this message is intended for (for logging/context).

    Returns:
        A dictionary representing the structured message.
    """
    message = {
        "messageType": message_type.value,
        "value": value,
        "from": sender,
    }
    if timestamp:
        message["timestamp"] = datetime.now(timezone.utc).isoformat()
    if target_sid:
        message["target_sid"] = target_sid

    return message


def create_overlay_state_message(state) -> Dict[str, Any]:
    """Wrap an OverlayState snapshot in the camelCase payload overlays expect."""
    return create_socket_message(MessageType.OVERLAY_STATE, state.to_payload())
