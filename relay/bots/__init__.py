"""Meeting bot management and audio ingress."""

from .meetingbaas import MeetingBaasClient, to_websocket_url
from .ingress import BotIngressHandler, BOTS_TOPIC

__all__ = [
    "MeetingBaasClient",
    "to_websocket_url",
    "BotIngressHandler",
    "BOTS_TOPIC",
]
