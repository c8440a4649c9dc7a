"""Employment-service client layer: REST API, push channel, and call results."""

from portal_messaging.clients.employment_api import EmploymentAPI
from portal_messaging.clients.result import Result, capture
from portal_messaging.clients.websocket import ChatSocketClient

__all__ = ["EmploymentAPI", "ChatSocketClient", "Result", "capture"]
