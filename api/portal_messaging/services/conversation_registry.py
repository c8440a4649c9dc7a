import asyncio
import logging
import time
from collections import OrderedDict
from typing import Callable, Dict, List, Tuple

from portal_messaging.clients.employment_api import EmploymentAPI
from portal_messaging.core.config import Settings
from portal_messaging.services.conversation_service import ConversationService
from portal_messaging.services.participant_resolver import Viewer, ViewerRole

logger = logging.getLogger(__name__)

ViewerKey = Tuple[ViewerRole, str]


class ConversationRegistry:
    """Keeps one ConversationService per active viewer.

    A viewer presenting a different token gets a fresh service so calls are
    never made with a stale token. Services idle for longer than
    ``VIEWER_IDLE_TTL_SECONDS`` are closed, and once ``MAX_ACTIVE_VIEWERS``
    is reached the least recently used one makes room for the newcomer.
    """

    def __init__(
        self,
        api: EmploymentAPI,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api = api
        self.settings = settings
        self._clock = clock
        # Least recently used first
        self._services: "OrderedDict[ViewerKey, ConversationService]" = (
            OrderedDict()
        )
        self._last_used: Dict[ViewerKey, float] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._services)

    async def get(self, viewer: Viewer) -> ConversationService:
        key = (viewer.role, viewer.user_id)
        async with self._lock:
            now = self._clock()
            stale = self._pop_idle(now)

            service = self._services.get(key)
            if service is not None and service.viewer.token != viewer.token:
                logger.info("Token changed for %s %s, replacing service", *key)
                stale.append(self._pop(key))
                service = None

            if service is None:
                while len(self._services) >= self.settings.MAX_ACTIVE_VIEWERS:
                    oldest = next(iter(self._services))
                    logger.info("Evicting least recently used viewer %s %s", *oldest)
                    stale.append(self._pop(oldest))
                service = ConversationService(
                    self.api.with_token(viewer.token), viewer, self.settings
                )
                self._services[key] = service
            else:
                self._services.move_to_end(key)
            self._last_used[key] = now

        for old in stale:
            await old.close()
        return service

    def _pop(self, key: ViewerKey) -> ConversationService:
        self._last_used.pop(key, None)
        return self._services.pop(key)

    def _pop_idle(self, now: float) -> List[ConversationService]:
        ttl = self.settings.VIEWER_IDLE_TTL_SECONDS
        idle = [k for k, used in self._last_used.items() if now - used > ttl]
        if idle:
            logger.info("Closing %d idle conversation services", len(idle))
        return [self._pop(k) for k in idle]

    async def close_all(self) -> None:
        async with self._lock:
            services = list(self._services.values())
            self._services.clear()
            self._last_used.clear()
        for service in services:
            await service.close()
