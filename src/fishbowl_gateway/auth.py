"""
Session lifecycle against the upstream.

Holds at most one session. Concurrent callers that find no usable session
share a single login attempt instead of each starting their own.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from fishbowl_gateway.errors import GatewayError
from fishbowl_gateway.models.session import Session, utcnow

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_THRESHOLD = timedelta(minutes=10)
DEFAULT_SESSION_TTL = timedelta(hours=24)

UNAUTHENTICATED = "unauthenticated"
AUTHENTICATING = "authenticating"
AUTHENTICATED = "authenticated"


class SessionManager:
    def __init__(
        self,
        upstream,
        refresh_threshold: timedelta = DEFAULT_REFRESH_THRESHOLD,
        default_ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._upstream = upstream
        self._refresh_threshold = refresh_threshold
        self._default_ttl = default_ttl
        self._clock = clock
        self._session: Optional[Session] = None
        self._login_task: Optional[asyncio.Task] = None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def authenticated(self) -> bool:
        return self._usable() is not None

    @property
    def state(self) -> str:
        if self._login_task is not None:
            return AUTHENTICATING
        if self._session is not None:
            return AUTHENTICATED
        return UNAUTHENTICATED

    def _usable(self) -> Optional[Session]:
        session = self._session
        if session is None or session.expires_within(self._refresh_threshold, self._clock()):
            return None
        return session

    async def ensure_authenticated(self) -> str:
        """Return a valid token, logging in first if needed.

        Callers arriving while a login is running join it. A cancelled caller
        does not cancel the login for the others.
        """
        session = self._usable()
        if session is not None:
            return session.token
        if self._login_task is None:
            self._login_task = asyncio.get_running_loop().create_task(self._login())
            self._login_task.add_done_callback(self._login_done)
        session = await asyncio.shield(self._login_task)
        return session.token

    async def _login(self) -> Session:
        try:
            if self._session is not None:
                logger.info("Fishbowl session expires at %s, refreshing", self._session.expires_at)
            session = await self._upstream.login()
            now = self._clock()
            session = session.model_copy(update={
                "established_at": now,
                "expires_at": session.expires_at or now + self._default_ttl,
            })
            self._session = session
            return session
        except BaseException:
            self._session = None
            raise
        finally:
            self._login_task = None

    def _login_done(self, task: asyncio.Task) -> None:
        # A task cancelled before it started never reaches _login's finally
        if task is self._login_task:
            self._login_task = None
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Fishbowl login failed: %s", error)

    def invalidate(self, token: Optional[str] = None) -> None:
        """Drop the current session.

        With `token`, only drops it if that token is still current, so a late
        rejection does not discard a session another caller already refreshed.
        """
        if self._session is None:
            return
        if token is not None and self._session.token != token:
            return
        logger.info("Fishbowl session invalidated")
        self._session = None

    async def logout(self) -> bool:
        """Best-effort upstream logout. Never raises for upstream failures."""
        session = self._session
        self._session = None
        if session is None:
            return True
        try:
            await self._upstream.logout(session.token)
        except GatewayError as e:
            logger.warning("Fishbowl logout failed: %s", e)
            return False
        logger.info("Logged out of Fishbowl")
        return True
