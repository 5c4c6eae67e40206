from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Callable, Optional, Set

from hangouts.core.MessageTypes import ActiveClientState, Entity
from shared.envelope import HangoutsError
from shared.log import get_logger

if TYPE_CHECKING:
    from hangouts.api import ChatApi

logger = get_logger(__name__)

# Timeout to send for setactiveclient requests
ACTIVE_TIMEOUT_SECS = 120

# Minimum time between subsequent setactiveclient requests
SETACTIVECLIENT_LIMIT_SECS = 60


def first_email(entity: Optional[Entity]) -> Optional[str]:
    if entity is None or entity.properties is None or not entity.properties.email:
        return None
    return entity.properties.email[0]


class ActiveClientArbiter:
    """
    Keeps this client the account's active client while the user interacts.

    While a client is active, no other client of the account raises
    notifications. The server drops leadership after ``active_timeout_secs``
    unless it is renewed, so an interactive client re-announces itself at most
    once per ``set_active_limit_secs``.
    """

    def __init__(
        self,
        api: "ChatApi",
        client_id: Callable[[], Optional[str]],
        *,
        active_timeout_secs: int = ACTIVE_TIMEOUT_SECS,
        set_active_limit_secs: int = SETACTIVECLIENT_LIMIT_SECS,
        time_source: Callable[[], float] = time.monotonic,
    ):
        self._api = api
        self._client_id = client_id
        self.active_timeout_secs = active_timeout_secs
        self.set_active_limit_secs = set_active_limit_secs
        self._time = time_source

        self.active_client_state = ActiveClientState.IS_INACTIVE
        self.last_announced_at: Optional[float] = None
        self.email: Optional[str] = None
        self.disabled = False
        self._pending: Set[asyncio.Task] = set()
        self._email_lookup: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self.active_client_state.is_active

    @property
    def user_interaction_state(self) -> bool:
        return self.is_active

    @user_interaction_state.setter
    def user_interaction_state(self, interacting: bool) -> None:
        # Going idle needs no request: leadership lapses on the server.
        if interacting:
            self.mark_interactive()

    def remember_self(self, entity: Optional[Entity]) -> None:
        """Cache the account email from an already fetched self entity."""
        email = first_email(entity)
        if email is not None and self.email is None:
            self.email = email

    def mark_interactive(self) -> bool:
        """
        Record user interaction, announcing this client as active if needed.

        Cheap when nothing has to be sent, so it can be called on every
        keystroke. Requires a running event loop.

        Returns:
            True if an announcement was scheduled
        """
        if self.disabled:
            return False

        client_id = self._client_id()
        if client_id is None:
            logger.warning("Cannot set active client until client_id is received")
            return False

        now = self._time()
        timed_out = (
            self.last_announced_at is None
            or now - self.last_announced_at > self.set_active_limit_secs
        )
        if self.is_active and not timed_out:
            return False

        # Update state before the request is made so calls arriving while it is
        # in flight do not start another one.
        self.active_client_state = ActiveClientState.IS_ACTIVE
        self.last_announced_at = now

        task = asyncio.get_running_loop().create_task(self._announce(client_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _resolve_email(self) -> Optional[str]:
        if self.email is not None:
            return self.email
        # Announcements waiting on a slow lookup share it.
        if self._email_lookup is None:
            self._email_lookup = asyncio.get_running_loop().create_task(self._lookup_email())
        return await asyncio.shield(self._email_lookup)

    async def _lookup_email(self) -> Optional[str]:
        try:
            response = await self._api.get_self_info()
        finally:
            if self._email_lookup is asyncio.current_task():
                self._email_lookup = None
        email = first_email(response.self_entity)
        if email is None:
            # Leadership requests need the account email; never retry for this session.
            logger.error("Account has no email address; disabling active client announcements")
            self.disabled = True
            return None
        self.email = email
        return email

    async def _announce(self, client_id: str) -> None:
        try:
            email = await self._resolve_email()
            if email is None:
                return
            await self._api.set_active_client(
                is_active=True,
                full_jid=f"{email}/{client_id}",
                timeout_secs=self.active_timeout_secs,
            )
            logger.info("Announced active client for %ds", self.active_timeout_secs,
                        extra={"client_id": client_id})
        except HangoutsError as e:
            logger.warning("Set active client request failed: %s", e, extra={"client_id": client_id})

    async def drain(self) -> None:
        """Wait for in-flight announcements."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def reset(self) -> None:
        """Forget leadership and cancel in-flight announcements (channel closed)."""
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        if self._email_lookup is not None:
            self._email_lookup.cancel()
            self._email_lookup = None
        self.active_client_state = ActiveClientState.IS_INACTIVE
        self.last_announced_at = None
