#!/usr/bin/env python3
"""
Hangouts protocol client.

Owns the channel, decodes every inbound frame, keeps the conversation store
and session clock in step with the server and republishes what happened
through its own signals:

    on_connect()                          channel opened
    on_disconnect(error)                  channel closed (error is None when clean)
    on_state_update(state_update)         one StateUpdate from a batch update
    on_event(conversation_id, event)      an event appended to a conversation

Every mutation of session state happens under one asyncio lock, and work
started on one channel session is discarded if the channel has since closed.
"""

from __future__ import annotations
import asyncio
import time
from enum import Enum
from typing import Callable, Coroutine, List, Optional, Set, Tuple

from hangouts.api import ChatApi
from hangouts.channel import Channel
from hangouts.core.ActiveClientArbiter import ActiveClientArbiter
from hangouts.core.ConversationStore import ConversationStore
from hangouts.core.MessageTypes import (
    ActiveClientState,
    BatchUpdate,
    ConversationState,
    Event,
    StateUpdate,
)
from hangouts.core.SessionClock import SessionClock
from hangouts.signals import Signal, Subscription
from hangouts.state import User, UserList
from hangouts.upload import upload_image
from shared import pblite
from shared.config import ClientConfig
from shared.envelope import (
    DecodeError,
    Frame,
    FrameKind,
    HangoutsError,
    RawFrame,
    TransportError,
    UnknownFrameKindError,
    parse_frame,
    require_known,
    subscription_maps,
)
from shared.log import get_logger, log_frame

logger = get_logger(__name__)


class ClientState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_CLIENT_ID = "awaiting_client_id"
    SYNCING = "syncing"
    LIVE = "live"


class ProtocolClient:
    """
    Hangouts client session over a :class:`Channel`.

    Connection lifecycle:
        DISCONNECTED -> CONNECTING          connect()
        CONNECTING -> AWAITING_CLIENT_ID    channel connected; sync starts
        AWAITING_CLIENT_ID -> SYNCING       sync running
        SYNCING -> LIVE                     sync finished
        any -> DISCONNECTED                 channel disconnected (no reconnect here)
    """

    def __init__(
        self,
        channel: Channel,
        api: Optional[ChatApi] = None,
        config: Optional[ClientConfig] = None,
        *,
        time_source: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or ClientConfig()
        self.channel = channel
        self.api = api or ChatApi(channel, self.config)

        self.clock = SessionClock()
        self.store = ConversationStore(self.clock)
        self.users: Optional[UserList] = None
        self.client_id: Optional[str] = None
        self.state = ClientState.DISCONNECTED

        self.arbiter = ActiveClientArbiter(
            self.api,
            lambda: self.client_id,
            active_timeout_secs=self.config.active_timeout_secs,
            set_active_limit_secs=self.config.set_active_limit_secs,
            time_source=time_source,
        )

        self.on_connect: Signal = Signal("client.on_connect")
        self.on_disconnect: Signal = Signal("client.on_disconnect")
        self.on_state_update: Signal = Signal("client.on_state_update")
        self.on_event: Signal = Signal("client.on_event")

        self._lock = asyncio.Lock()
        # Bumped whenever the channel connects or disconnects; async work
        # compares it to the value it started with before applying results.
        self._epoch = 0
        self._sync_task: Optional[asyncio.Task] = None
        self._background_tasks: Set[asyncio.Task] = set()

        self._channel_subscriptions: List[Subscription] = [
            channel.on_connect.subscribe(self._on_channel_connect),
            channel.on_disconnect.subscribe(self._on_channel_disconnect),
            channel.on_receive.subscribe(self._on_channel_receive),
        ]

    # ========================================
    #           PROPERTIES
    # ========================================

    @property
    def connected(self) -> bool:
        return self.channel.is_connected

    @property
    def email(self) -> Optional[str]:
        return self.arbiter.email

    @property
    def active_client_state(self) -> ActiveClientState:
        return self.arbiter.active_client_state

    @property
    def conversations(self) -> ConversationStore:
        return self.store

    @property
    def self_user(self) -> Optional[User]:
        return self.users.self_user if self.users is not None else None

    @property
    def user_interaction_state(self) -> bool:
        return self.arbiter.user_interaction_state

    @user_interaction_state.setter
    def user_interaction_state(self, interacting: bool) -> None:
        self.arbiter.user_interaction_state = interacting

    def _track_background_task(self, coro: Coroutine) -> asyncio.Task:
        """Keep a strong reference to background tasks until completion."""
        task = asyncio.get_running_loop().create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    # ========================================
    #           CONNECTION
    # ========================================

    async def connect(self) -> None:
        """
        Open the channel.

        Raises:
            TransportError: the channel could not be opened; listeners also
                receive it through on_disconnect
        """
        if self.state is not ClientState.DISCONNECTED:
            logger.debug("connect() ignored in state %s", self.state.value)
            return
        self.state = ClientState.CONNECTING
        try:
            await self.channel.connect()
        except TransportError as e:
            logger.error("Failed to connect: %s", e)
            self.state = ClientState.DISCONNECTED
            await self.on_disconnect.emit(e)
            raise

    async def disconnect(self) -> None:
        """
        Close the channel. No reconnect is attempted.

        Raises:
            TransportError: the channel failed to close cleanly
        """
        try:
            await self.channel.disconnect()
        except TransportError as e:
            logger.error("Failed to disconnect: %s", e)
            raise

    async def close(self) -> None:
        """Disconnect and drop every subscription owned by this client."""
        if self.channel.is_connected:
            await self.disconnect()
        for subscription in self._channel_subscriptions:
            subscription.cancel()
        self._channel_subscriptions.clear()
        for signal in (self.on_connect, self.on_disconnect, self.on_state_update, self.on_event):
            signal.clear()
        for task in list(self._background_tasks):
            task.cancel()

    async def wait_until_synced(self) -> None:
        """Wait for the synchronization started by the last connect."""
        if self._sync_task is not None:
            await asyncio.shield(self._sync_task)

    async def _on_channel_connect(self) -> None:
        async with self._lock:
            self._epoch += 1
            epoch = self._epoch
            self.state = ClientState.AWAITING_CLIENT_ID
        logger.info("Connected")
        await self.on_connect.emit()
        self._sync_task = self._track_background_task(self.synchronize(epoch))

    async def _on_channel_disconnect(self, error: Optional[Exception] = None) -> None:
        async with self._lock:
            self._epoch += 1
            self.state = ClientState.DISCONNECTED
            self.client_id = None
            self.arbiter.reset()
        if self._sync_task is not None and not self._sync_task.done():
            self._sync_task.cancel()
        if error is not None:
            logger.warning("Disconnected: %s", error)
        else:
            logger.info("Disconnected")
        await self.on_disconnect.emit(error)

    # ========================================
    #           SYNCHRONIZATION
    # ========================================

    async def synchronize(self, epoch: Optional[int] = None) -> None:
        """
        Bring the store up to date with the server.

        Runs a full sync until one has succeeded and an incremental sync of
        everything newer than the session clock afterwards. Does nothing
        unless the channel is connected.
        """
        if epoch is None:
            epoch = self._epoch
        if epoch != self._epoch:
            return
        if not self.channel.is_connected or self.state not in (ClientState.AWAITING_CLIENT_ID, ClientState.LIVE):
            logger.debug("synchronize() ignored in state %s", self.state.value)
            return
        self.state = ClientState.SYNCING
        try:
            if self.users is not None:
                await self._incremental_sync(epoch)
            else:
                await self._full_sync(epoch)
        except HangoutsError as e:
            if epoch == self._epoch:
                logger.error("Synchronization failed: %s", e)
        if epoch == self._epoch:
            self.state = ClientState.LIVE

    async def _full_sync(self, epoch: int) -> None:
        self_info = await self.api.get_self_info()
        recent = await self.api.sync_recent_conversations()

        async with self._lock:
            if epoch != self._epoch:
                logger.debug("Dropping full sync result from a closed channel session")
                return
            if self_info.self_entity is None:
                raise DecodeError("GetSelfInfoResponse has no self entity")

            users = UserList(User.from_entity(self_info.self_entity, None))
            self.arbiter.remember_self(self_info.self_entity)
            self.store.apply_full_sync(recent.conversation_state)
            self._register_participants(users, recent.conversation_state)
            self.users = users
            if recent.sync_timestamp is not None:
                self.clock.advance(recent.sync_timestamp)
        logger.info("Full sync finished: %d conversations, %d users, clock %d",
                    len(self.store), len(users), self.clock.current)

    async def _incremental_sync(self, epoch: int) -> None:
        response = await self.api.sync_all_new_events(self.clock.current)

        appended: List[Event] = []
        async with self._lock:
            if epoch != self._epoch:
                logger.debug("Dropping incremental sync result from a closed channel session")
                return
            for state in response.conversation_state:
                appended.extend(self.store.apply_incremental_state(
                    state.conversation_id.id, state.conversation, state.event))
            self._register_participants(self.users, response.conversation_state)
            # Without this a later reconnect would sync everything again.
            if response.sync_timestamp is not None:
                self.clock.advance(response.sync_timestamp)
        logger.info("Incremental sync appended %d events, clock %d", len(appended), self.clock.current)

        for event in appended:
            await self.on_event.emit(event.conversation_id.id, event)

    @staticmethod
    def _register_participants(users: UserList, states: List[ConversationState]) -> None:
        for state in states:
            if state.conversation is None:
                continue
            for data in state.conversation.participant_data:
                try:
                    users.add_participant(data)
                except DecodeError as e:
                    logger.warning("Skipping participant: %s", e,
                                   extra={"conversation_id": state.conversation_id.id})

    # ========================================
    #           FRAME DISPATCH
    # ========================================

    async def _on_channel_receive(self, raw: RawFrame) -> None:
        try:
            frame = parse_frame(raw)
        except DecodeError as e:
            logger.warning("Dropping malformed frame: %s", e)
            return

        if frame.kind is FrameKind.NOOP:
            return
        try:
            require_known(frame)
        except UnknownFrameKindError as e:
            log_frame(logger, "warning", f"Ignoring frame: {e}", frame=frame)
            return

        updates: List[StateUpdate] = []
        events: List[Event] = []
        async with self._lock:
            if frame.client_id is not None:
                await self._handle_client_id(frame.client_id)
            if frame.payload is not None:
                if frame.is_batch_update:
                    try:
                        updates, events = self._apply_batch_update(frame)
                    except DecodeError as e:
                        log_frame(logger, "warning", f"Dropping malformed batch update: {e}", frame=frame)
                else:
                    log_frame(logger, "warning", "Ignoring payload", frame=frame)

        for event in events:
            await self.on_event.emit(event.conversation_id.id, event)
        for state_update in updates:
            await self.on_state_update.emit(state_update)

    async def _handle_client_id(self, client_id: str) -> None:
        """
        Store a new client id and add the services we need to the channel.

        The "babel" service carries the Hangouts updates. The server forgets
        services whenever a new channel (and client id) is created, so this
        runs for every client id received.
        """
        self.client_id = client_id
        logger.info("Received client id", extra={"client_id": client_id})
        try:
            await self.channel.send_maps(subscription_maps())
        except TransportError as e:
            logger.error("Failed to add channel services: %s", e, extra={"client_id": client_id})

    def _apply_batch_update(self, frame: Frame) -> Tuple[List[StateUpdate], List[Event]]:
        batch = pblite.decode(BatchUpdate, frame.payload, ignore_first_item=True)

        events: List[Event] = []
        for state_update in batch.state_update:
            header = state_update.state_update_header
            if header.active_client_state is not None:
                self.arbiter.active_client_state = header.active_client_state

            conversation = state_update.conversation
            if conversation is None and state_update.conversation_notification is not None:
                conversation = state_update.conversation_notification.conversation
            if conversation is not None:
                self.store.apply_conversation(conversation)

            notification = state_update.event_notification
            if notification is not None and notification.event is not None:
                if self.store.apply_event(notification.event):
                    events.append(notification.event)

            self.clock.advance(header.current_server_time)
        return list(batch.state_update), events

    # ========================================
    #           REQUESTS
    # ========================================

    def set_active(self) -> bool:
        """
        Set this client as active.

        While a client is active, no other clients raise notifications. Call
        this whenever there is an indication the user is interacting with this
        client; it only makes a request when necessary.
        """
        return self.arbiter.mark_interactive()

    async def upload_image(self, data: bytes, filename: str) -> str:
        """Upload an image that can later be attached to a chat message; returns the photo id."""
        return await upload_image(self.channel, data, filename, self.config.image_upload_url)
