"""
In-memory mirror of the server's conversations and their event logs.

Event logs are append-only. An event is identified within its conversation by
its timestamp, which is also the sort key, so an event whose timestamp is
already present is never appended again. Incremental updates are filtered
against the session clock: anything not newer than the clock was already seen.
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Set

from hangouts.core.MessageTypes import (
    Conversation as ConversationMessage,
    ConversationState,
    Event,
    ParticipantId,
)
from hangouts.core.SessionClock import SessionClock
from shared.envelope import UnknownConversationError
from shared.log import get_logger

logger = get_logger(__name__)


class Conversation:
    """A conversation: metadata from the server plus its ordered event log."""

    def __init__(self, conversation_id: str, metadata: Optional[ConversationMessage] = None):
        self.id = conversation_id
        self.metadata = metadata
        self._events: List[Event] = []
        self._timestamps: Set[int] = set()

    @property
    def events(self) -> List[Event]:
        return list(self._events)

    @property
    def name(self) -> Optional[str]:
        return self.metadata.name if self.metadata else None

    @property
    def participants(self) -> List[ParticipantId]:
        return list(self.metadata.current_participant) if self.metadata else []

    @property
    def latest_timestamp(self) -> int:
        return self._events[-1].timestamp if self._events else 0

    @property
    def last_event(self) -> Optional[Event]:
        return self._events[-1] if self._events else None

    def has_event(self, timestamp: int) -> bool:
        return timestamp in self._timestamps

    def update_metadata(self, metadata: Optional[ConversationMessage]) -> None:
        """Replace the metadata; a missing update keeps what we have."""
        if metadata is not None:
            self.metadata = metadata

    def add_event(self, event: Event) -> bool:
        """
        Append an event to the log.

        Returns:
            False if the timestamp is already logged or older than the newest
            event, since the log is never reordered.
        """
        if event.timestamp in self._timestamps:
            logger.debug("Duplicate event at %d", event.timestamp, extra={"conversation_id": self.id})
            return False
        if event.timestamp < self.latest_timestamp:
            logger.debug("Out-of-order event at %d (latest %d)", event.timestamp, self.latest_timestamp,
                         extra={"conversation_id": self.id})
            return False
        self._events.append(event)
        self._timestamps.add(event.timestamp)
        return True

    def __len__(self) -> int:
        return len(self._events)

    def __repr__(self) -> str:
        return f"Conversation(id={self.id!r}, events={len(self._events)})"


def _sorted_events(events: Iterable[Event]) -> List[Event]:
    return sorted(events, key=lambda e: e.timestamp)


class ConversationStore:
    """Authoritative in-memory conversation list for one session."""

    def __init__(self, clock: SessionClock):
        self.clock = clock
        self._conversations: Dict[str, Conversation] = {}

    # ========================================
    #           QUERIES
    # ========================================

    def lookup(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise UnknownConversationError(f"Unknown conversation {conversation_id}")
        return conversation

    @property
    def conversations(self) -> List[Conversation]:
        """Conversations, most recently active first."""
        return sorted(self._conversations.values(), key=lambda c: c.latest_timestamp, reverse=True)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    def __iter__(self) -> Iterator[Conversation]:
        return iter(list(self._conversations.values()))

    # ========================================
    #           MUTATIONS
    # ========================================

    def _create(self, conversation_id: str, metadata: Optional[ConversationMessage],
                events: Iterable[Event]) -> Conversation:
        conversation = Conversation(conversation_id, metadata)
        for event in _sorted_events(events):
            if event.conversation_id.id != conversation_id:
                logger.warning("Dropping event for %s found in another conversation's state",
                               event.conversation_id.id, extra={"conversation_id": conversation_id})
                continue
            conversation.add_event(event)
        self._conversations[conversation_id] = conversation
        logger.debug("Added conversation with %d events", len(conversation),
                     extra={"conversation_id": conversation_id})
        return conversation

    def apply_full_sync(self, conversation_states: Iterable[ConversationState]) -> int:
        """
        Bulk-load conversations and their initial event logs.

        Used once at session start. Returns the number of conversations loaded.
        """
        count = 0
        for state in conversation_states:
            conversation_id = state.conversation_id.id
            existing = self._conversations.get(conversation_id)
            if existing is not None:
                existing.update_metadata(state.conversation)
                for event in _sorted_events(state.event):
                    existing.add_event(event)
            else:
                self._create(conversation_id, state.conversation, state.event)
            count += 1
        logger.info("Loaded %d conversations from full sync", count)
        return count

    def apply_incremental_state(self, conversation_id: str,
                                metadata: Optional[ConversationMessage],
                                events: Iterable[Event]) -> List[Event]:
        """
        Merge one conversation's state from an incremental sync.

        A known conversation gets its metadata replaced and only the events
        newer than the session clock appended. An unknown conversation is
        created from the metadata and the full event list.

        Returns:
            Events appended to an already known conversation, in ascending
            timestamp order. Creating a conversation reports nothing.
        """
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            self._create(conversation_id, metadata, events)
            return []

        conversation.update_metadata(metadata)
        appended: List[Event] = []
        for event in _sorted_events(events):
            if not self.clock.should_apply(event.timestamp):
                continue
            target = conversation
            if event.conversation_id.id != conversation_id:
                target = self._conversations.get(event.conversation_id.id)
                if target is None:
                    logger.warning("Received event for unknown conversation %s", event.conversation_id.id)
                    continue
            if target.add_event(event):
                appended.append(event)
        return appended

    def apply_conversation(self, metadata: ConversationMessage) -> Conversation:
        """Create or update a conversation from a pushed Conversation message."""
        conversation_id = metadata.conversation_id.id
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return self._create(conversation_id, metadata, [])
        conversation.update_metadata(metadata)
        return conversation

    def apply_event(self, event: Event) -> bool:
        """
        Append a live event pushed in a batch update.

        Stale events are dropped silently; events for conversations not in
        the store are logged and dropped.
        """
        if not self.clock.should_apply(event.timestamp):
            return False
        conversation = self._conversations.get(event.conversation_id.id)
        if conversation is None:
            logger.warning("Received event for unknown conversation %s", event.conversation_id.id)
            return False
        return conversation.add_event(event)
