from __future__ import annotations

from enum import IntEnum

from shared.pblite import Field, Message


# ========================================
#           ENUMS
# ========================================

class ActiveClientState(IntEnum):
    """Server-reported leadership state for this client."""
    IS_INACTIVE = 0          # no client is active
    IS_ACTIVE = 1            # this client is the active one
    OTHER_CLIENT_ACTIVE = 2  # another device holds leadership

    @property
    def is_active(self) -> bool:
        return self is ActiveClientState.IS_ACTIVE


class ResponseStatus(IntEnum):
    UNKNOWN = 0
    OK = 1
    BUSY = 2
    UNEXPECTED_ERROR = 3
    INVALID_REQUEST = 4


class ConversationType(IntEnum):
    UNKNOWN = 0
    ONE_TO_ONE = 1
    GROUP = 2


class ConversationStatus(IntEnum):
    UNKNOWN = 0
    INVITED = 1
    ACTIVE = 2
    LEFT = 3


class ConversationView(IntEnum):
    UNKNOWN = 0
    INBOX = 1
    ARCHIVED = 2


class NotificationLevel(IntEnum):
    UNKNOWN = 0
    QUIET = 10
    RING = 30


class EventType(IntEnum):
    UNKNOWN = 0
    REGULAR_CHAT_MESSAGE = 1
    SMS = 2
    VOICEMAIL = 3
    ADD_USER = 4
    REMOVE_USER = 5
    CONVERSATION_RENAME = 6
    HANGOUT = 7
    PHONE_CALL = 8
    OTR_MODIFICATION = 9
    PLAN_MUTATION = 10
    MMS = 11
    DEPRECATED_12 = 12
    OBSERVED_EVENT = 13
    GROUP_LINK_SHARING_MODIFICATION = 14


class SegmentType(IntEnum):
    TEXT = 0
    LINE_BREAK = 1
    LINK = 2


class MembershipChangeType(IntEnum):
    JOIN = 1
    LEAVE = 2


class TypingType(IntEnum):
    UNKNOWN = 0
    STARTED = 1
    PAUSED = 2
    STOPPED = 3


# ========================================
#           IDENTIFIERS & HEADERS
# ========================================

class ConversationId(Message):
    FIELDS = (
        Field(1, "id", str, required=True),
    )


class ParticipantId(Message):
    FIELDS = (
        Field(1, "gaia_id", str),
        Field(2, "chat_id", str),
    )


class ClientVersion(Message):
    FIELDS = (
        Field(1, "client_id", int),
        Field(2, "build_type", int),
        Field(3, "major_version", str),
        Field(4, "version_timestamp", int),
    )


class ClientIdentifier(Message):
    FIELDS = (
        Field(1, "resource", str),
        Field(2, "header_id", str),
    )


class RequestHeader(Message):
    FIELDS = (
        Field(1, "client_version", ClientVersion),
        Field(2, "client_identifier", ClientIdentifier),
        Field(4, "language_code", str),
    )


class ResponseHeader(Message):
    FIELDS = (
        Field(1, "status", ResponseStatus),
        Field(2, "error_description", str),
        Field(3, "debug_url", str),
        Field(4, "request_trace_id", str),
        Field(5, "current_server_time", int),
    )


# ========================================
#           EVENTS
# ========================================

class Segment(Message):
    FIELDS = (
        Field(1, "type", SegmentType),
        Field(2, "text", str),
    )


class MessageContent(Message):
    FIELDS = (
        Field(1, "segment", Segment, repeated=True),
    )


class ChatMessage(Message):
    FIELDS = (
        Field(2, "message_content", MessageContent),
    )

    @property
    def text(self) -> str:
        """Plain text of the message, line breaks as newlines."""
        if self.message_content is None:
            return ""
        parts = []
        for segment in self.message_content.segment:
            if segment.type is SegmentType.LINE_BREAK:
                parts.append("\n")
            else:
                parts.append(segment.text or "")
        return "".join(parts)


class MembershipChange(Message):
    FIELDS = (
        Field(1, "type", MembershipChangeType),
        Field(3, "participant_ids", ParticipantId, repeated=True),
    )


class ConversationRename(Message):
    FIELDS = (
        Field(1, "new_name", str),
        Field(2, "old_name", str),
    )


class Event(Message):
    """One entry of a conversation's event log, ordered by ``timestamp``."""
    FIELDS = (
        Field(1, "conversation_id", ConversationId, required=True),
        Field(2, "sender_id", ParticipantId),
        Field(3, "timestamp", int, required=True),
        Field(7, "chat_message", ChatMessage),
        Field(9, "membership_change", MembershipChange),
        Field(10, "conversation_rename", ConversationRename),
        Field(12, "event_id", str),
        Field(13, "expiration_timestamp", int),
        Field(15, "advances_sort_timestamp", bool),
        Field(23, "event_type", EventType),
    )


# ========================================
#           CONVERSATIONS & ENTITIES
# ========================================

class UserReadState(Message):
    FIELDS = (
        Field(1, "participant_id", ParticipantId),
        Field(2, "latest_read_timestamp", int),
    )


class SelfConversationState(Message):
    FIELDS = (
        Field(7, "self_read_state", UserReadState),
        Field(8, "status", ConversationStatus),
        Field(9, "notification_level", NotificationLevel),
        Field(10, "view", ConversationView, repeated=True),
        Field(11, "inviter_id", ParticipantId),
        Field(12, "invite_timestamp", int),
        Field(13, "sort_timestamp", int),
        Field(14, "active_timestamp", int),
    )


class ConversationParticipantData(Message):
    FIELDS = (
        Field(1, "id", ParticipantId),
        Field(2, "fallback_name", str),
    )


class Conversation(Message):
    FIELDS = (
        Field(1, "conversation_id", ConversationId, required=True),
        Field(2, "type", ConversationType),
        Field(3, "name", str),
        Field(4, "self_conversation_state", SelfConversationState),
        Field(8, "read_state", UserReadState, repeated=True),
        Field(9, "has_active_hangout", bool),
        Field(13, "current_participant", ParticipantId, repeated=True),
        Field(14, "participant_data", ConversationParticipantData, repeated=True),
    )


class EventContinuationToken(Message):
    FIELDS = (
        Field(1, "event_id", str),
        Field(2, "storage_continuation_token", str),
        Field(3, "event_timestamp", int),
    )


class ConversationState(Message):
    FIELDS = (
        Field(1, "conversation_id", ConversationId, required=True),
        Field(2, "conversation", Conversation),
        Field(3, "event", Event, repeated=True),
        Field(5, "event_continuation_token", EventContinuationToken),
    )


class EntityProperties(Message):
    FIELDS = (
        Field(1, "type", int),
        Field(2, "display_name", str),
        Field(3, "first_name", str),
        Field(4, "photo_url", str),
        Field(5, "email", str, repeated=True),
        Field(6, "phone", str, repeated=True),
    )


class Entity(Message):
    """Server-side user profile."""
    FIELDS = (
        Field(9, "id", ParticipantId),
        Field(10, "properties", EntityProperties),
        Field(13, "entity_type", int),
    )


# ========================================
#           STATE UPDATES
# ========================================

class StateUpdateHeader(Message):
    FIELDS = (
        Field(1, "active_client_state", ActiveClientState),
        Field(3, "request_trace_id", str),
        Field(5, "current_server_time", int, required=True),
    )


class ConversationNotification(Message):
    FIELDS = (
        Field(1, "conversation", Conversation),
    )


class EventNotification(Message):
    FIELDS = (
        Field(1, "event", Event),
    )


class TypingNotification(Message):
    FIELDS = (
        Field(1, "conversation_id", ConversationId),
        Field(2, "sender_id", ParticipantId),
        Field(3, "timestamp", int),
        Field(4, "type", TypingType),
    )


class WatermarkNotification(Message):
    FIELDS = (
        Field(1, "sender_id", ParticipantId),
        Field(2, "conversation_id", ConversationId),
        Field(3, "latest_read_timestamp", int),
    )


class StateUpdate(Message):
    FIELDS = (
        Field(1, "state_update_header", StateUpdateHeader, required=True),
        Field(2, "conversation_notification", ConversationNotification),
        Field(3, "event_notification", EventNotification),
        Field(5, "typing_notification", TypingNotification),
        Field(8, "watermark_notification", WatermarkNotification),
        Field(13, "conversation", Conversation),
    )


class BatchUpdate(Message):
    """Pushed on the channel with the ``"cbu"`` tag at position 0."""
    FIELDS = (
        Field(1, "state_update", StateUpdate, repeated=True),
    )


# ========================================
#           REQUESTS & RESPONSES
# ========================================

class GetSelfInfoRequest(Message):
    FIELDS = (
        Field(1, "request_header", RequestHeader),
    )


class GetSelfInfoResponse(Message):
    FIELDS = (
        Field(1, "response_header", ResponseHeader),
        Field(2, "self_entity", Entity),
    )


class SyncAllNewEventsRequest(Message):
    FIELDS = (
        Field(1, "request_header", RequestHeader),
        Field(2, "last_sync_timestamp", int),
        Field(8, "max_response_size_bytes", int),
    )


class SyncAllNewEventsResponse(Message):
    FIELDS = (
        Field(1, "response_header", ResponseHeader),
        Field(2, "sync_timestamp", int),
        Field(3, "conversation_state", ConversationState, repeated=True),
    )


class SyncRecentConversationsRequest(Message):
    FIELDS = (
        Field(1, "request_header", RequestHeader),
        Field(2, "end_timestamp", int),
        Field(3, "max_conversations", int),
        Field(4, "max_events_per_conversation", int),
    )


class SyncRecentConversationsResponse(Message):
    FIELDS = (
        Field(1, "response_header", ResponseHeader),
        Field(2, "sync_timestamp", int),
        Field(3, "conversation_state", ConversationState, repeated=True),
        Field(4, "continuation_end_timestamp", int),
    )


class SetActiveClientRequest(Message):
    FIELDS = (
        Field(1, "request_header", RequestHeader),
        Field(2, "is_active", bool),
        Field(3, "full_jid", str),
        Field(4, "timeout_secs", int),
    )


class SetActiveClientResponse(Message):
    FIELDS = (
        Field(1, "response_header", ResponseHeader),
    )
