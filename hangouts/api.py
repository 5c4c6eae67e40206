"""
Chat API requests made over the channel's HTTP primitive.

Requests and responses are pblite JSON (``application/json+protobuf`` with
``alt=protojson``). Responses carry a type tag at position 0, so they are
decoded with ``ignore_first_item``.
"""

from __future__ import annotations

import json
from typing import Type, TypeVar

from hangouts.channel import Channel
from hangouts.core.MessageTypes import (
    ClientIdentifier,
    ClientVersion,
    GetSelfInfoRequest,
    GetSelfInfoResponse,
    RequestHeader,
    ResponseStatus,
    SetActiveClientRequest,
    SetActiveClientResponse,
    SyncAllNewEventsRequest,
    SyncAllNewEventsResponse,
    SyncRecentConversationsRequest,
    SyncRecentConversationsResponse,
)
from shared import pblite
from shared.config import ClientConfig
from shared.envelope import DecodeError, TransportError
from shared.log import get_logger

logger = get_logger(__name__)

R = TypeVar("R", bound=pblite.Message)

CONTENT_TYPE = "application/json+protobuf"


class ChatApi:
    """The subset of the chat API the protocol client needs."""

    def __init__(self, channel: Channel, config: ClientConfig):
        self.channel = channel
        self.config = config

    def _request_header(self) -> RequestHeader:
        return RequestHeader(
            client_version=ClientVersion(major_version=self.config.client_version),
            client_identifier=ClientIdentifier(),
            language_code=self.config.language_code,
        )

    async def _pb_request(self, endpoint: str, request: pblite.Message, response_cls: Type[R]) -> R:
        url = f"{self.config.api_base_url}/{endpoint}?alt=protojson"
        body = json.dumps(pblite.encode(request), separators=(',', ':')).encode('utf-8')
        logger.debug("Sending %s request", endpoint)
        raw = await self.channel.base_request(url, CONTENT_TYPE, body)
        try:
            decoded = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"{endpoint}: invalid JSON response: {e}") from e
        response = pblite.decode(response_cls, decoded, ignore_first_item=True)

        header = response.response_header
        if header is None or header.status is not ResponseStatus.OK:
            status = header.status.name if header is not None and header.status is not None else "UNKNOWN"
            detail = header.error_description if header is not None else None
            raise TransportError(f"{endpoint} failed with status {status}: {detail or 'no description'}")
        return response

    async def get_self_info(self) -> GetSelfInfoResponse:
        """Fetch the signed-in user's own entity."""
        return await self._pb_request(
            "contacts/getselfinfo",
            GetSelfInfoRequest(request_header=self._request_header()),
            GetSelfInfoResponse,
        )

    async def sync_all_new_events(self, last_sync_timestamp: int) -> SyncAllNewEventsResponse:
        """List every conversation state that changed since ``last_sync_timestamp``."""
        return await self._pb_request(
            "conversations/syncallnewevents",
            SyncAllNewEventsRequest(
                request_header=self._request_header(),
                last_sync_timestamp=last_sync_timestamp,
                max_response_size_bytes=self.config.max_response_size_bytes,
            ),
            SyncAllNewEventsResponse,
        )

    async def sync_recent_conversations(self, max_conversations: int = 100,
                                        max_events_per_conversation: int = 1) -> SyncRecentConversationsResponse:
        """Fetch the most recent conversations with their latest events."""
        return await self._pb_request(
            "conversations/syncrecentconversations",
            SyncRecentConversationsRequest(
                request_header=self._request_header(),
                max_conversations=max_conversations,
                max_events_per_conversation=max_events_per_conversation,
            ),
            SyncRecentConversationsResponse,
        )

    async def set_active_client(self, is_active: bool, full_jid: str, timeout_secs: int) -> SetActiveClientResponse:
        """Claim (or release) the account's active client role."""
        return await self._pb_request(
            "clients/setactiveclient",
            SetActiveClientRequest(
                request_header=self._request_header(),
                is_active=is_active,
                full_jid=full_jid,
                timeout_secs=timeout_secs,
            ),
            SetActiveClientResponse,
        )
