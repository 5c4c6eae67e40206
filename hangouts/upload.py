"""
Image upload: two sequential requests over the channel's HTTP primitive.

1. Create an upload session describing the file (name and size). The response
   holds the URL to put the bytes at.
2. POST the raw bytes to that URL. The response holds the photo id that can be
   attached to a chat message.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Sequence, Union

from hangouts.channel import Channel
from shared.envelope import DecodeError
from shared.log import get_logger

logger = get_logger(__name__)

IMAGE_UPLOAD_URL = "https://docs.google.com/upload/photos/resumable"

SESSION_CONTENT_TYPE = "application/x-www-form-urlencoded;charset=UTF-8"
DATA_CONTENT_TYPE = "application/octet-stream"


def create_session_body(filename: str, size: int) -> bytes:
    body = {
        "protocolVersion": "0.8",
        "createSessionRequest": {
            "fields": [
                {"external": {"name": "file", "filename": filename, "put": {}, "size": size}},
            ],
        },
    }
    return json.dumps(body, separators=(',', ':')).encode('utf-8')


def _dig(data: Any, path: Sequence[Union[str, int]], what: str) -> Any:
    """Follow ``path`` through nested objects and arrays."""
    node = data
    for step in path:
        try:
            node = node[step]
        except (KeyError, IndexError, TypeError):
            raise DecodeError(f"{what}: missing {'.'.join(str(s) for s in path)}")
    return node


def _json_body(raw: bytes, what: str) -> Dict[str, Any]:
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"{what}: invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise DecodeError(f"{what}: expected an object")
    return data


async def upload_image(channel: Channel, data: bytes, filename: str,
                       upload_url: str = IMAGE_UPLOAD_URL) -> str:
    """
    Upload an image and return its photo id.

    Raises:
        TransportError: a request failed
        DecodeError: a response did not have the expected shape
    """
    raw = await channel.base_request(upload_url, SESSION_CONTENT_TYPE, create_session_body(filename, len(data)))
    session = _json_body(raw, "upload session")
    put_url = _dig(session, ("sessionStatus", "externalFieldTransfers", 0, "putInfo", "url"), "upload session")
    if not isinstance(put_url, str):
        raise DecodeError("upload session: putInfo.url must be a string")
    logger.debug("Uploading %d bytes of %s", len(data), filename)

    raw = await channel.base_request(put_url, DATA_CONTENT_TYPE, data)
    result = _json_body(raw, "upload result")
    photo_id = _dig(
        result,
        (
            "sessionStatus",
            "additionalInfo",
            "uploader_service.GoogleRupioAdditionalInfo",
            "completionInfo",
            "customerSpecificInfo",
            "photoid",
        ),
        "upload result",
    )
    if not isinstance(photo_id, str):
        raise DecodeError("upload result: photoid must be a string")
    logger.info("Uploaded %s as photo %s", filename, photo_id)
    return photo_id
