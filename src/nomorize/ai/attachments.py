"""Attachment loading: image blobs to inline provider payloads."""

import base64
import binascii
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

DEFAULT_TIMEOUT = 10.0
MAX_ATTACHMENT_BYTES = 20_000_000  # inline request limit of the providers


class AttachmentReadError(Exception):
    """Raised when an attachment cannot be read as an image."""


@dataclass(frozen=True)
class InlineMedia:
    """Binary media ready to be sent inline to a completion provider."""

    data: bytes
    mime_type: str

    def to_base64(self) -> str:
        """Encode the bytes for transport."""
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        """Return the media as a data: URL."""
        return f"data:{self.mime_type};base64,{self.to_base64()}"


def _validate(data: bytes, mime_type: str | None, ref: str) -> InlineMedia:
    if not data:
        raise AttachmentReadError(f"Attachment is empty: {ref}")
    if len(data) > MAX_ATTACHMENT_BYTES:
        raise AttachmentReadError(f"Attachment too large ({len(data)} bytes): {ref}")
    if not mime_type or not mime_type.startswith("image/"):
        raise AttachmentReadError(f"Not an image ({mime_type or 'unknown type'}): {ref}")
    return InlineMedia(data=data, mime_type=mime_type)


def _read_data_url(ref: str, mime_type: str | None) -> InlineMedia:
    # data:image/png;base64,....
    header, sep, payload = ref.partition(",")
    if not sep or ";base64" not in header:
        raise AttachmentReadError("Only base64 data URLs are supported")
    declared = header[len("data:"):].split(";")[0] or None
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AttachmentReadError(f"Invalid base64 payload: {e}") from e
    return _validate(data, mime_type or declared, "data URL")


def _read_url(ref: str, mime_type: str | None, timeout: float) -> InlineMedia:
    try:
        response = httpx.get(ref, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise AttachmentReadError(f"Failed to fetch {ref}: {e}") from e

    if mime_type is None:
        content_type = response.headers.get("content-type", "")
        mime_type = content_type.split(";")[0].strip() or mimetypes.guess_type(ref)[0]
    return _validate(response.content, mime_type, ref)


def _read_file(ref: str, mime_type: str | None) -> InlineMedia:
    if ref.startswith("file://"):
        ref = unquote(urlparse(ref).path)
    path = Path(ref).expanduser()
    try:
        data = path.read_bytes()
    except OSError as e:
        raise AttachmentReadError(f"Cannot read {path}: {e}") from e
    return _validate(data, mime_type or mimetypes.guess_type(path.name)[0], str(path))


def load_attachment(
    ref: str,
    mime_type: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> InlineMedia:
    """Load an image attachment into an inline payload.

    Args:
        ref: A file path, file:// URL, data: URL or http(s) URL.
        mime_type: Media type, guessed from the reference when omitted.
        timeout: Timeout in seconds for remote fetches.

    Returns:
        The image bytes tagged with their media type.

    Raises:
        AttachmentReadError: If the blob cannot be read or is not an image.
    """
    if not ref:
        raise AttachmentReadError("Empty attachment reference")
    if ref.startswith("data:"):
        return _read_data_url(ref, mime_type)
    if ref.startswith(("http://", "https://")):
        return _read_url(ref, mime_type, timeout)
    return _read_file(ref, mime_type)
