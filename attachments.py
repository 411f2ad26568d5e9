"""
Attachment staging.

Files are encoded as self-describing data URIs and checked against the size
limit before they can enter the pipeline.
"""
import base64
import logging
import mimetypes
import os
import re
from typing import Optional, Tuple

from config import MAX_ATTACHMENT_BYTES
from errors import AttachmentTooLarge
from models import Attachment

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<payload>[A-Za-z0-9+/=]*)$")


def to_data_uri(data: bytes, mime_type: str) -> str:
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{payload}"


def parse_data_uri(uri: str) -> Tuple[str, bytes]:
    """Split a base64 data URI into (mime_type, raw bytes)."""
    match = _DATA_URI_RE.match(uri)
    if not match:
        raise ValueError("Not a base64 data URI")
    return match.group("mime"), base64.b64decode(match.group("payload"))


def guess_mime_type(name: str) -> str:
    mime_type, _ = mimetypes.guess_type(name)
    return mime_type or DEFAULT_MIME_TYPE


def check_size(name: str, uri: str, limit: Optional[int] = None) -> None:
    if limit is None:
        limit = MAX_ATTACHMENT_BYTES
    size = len(uri)
    if size > limit:
        logger.info(f"Rejected attachment '{name}': {size} bytes encoded (limit {limit})")
        raise AttachmentTooLarge(name, size, limit)


def attachment_from_bytes(
    data: bytes,
    name: str,
    mime_type: Optional[str] = None,
    limit: Optional[int] = None,
) -> Attachment:
    """Encode raw bytes as an Attachment, enforcing the size limit."""
    mime_type = mime_type or guess_mime_type(name)
    uri = to_data_uri(data, mime_type)
    check_size(name, uri, limit)
    return Attachment(data=uri, name=name, mime_type=mime_type)


def attachment_from_data_uri(uri: str, name: str, limit: Optional[int] = None) -> Attachment:
    """Validate an already-encoded data URI (e.g. from a browser upload)."""
    check_size(name, uri, limit)
    mime_type, _ = parse_data_uri(uri)
    return Attachment(data=uri, name=name, mime_type=mime_type)


def load_attachment(path: str, limit: Optional[int] = None) -> Attachment:
    """Read a file from disk and stage it as an Attachment."""
    name = os.path.basename(path)
    with open(path, "rb") as f:
        data = f.read()
    return attachment_from_bytes(data, name, limit=limit)


def is_image(attachment_or_mime) -> bool:
    mime_type = getattr(attachment_or_mime, "mime_type", attachment_or_mime) or ""
    return mime_type.startswith("image/")
