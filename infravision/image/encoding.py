"""Data-URL helpers for self-contained image payloads.

Image assets travel through the system as `data:<mime>;base64,<payload>` strings so
that stored results never depend on the backend staying reachable.
"""

import base64
import binascii

from infravision.core.errors import PreconditionViolation


DEFAULT_MIME_TYPE = "image/png"

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}


def encode_data_url(content: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> str:
    payload = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type or DEFAULT_MIME_TYPE};base64,{payload}"


def decode_data_url(data_url: str) -> tuple[str, bytes]:
    """Split a base64 data URL into `(mime_type, raw_bytes)`.

    Raises:
        PreconditionViolation: For non-data URLs, non-base64 encodings, or a
            payload that is not valid base64.
    """
    if not isinstance(data_url, str) or not data_url.startswith("data:"):
        raise PreconditionViolation("Image content must be a data URL.")

    header, sep, payload = data_url.partition(",")
    if not sep or not header.endswith(";base64"):
        raise PreconditionViolation("Image content must be a base64 data URL.")

    mime_type = header[len("data:"):-len(";base64")] or DEFAULT_MIME_TYPE
    try:
        content = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise PreconditionViolation("Image content is not valid base64.") from None
    return mime_type, content


def extension_for(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type, "png")
