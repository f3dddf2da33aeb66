import base64
import binascii
from typing import Optional, Tuple


class DataUriError(ValueError):
    pass


def encode_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_uri(data_uri: str, expected_mime: Optional[str] = None) -> Tuple[str, bytes]:
    """
    Split a base64 data URI into its mime type and payload.

    Raises:
        DataUriError: malformed URI, unexpected mime type or corrupted base64
    """
    if not data_uri or not isinstance(data_uri, str):
        raise DataUriError("Invalid input: data URI is required and must be a string.")
    if not data_uri.startswith("data:") or "," not in data_uri:
        raise DataUriError('Invalid data URI format. Expected "data:<mimetype>;base64,<data>".')

    header, payload = data_uri[5:].split(",", 1)
    if not header.endswith(";base64"):
        raise DataUriError("Invalid data URI: only base64 encoded data is supported.")
    mime_type = header[: -len(";base64")]

    if expected_mime and mime_type != expected_mime:
        raise DataUriError(f'Invalid data URI format. Expected "data:{expected_mime};base64,<data>".')
    if not payload:
        raise DataUriError("Invalid data URI: missing or empty base64 data.")

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise DataUriError("Invalid data URI: base64 data appears to be corrupted.")
    return mime_type, data
