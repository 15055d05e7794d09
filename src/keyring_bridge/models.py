"""Pydantic domain models and the secret payload codec.

Secret values cross the command channel as strings tagged with an encoding
prefix: ``UTF8:`` for text secrets and ``HEX:`` for binary secrets written
as lowercase hex.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

AttributeMap = dict[str, str]


class Entry(BaseModel):
    """One credential record as seen across the command channel.

    ``id`` is assigned by the backend when the entry is created and never
    changes afterwards.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    is_specifier: bool
    service: str | None = None
    user: str | None = None

    def to_wire(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Secret payload codec
# ---------------------------------------------------------------------------


class SecretEncoding(str, Enum):
    UTF8 = "UTF8"
    HEX = "HEX"


class SecretFormatError(ValueError):
    """A secret payload is missing a recognised encoding prefix."""


def utf8_payload(password: str) -> str:
    return f"{SecretEncoding.UTF8.value}:{password}"


def hex_payload(hex_secret: str) -> str:
    return f"{SecretEncoding.HEX.value}:{hex_secret}"


def encode_secret(secret: bytes) -> str:
    """Tag raw secret bytes: ``UTF8:`` if they decode as text, else ``HEX:``."""
    try:
        return utf8_payload(secret.decode("utf-8"))
    except UnicodeDecodeError:
        return hex_payload(secret.hex())


def split_secret_payload(payload: str) -> tuple[SecretEncoding, str]:
    """Split a payload into its encoding and the untouched remainder."""
    for encoding in SecretEncoding:
        prefix = f"{encoding.value}:"
        if payload.startswith(prefix):
            return encoding, payload[len(prefix):]
    raise SecretFormatError(
        "Invalid value format. Expected 'HEX:...' or 'UTF8:...'."
    )


def decode_secret_payload(payload: str) -> bytes:
    """Return the secret bytes described by a tagged payload.

    Raises
    ------
    SecretFormatError:
        If the prefix is unknown or a ``HEX:`` body is not valid hex.
    """
    encoding, body = split_secret_payload(payload)
    if encoding is SecretEncoding.UTF8:
        return body.encode("utf-8")
    try:
        return bytes.fromhex(body)
    except ValueError as exc:
        raise SecretFormatError("The secret value is not a valid hex string") from exc
