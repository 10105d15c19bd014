"""Wire data models for the blob storage protocol.

This module contains the pydantic models exchanged with servers (blob
descriptors, signed auth events, payment requests) and the small value types
the client builds around an upload payload.
"""

import base64
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BlobDescriptor(BaseModel):
    """Descriptor returned by a server for a stored blob."""
    model_config = ConfigDict(extra="allow")

    sha256: str                     # Content identity
    size: int                       # Size in bytes
    type: Optional[str] = None      # MIME type
    url: str                        # Server-specific retrieval location
    uploaded: int = 0               # Unix seconds

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_created(cls, data):
        """Older servers report `created` instead of `uploaded`."""
        if isinstance(data, dict) and "uploaded" not in data and "created" in data:
            data = {**data, "uploaded": data["created"]}
        return data


class EventTemplate(BaseModel):
    """Unsigned nostr event draft handed to a signer."""
    kind: int
    created_at: int = Field(default_factory=lambda: int(time.time()))
    content: str = ""
    tags: List[List[str]] = Field(default_factory=list)

    def get_tag(self, name: str) -> Optional[str]:
        """Return the first value of tag `name`, if any."""
        for tag in self.tags:
            if len(tag) > 1 and tag[0] == name:
                return tag[1]
        return None

    def get_tag_values(self, name: str) -> List[str]:
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    @property
    def auth_type(self) -> Optional[str]:
        """Action type of an auth event (`t` tag)."""
        return self.get_tag("t")

    @property
    def expiration(self) -> Optional[int]:
        value = self.get_tag("expiration")
        try:
            return int(value) if value is not None else None
        except ValueError:
            return None

    def is_expired(self, now: Optional[float] = None) -> bool:
        expiration = self.expiration
        if expiration is None:
            return False
        return expiration <= (now if now is not None else time.time())


class SignedEvent(EventTemplate):
    """Signed nostr event, used as a capability token."""
    id: str
    pubkey: str
    sig: str

    def to_json(self) -> str:
        """Compact JSON as sent inside the Authorization header."""
        return json.dumps(self.model_dump(), separators=(",", ":"))


class PaymentRequest(BaseModel):
    """Payment requirement issued by a server in a 402 response.

    Field names follow the cashu NUT-18 encoding; readable properties are
    provided for callers.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    i: Optional[str] = None                     # Request id
    a: Optional[int] = None                     # Amount
    u: Optional[str] = None                     # Unit
    s: Optional[bool] = None                    # Single use
    m: List[str] = Field(default_factory=list)  # Accepted mints
    d: Optional[str] = None                     # Description
    t: List[Dict] = Field(default_factory=list)  # Transports

    @property
    def amount(self) -> Optional[int]:
        return self.a

    @property
    def unit(self) -> Optional[str]:
        return self.u

    @property
    def mints(self) -> List[str]:
        return self.m

    @property
    def description(self) -> Optional[str]:
        return self.d

    @classmethod
    def decode(cls, encoded: str) -> "PaymentRequest":
        """Decode a base64 JSON payment request header value.

        A leading `creq` prefix with version byte `A` is tolerated.
        """
        raw = encoded.strip()
        if raw.startswith("creqA"):
            raw = raw[5:]
        padded = raw + "=" * (-len(raw) % 4)
        try:
            data = json.loads(base64.urlsafe_b64decode(padded.replace("+", "-").replace("/", "_")))
        except (ValueError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid payment request encoding: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Payment request is not a JSON object")
        return cls.model_validate(data)

    def encode(self) -> str:
        """Encode as the base64 JSON form servers send in X-Cashu."""
        data = self.model_dump(exclude_none=True)
        return base64.b64encode(json.dumps(data, separators=(",", ":")).encode()).decode()


def encode_payment_token(token: Union[str, dict, BaseModel]) -> str:
    """Encode a payment proof for the X-Cashu request header.

    Strings are assumed to be encoded tokens already. Mappings and models are
    serialized as V3 cashu tokens ("cashuA" + unpadded base64url JSON).
    """
    if isinstance(token, str):
        return token
    if isinstance(token, BaseModel):
        token = token.model_dump(exclude_none=True)
    payload = json.dumps(token, separators=(",", ":")).encode()
    return "cashuA" + base64.urlsafe_b64encode(payload).decode().rstrip("=")


@dataclass(frozen=True)
class Blob:
    """Upload payload with an explicit MIME type."""
    data: Union[bytes, bytearray, Path]
    type: Optional[str] = None


# Anything the upload actions accept as content
UploadPayload = Union[bytes, bytearray, Path, Blob]


@dataclass(frozen=True)
class BlobInfo:
    """Identity of an upload payload as computed by a HashProvider."""
    sha256: str
    size: int
    type: Optional[str] = None
