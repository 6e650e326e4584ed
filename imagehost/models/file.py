import json
import os

from pydantic import BaseModel, ConfigDict, Field, field_validator

NONCE_SIZE = 12


def random_nonce() -> bytes:
    return os.urandom(NONCE_SIZE)


class FileReference(BaseModel):
    """Everything needed to fetch a stored image back from the backend.

    A reference is never stored server-side: it is encrypted into the image
    token handed to the client. The nonce is drawn once per reference and
    reused for every encoding, so encoding the same reference twice yields the
    same token.
    """
    model_config = ConfigDict(frozen=True)

    backend_handle: str = Field(..., description="Telegram file_id of the stored document")
    backend_message_id: int = Field(..., description="Telegram message_id carrying the document")
    nonce: bytes = Field(default_factory=random_nonce, description="AES-GCM nonce used for the token")
    size: int = Field(..., ge=0, description="Size of the decrypted image in bytes")
    mime_type: str = Field(..., description="MIME type the image is served with")

    @field_validator("nonce")
    @classmethod
    def _check_nonce(cls, value: bytes) -> bytes:
        if len(value) != NONCE_SIZE:
            raise ValueError(f"nonce must be {NONCE_SIZE} bytes")
        return value

    def to_canonical(self) -> bytes:
        """Serialize to the compact JSON form that goes inside a token."""
        return json.dumps(
            {
                "file_id": self.backend_handle,
                "message_id": self.backend_message_id,
                "nonce": list(self.nonce),
                "file_size": self.size,
                "mime_type": self.mime_type,
            },
            separators=(",", ":"),
        ).encode("utf-8")

    @classmethod
    def from_canonical(cls, data: bytes) -> "FileReference":
        """Inverse of ``to_canonical``.

        Raises ``ValueError``, ``KeyError`` or ``TypeError`` on malformed input.
        """
        raw = json.loads(data.decode("utf-8"))
        return cls(
            backend_handle=raw["file_id"],
            backend_message_id=raw["message_id"],
            nonce=bytes(raw["nonce"]),
            size=raw["file_size"],
            mime_type=raw["mime_type"],
        )
