"""Response schemas for the upload service."""

from pydantic import BaseModel, ConfigDict, Field


class UploadResult(BaseModel):
    """Descriptor of a stored upload returned to clients."""

    model_config = ConfigDict(frozen=True)

    file_id: str = Field(..., description="Identifier of the stored object (last segment of its location)")
    size: int = Field(..., ge=0, description="Number of bytes stored")
    sha256: str = Field(..., description="Lowercase hex SHA-256 of the stored bytes")
    location: str = Field(..., description="Canonical location of the object in the store")

    @classmethod
    def from_location(cls, location: str, sha256: str, size: int) -> "UploadResult":
        file_id = location.rstrip("/").rsplit("/", 1)[-1]
        return cls(file_id=file_id, size=size, sha256=sha256, location=location)
