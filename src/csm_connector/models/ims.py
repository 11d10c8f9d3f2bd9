"""IMS record models: images, recipes, jobs and public keys."""

from typing import Dict, Optional, Sequence
from pydantic import BaseModel, Field


class Link(BaseModel):
    """Location of an artifact in the object store."""
    path: str
    etag: Optional[str] = None
    type: Optional[str] = None

    class Config:
        """Pydantic config."""
        extra = "ignore"


class Image(BaseModel):
    """IMS image record."""
    id: Optional[str] = None
    name: str
    created: Optional[str] = None
    link: Optional[Link] = None
    arch: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None

    class Config:
        """Pydantic config."""
        extra = "ignore"


class Recipe(BaseModel):
    """IMS recipe record."""
    id: str
    name: str
    recipe_type: Optional[str] = None
    linux_distribution: Optional[str] = None
    link: Optional[Link] = None
    arch: Optional[str] = None

    class Config:
        """Pydantic config."""
        extra = "ignore"


class PublicKey(BaseModel):
    """IMS public key record."""
    id: str
    name: str
    public_key: Optional[str] = None

    class Config:
        """Pydantic config."""
        extra = "ignore"


class Job(BaseModel):
    """IMS job that builds an image from a recipe."""
    id: Optional[str] = None
    job_type: str = Field(default="create")
    image_root_archive_name: str
    kernel_file_name: Optional[str] = Field(default="vmlinuz")
    initrd_file_name: Optional[str] = Field(default="initrd")
    kernel_parameters_file_name: Optional[str] = Field(default="kernel-parameters")
    artifact_id: str
    public_key_id: str
    enable_debug: Optional[bool] = Field(default=False)
    build_env_size: Optional[int] = Field(default=15)
    status: Optional[str] = None
    resultant_image_id: Optional[str] = None

    class Config:
        """Pydantic config."""
        extra = "ignore"

    def is_finished(self) -> bool:
        """Whether the job reached a terminal state."""
        return self.status in ("success", "error")

    def request_body(self):
        """Body accepted by the job POST endpoint."""
        return self.model_dump(exclude_none=True, exclude={"id", "status", "resultant_image_id"})


def latest_image_named(images: Sequence[Image], name: str) -> Optional[Image]:
    """Most recent image named ``name``, else the most recent whose name contains it."""
    exact = [image for image in images if image.name == name]
    candidates = exact or [image for image in images if name in image.name]
    if not candidates:
        return None
    return max(candidates, key=lambda image: image.created or "")
