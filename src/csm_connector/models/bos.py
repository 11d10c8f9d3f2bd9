"""BOS record models: boot templates and boot sessions."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


BOOT_IMAGE_PREFIX = "s3://boot-images/"
BOOT_IMAGE_SUFFIX = "/manifest.json"


class Cfs(BaseModel):
    """Configuration applied after boot."""
    configuration: Optional[str] = None

    class Config:
        """Pydantic config."""
        extra = "ignore"


class BootSet(BaseModel):
    """Named set of nodes booting one image."""
    name: Optional[str] = None
    path: Optional[str] = None
    type: Optional[str] = None
    etag: Optional[str] = None
    kernel_parameters: Optional[str] = None
    node_list: Optional[List[str]] = None
    node_roles_groups: Optional[List[str]] = None
    node_groups: Optional[List[str]] = None
    rootfs_provider: Optional[str] = None
    rootfs_provider_passthrough: Optional[str] = None
    cfs: Optional[Cfs] = None
    arch: Optional[str] = None

    class Config:
        """Pydantic config."""
        extra = "ignore"

    def image_id(self) -> Optional[str]:
        """Image id encoded in the boot artifact path."""
        if not self.path:
            return None
        path = self.path
        if path.startswith(BOOT_IMAGE_PREFIX):
            path = path[len(BOOT_IMAGE_PREFIX):]
        if path.endswith(BOOT_IMAGE_SUFFIX):
            path = path[:-len(BOOT_IMAGE_SUFFIX)]
        return path


class BootTemplate(BaseModel):
    """BOS session template."""
    name: Optional[str] = None
    description: Optional[str] = None
    enable_cfs: Optional[bool] = None
    cfs: Optional[Cfs] = None
    boot_sets: Dict[str, BootSet] = Field(default_factory=dict)
    tenant: Optional[str] = None

    class Config:
        """Pydantic config."""
        extra = "ignore"

    def configuration_name(self) -> Optional[str]:
        """Configuration this template applies."""
        return self.cfs.configuration if self.cfs else None

    def image_ids(self) -> List[str]:
        """Image ids booted by this template."""
        return [
            image_id for image_id in (boot_set.image_id() for boot_set in self.boot_sets.values())
            if image_id
        ]

    def target_groups(self) -> List[str]:
        """Group names targeted by every boot set."""
        return [
            group for boot_set in self.boot_sets.values()
            for group in boot_set.node_groups or []
        ]

    def target_xnames(self) -> List[str]:
        """Node ids targeted by every boot set."""
        return [
            xname for boot_set in self.boot_sets.values()
            for xname in boot_set.node_list or []
        ]

    def request_body(self) -> Dict[str, Any]:
        """Body accepted by the template PUT endpoint."""
        return self.model_dump(exclude_none=True, exclude={"name"})


class BosSession(BaseModel):
    """BOS session acting on the nodes of a template."""
    name: Optional[str] = None
    operation: str
    template_name: str
    limit: Optional[str] = None
    stage: Optional[bool] = None
    status: Optional[Dict[str, Any]] = None

    class Config:
        """Pydantic config."""
        extra = "ignore"
