"""Remote cluster state gateway interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from csm_connector.models.bos import BootTemplate, BosSession
from csm_connector.models.bss import BootParameters
from csm_connector.models.cfs import Component, Configuration, Session
from csm_connector.models.hsm import Group
from csm_connector.models.ims import Image, Job, PublicKey, Recipe


class ClusterGateway(ABC):
    """CRUD operations over the cluster state that the pipelines consume.

    Every method is a suspension point. Lookups by name return an empty list
    when nothing matches; errors raise ``CsmError`` subclasses.
    """

    # -- configurations

    @abstractmethod
    async def get_configurations(self, name: Optional[str] = None) -> List[Configuration]:
        """Get all configurations or the one with the given name."""
        pass

    @abstractmethod
    async def put_configuration(self, configuration: Configuration, overwrite: bool = False) -> Configuration:
        """Create or replace a configuration."""
        pass

    @abstractmethod
    async def delete_configuration(self, name: str) -> None:
        """Delete a configuration."""
        pass

    # -- images and recipes

    @abstractmethod
    async def get_images(self, image_id: Optional[str] = None) -> List[Image]:
        """Get all images or the one with the given id."""
        pass

    @abstractmethod
    async def search_images(self, groups: List[str], name: Optional[str] = None, limit: Optional[int] = None) -> List[Image]:
        """Fuzzy search images whose name contains ``name`` or any of ``groups``."""
        pass

    @abstractmethod
    async def delete_image(self, image_id: str) -> None:
        """Delete an image."""
        pass

    @abstractmethod
    async def get_recipes(self, name: Optional[str] = None) -> List[Recipe]:
        """Get all recipes or those with the given name."""
        pass

    @abstractmethod
    async def get_public_keys(self, name: Optional[str] = None) -> List[PublicKey]:
        """Get image build public keys."""
        pass

    @abstractmethod
    async def post_job(self, job: Job) -> Job:
        """Submit an image build job."""
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> Job:
        """Get an image build job."""
        pass

    # -- sessions

    @abstractmethod
    async def post_session(self, session: Session) -> Session:
        """Submit a configuration session."""
        pass

    @abstractmethod
    async def get_sessions(self, name: Optional[str] = None) -> List[Session]:
        """Get all sessions or the one with the given name."""
        pass

    @abstractmethod
    async def delete_session(self, name: str) -> None:
        """Delete a session."""
        pass

    @abstractmethod
    async def get_components(self, ids: Optional[List[str]] = None) -> List[Component]:
        """Get configuration components."""
        pass

    @abstractmethod
    async def put_components(self, components: List[Component]) -> None:
        """Update configuration components."""
        pass

    @abstractmethod
    async def get_options(self) -> Dict[str, Any]:
        """Get global configuration service options."""
        pass

    # -- boot templates and boot sessions

    @abstractmethod
    async def get_templates(self, name: Optional[str] = None) -> List[BootTemplate]:
        """Get all boot templates or the one with the given name."""
        pass

    @abstractmethod
    async def put_template(self, template: BootTemplate, name: str) -> BootTemplate:
        """Create or replace a boot template."""
        pass

    @abstractmethod
    async def delete_template(self, name: str) -> None:
        """Delete a boot template."""
        pass

    @abstractmethod
    async def post_bos_session(self, session: BosSession) -> BosSession:
        """Submit a boot session."""
        pass

    @abstractmethod
    async def get_bos_sessions(self) -> List[BosSession]:
        """Get all boot sessions."""
        pass

    @abstractmethod
    async def delete_bos_session(self, name: str) -> None:
        """Delete a boot session."""
        pass

    # -- boot parameters and groups

    @abstractmethod
    async def get_boot_parameters(self, hosts: Optional[List[str]] = None) -> List[BootParameters]:
        """Get boot parameters."""
        pass

    @abstractmethod
    async def get_groups(self, labels: Optional[List[str]] = None) -> List[Group]:
        """Get all groups or those with the given labels."""
        pass

    @abstractmethod
    async def add_group_members(self, label: str, xnames: List[str]) -> None:
        """Add nodes to a group."""
        pass

    # -- git refs

    @abstractmethod
    async def get_tag_id(self, repo_url: str, tag: str) -> str:
        """Resolve a git tag to the id of the tag object."""
        pass

    @abstractmethod
    async def get_branch_commit(self, repo_url: str, branch: str) -> str:
        """Resolve a git branch to the commit it points to."""
        pass

    async def get_group_members(self, labels: List[str]) -> List[str]:
        """Sorted, de-duplicated node ids of the given groups."""
        if not labels:
            return []
        groups = await self.get_groups(labels)
        return sorted({xname for group in groups for xname in group.member_ids()})
