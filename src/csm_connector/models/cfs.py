"""CFS record models: configurations, sessions and components."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class _Record(BaseModel):
    """Record returned by the cluster APIs."""

    class Config:
        """Pydantic config."""
        extra = "ignore"


class Layer(_Record):
    """Configuration layer pinned to a git ref."""
    name: Optional[str] = None
    clone_url: Optional[str] = None
    source: Optional[str] = None
    playbook: str = Field(default="site.yml")
    commit: Optional[str] = None
    branch: Optional[str] = None


class AdditionalInventory(_Record):
    """Additional inventory repository."""
    name: Optional[str] = None
    clone_url: str
    commit: Optional[str] = None
    branch: Optional[str] = None


class Configuration(_Record):
    """CFS configuration."""
    name: str
    last_updated: Optional[str] = None
    layers: List[Layer] = Field(default_factory=list)
    additional_inventory: Optional[AdditionalInventory] = None

    def last_updated_at(self) -> Optional[datetime]:
        """Parse last_updated as a naive UTC datetime."""
        if not self.last_updated:
            return None
        parsed = datetime.fromisoformat(self.last_updated.replace("Z", "+00:00"))
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed

    def request_body(self) -> Dict[str, Any]:
        """Body accepted by the configuration PUT endpoint."""
        return self.model_dump(exclude_none=True, exclude={"name", "last_updated"})


class SessionConfiguration(_Record):
    name: Optional[str] = None
    limit: Optional[str] = None


class SessionAnsible(_Record):
    config: Optional[str] = None
    limit: Optional[str] = None
    verbosity: Optional[int] = None
    passthrough: Optional[str] = None


class TargetGroup(_Record):
    name: str
    members: List[str] = Field(default_factory=list)


class ImageMap(_Record):
    source_id: str
    result_name: str


class SessionTarget(_Record):
    definition: Optional[str] = None
    groups: Optional[List[TargetGroup]] = None
    image_map: Optional[List[ImageMap]] = None


class SessionStatusDetail(_Record):
    status: Optional[str] = None
    succeeded: Optional[str] = None
    job: Optional[str] = None
    ims_job: Optional[str] = None
    start_time: Optional[str] = None
    completion_time: Optional[str] = None


class Artifact(_Record):
    image_id: Optional[str] = None
    result_id: Optional[str] = None
    type: Optional[str] = None


class SessionStatus(_Record):
    artifacts: List[Artifact] = Field(default_factory=list)
    session: Optional[SessionStatusDetail] = None


class Session(_Record):
    """CFS session, either 'dynamic' (node runtime) or 'image' (image customization)."""
    name: str
    configuration: Optional[SessionConfiguration] = None
    ansible: Optional[SessionAnsible] = None
    target: Optional[SessionTarget] = None
    status: Optional[SessionStatus] = None
    tags: Optional[Dict[str, str]] = None
    debug_on_failure: Optional[bool] = None

    @classmethod
    def for_image(
        cls,
        name: str,
        configuration: str,
        groups: List[str],
        base_image_id: str,
        ansible_verbosity: Optional[int] = None,
        ansible_passthrough: Optional[str] = None,
    ) -> "Session":
        """Build an image customization session descriptor."""
        return cls(
            name=name,
            configuration=SessionConfiguration(name=configuration),
            ansible=SessionAnsible(verbosity=ansible_verbosity, passthrough=ansible_passthrough),
            target=SessionTarget(
                definition="image",
                groups=[TargetGroup(name=group, members=[base_image_id]) for group in groups],
            ),
        )

    def configuration_name(self) -> Optional[str]:
        """Configuration applied by this session."""
        return self.configuration.name if self.configuration else None

    def target_definition(self) -> Optional[str]:
        """Either 'dynamic' or 'image'."""
        return self.target.definition if self.target else None

    def target_groups(self) -> List[str]:
        """Group names targeted by this session."""
        if not self.target or not self.target.groups:
            return []
        return [group.name for group in self.target.groups]

    def target_xnames(self) -> List[str]:
        """Node ids from the ansible limit."""
        if not self.ansible or not self.ansible.limit:
            return []
        return [xname.strip() for xname in self.ansible.limit.split(",") if xname.strip()]

    def result_ids(self) -> List[str]:
        """Ids of the artifacts produced by this session."""
        if not self.status:
            return []
        return [artifact.result_id for artifact in self.status.artifacts if artifact.result_id]

    def first_result_id(self) -> Optional[str]:
        """First produced artifact id."""
        results = self.result_ids()
        return results[0] if results else None

    def is_complete(self) -> bool:
        """Whether the session reached a terminal state."""
        detail = self.status.session if self.status else None
        return bool(detail and detail.status == "complete")

    def is_success(self) -> bool:
        """Whether the session completed successfully."""
        detail = self.status.session if self.status else None
        return self.is_complete() and detail.succeeded == "true"

    def request_body(self) -> Dict[str, Any]:
        """Body accepted by the session POST endpoint."""
        return self.model_dump(exclude_none=True, exclude={"status"})


class Component(_Record):
    """CFS component: a node and its desired runtime configuration."""
    id: str
    desired_config: Optional[str] = None
    error_count: Optional[int] = None
    enabled: Optional[bool] = None
    state: Optional[List[Dict[str, Any]]] = None
