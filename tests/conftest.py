"""Shared fixtures: an in-memory cluster gateway and token helpers."""

import base64
import json
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from csm_connector.auth import Caller
from csm_connector.errors import ConfigurationAlreadyExists, NotFoundError, RemoteFailure
from csm_connector.gateway.base import ClusterGateway
from csm_connector.models.bos import BootTemplate, BosSession
from csm_connector.models.bss import BootParameters
from csm_connector.models.cfs import Artifact, Component, Configuration, Session, SessionStatus, SessionStatusDetail
from csm_connector.models.hsm import Group, Members
from csm_connector.models.ims import Image, Job, Link, PublicKey, Recipe


class FakeGateway(ClusterGateway):
    """In-memory cluster. Every mutating call is appended to ``mutations``."""

    def __init__(self):
        self.configurations: Dict[str, Configuration] = {}
        self.images: Dict[str, Image] = {}
        self.recipes: List[Recipe] = []
        self.public_keys: List[PublicKey] = [PublicKey(id="key-1", name="mgmt root key")]
        self.jobs: Dict[str, Job] = {}
        self.sessions: Dict[str, Session] = {}
        self.components: List[Component] = []
        self.options: Dict[str, Any] = {"default_batcher_retry_policy": 3}
        self.templates: Dict[str, BootTemplate] = {}
        self.bos_sessions: List[BosSession] = []
        self.boot_parameters: List[BootParameters] = []
        self.groups: Dict[str, Group] = {}
        self.tags: Dict[str, str] = {}
        self.branches: Dict[str, str] = {}
        self.session_succeeds = True
        self.failing_deletes: Dict[str, int] = {}
        self.mutations: List[tuple] = []

    # helpers

    def add_group(self, label: str, members: List[str]):
        self.groups[label] = Group(label=label, members=Members(ids=members))

    def add_image(self, image_id: str, name: str, created: str = "2024-01-01T00:00:00Z"):
        self.images[image_id] = Image(
            id=image_id,
            name=name,
            created=created,
            link=Link(path=f"s3://boot-images/{image_id}/manifest.json", etag=f"etag-{image_id}", type="s3"),
        )

    def _maybe_fail(self, key: str):
        remaining = self.failing_deletes.get(key, 0)
        if remaining:
            self.failing_deletes[key] = remaining - 1
            raise RemoteFailure(f"HTTP error 500 deleting {key}", status_code=500)

    # configurations

    async def get_configurations(self, name: Optional[str] = None) -> List[Configuration]:
        if name:
            return [self.configurations[name]] if name in self.configurations else []
        return list(self.configurations.values())

    async def put_configuration(self, configuration: Configuration, overwrite: bool = False) -> Configuration:
        if configuration.name in self.configurations and not overwrite:
            raise ConfigurationAlreadyExists(configuration.name)
        self.mutations.append(("put_configuration", configuration.name))
        self.configurations[configuration.name] = configuration
        return configuration

    async def delete_configuration(self, name: str) -> None:
        self._maybe_fail(name)
        self.mutations.append(("delete_configuration", name))
        self.configurations.pop(name, None)

    # images

    async def get_images(self, image_id: Optional[str] = None) -> List[Image]:
        if image_id:
            return [self.images[image_id]] if image_id in self.images else []
        return list(self.images.values())

    async def search_images(self, groups: List[str], name: Optional[str] = None, limit: Optional[int] = None) -> List[Image]:
        images = [image for image in self.images.values() if not name or name in image.name]
        images.sort(key=lambda image: image.created or "", reverse=True)
        return images[:limit] if limit else images

    async def delete_image(self, image_id: str) -> None:
        self._maybe_fail(image_id)
        self.mutations.append(("delete_image", image_id))
        self.images.pop(image_id, None)

    async def get_recipes(self, name: Optional[str] = None) -> List[Recipe]:
        return [recipe for recipe in self.recipes if not name or recipe.name == name]

    async def get_public_keys(self, name: Optional[str] = None) -> List[PublicKey]:
        return [key for key in self.public_keys if not name or key.name == name]

    async def post_job(self, job: Job) -> Job:
        job_id = f"job-{len(self.jobs) + 1}"
        self.mutations.append(("post_job", job.artifact_id))
        stored = job.model_copy(update={
            "id": job_id,
            "status": "success",
            "resultant_image_id": f"{job.artifact_id}-image",
        })
        self.jobs[job_id] = stored
        self.add_image(f"{job.artifact_id}-image", job.image_root_archive_name)
        return stored.model_copy(update={"status": "creating", "resultant_image_id": None})

    async def get_job(self, job_id: str) -> Job:
        if job_id not in self.jobs:
            raise NotFoundError(f"IMS job '{job_id}' not found")
        return self.jobs[job_id]

    # sessions

    async def post_session(self, session: Session) -> Session:
        self.mutations.append(("post_session", session.name))
        self.add_image(f"{session.name}-result", session.name)
        self.sessions[session.name] = session.model_copy(update={
            "status": SessionStatus(
                artifacts=[Artifact(image_id="base", result_id=f"{session.name}-result", type="ims_customized_image")],
                session=SessionStatusDetail(
                    status="complete",
                    succeeded="true" if self.session_succeeds else "false",
                ),
            ),
        })
        return session

    async def get_sessions(self, name: Optional[str] = None) -> List[Session]:
        if name:
            return [self.sessions[name]] if name in self.sessions else []
        return list(self.sessions.values())

    async def delete_session(self, name: str) -> None:
        self._maybe_fail(name)
        self.mutations.append(("delete_session", name))
        self.sessions.pop(name, None)

    async def get_components(self, ids: Optional[List[str]] = None) -> List[Component]:
        return [c for c in self.components if ids is None or c.id in ids]

    async def put_components(self, components: List[Component]) -> None:
        self.mutations.append(("put_components", [c.id for c in components]))
        updated = {c.id: c for c in components}
        self.components = [updated.get(c.id, c) for c in self.components]

    async def get_options(self) -> Dict[str, Any]:
        return dict(self.options)

    # boot templates and boot sessions

    async def get_templates(self, name: Optional[str] = None) -> List[BootTemplate]:
        if name:
            return [self.templates[name]] if name in self.templates else []
        return list(self.templates.values())

    async def put_template(self, template: BootTemplate, name: str) -> BootTemplate:
        self.mutations.append(("put_template", name))
        stored = template.model_copy(update={"name": name})
        self.templates[name] = stored
        return stored

    async def delete_template(self, name: str) -> None:
        self._maybe_fail(name)
        self.mutations.append(("delete_template", name))
        self.templates.pop(name, None)

    async def post_bos_session(self, session: BosSession) -> BosSession:
        created = session.model_copy(update={"name": f"bos-{len(self.bos_sessions) + 1}"})
        self.mutations.append(("post_bos_session", session.template_name))
        self.bos_sessions.append(created)
        return created

    async def get_bos_sessions(self) -> List[BosSession]:
        return list(self.bos_sessions)

    async def delete_bos_session(self, name: str) -> None:
        self.mutations.append(("delete_bos_session", name))
        self.bos_sessions = [s for s in self.bos_sessions if s.name != name]

    # boot parameters and groups

    async def get_boot_parameters(self, hosts: Optional[List[str]] = None) -> List[BootParameters]:
        return [p for p in self.boot_parameters if hosts is None or set(p.hosts) & set(hosts)]

    async def get_groups(self, labels: Optional[List[str]] = None) -> List[Group]:
        return [g for label, g in self.groups.items() if labels is None or label in labels]

    async def add_group_members(self, label: str, xnames: List[str]) -> None:
        self.mutations.append(("add_group_members", label, list(xnames)))
        self.groups[label].members.ids.extend(xnames)

    # git refs

    async def get_tag_id(self, repo_url: str, tag: str) -> str:
        if tag not in self.tags:
            raise NotFoundError(f"Tag '{tag}' not found")
        return self.tags[tag]

    async def get_branch_commit(self, repo_url: str, branch: str) -> str:
        if branch not in self.branches:
            raise NotFoundError(f"Branch '{branch}' not found")
        return self.branches[branch]


def make_token(roles: List[str], username: str = "jdoe", name: str = "Jo Doe") -> str:
    """Unsigned JWT carrying the given realm roles."""
    def segment(data: Dict[str, Any]) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")

    claims = {"preferred_username": username, "name": name, "realm_access": {"roles": roles}}
    return f"{segment({'alg': 'none'})}.{segment(claims)}.signature"


@pytest.fixture
def gateway():
    """Empty in-memory cluster."""
    return FakeGateway()


@pytest.fixture
def caller():
    """Tenant caller scoped to team-a."""
    return Caller(username="jdoe", name="Jo Doe", authorized_groups=frozenset({"team-a"}))


@pytest.fixture
def admin():
    """Administrator caller."""
    return Caller(
        username="admin",
        name="Admin",
        authorized_groups=frozenset({"team-a", "team-b"}),
        is_admin=True,
    )


@pytest.fixture
def no_sleep():
    """Sleep replacement that returns immediately."""
    return AsyncMock()


@pytest.fixture
def token_factory():
    """Builds unsigned tokens for a set of roles."""
    return make_token
