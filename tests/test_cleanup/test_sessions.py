"""Tests for session deletion and cancellation."""

import pytest

from csm_connector.cleanup import delete_and_cancel_session
from csm_connector.cleanup.sessions import session_xnames
from csm_connector.errors import CsmError, SessionNotFound, UnauthorizedError
from csm_connector.models.bss import BootParameters
from csm_connector.models.cfs import Component, Session


def dynamic_session(groups=("team-a",), limit=None):
    """Node runtime session."""
    return Session(
        name="dyn",
        configuration={"name": "cfg"},
        ansible={"limit": limit} if limit else None,
        target={"definition": "dynamic", "groups": [{"name": g, "members": []} for g in groups]},
    )


def image_session(results):
    """Image customization session with produced images."""
    return Session(
        name="img",
        configuration={"name": "cfg"},
        target={"definition": "image", "groups": [{"name": "team-a", "members": ["base"]}]},
        status={"artifacts": [{"result_id": r} for r in results]},
    )


@pytest.fixture
def cluster(gateway):
    """Cluster with team-a nodes and a node outside of it."""
    gateway.add_group("team-a", ["x1", "x2"])
    gateway.components = [Component(id=x, error_count=0) for x in ("x1", "x2", "x9", "x10")]
    return gateway


class TestDynamicSession:
    """Test cancellation of runtime sessions."""

    @pytest.mark.asyncio
    async def test_cancel_and_delete(self, cluster, caller):
        """Test that every targeted node gets the retry limit as error count."""
        cluster.sessions["dyn"] = dynamic_session(limit="x9")

        await delete_and_cancel_session(cluster, caller, "dyn")

        assert cluster.mutations == [("put_components", ["x1", "x2", "x9"]), ("delete_session", "dyn")]
        counts = {c.id: c.error_count for c in cluster.components}
        assert counts == {"x1": 3, "x2": 3, "x9": 3, "x10": 0}
        assert "dyn" not in cluster.sessions

    @pytest.mark.asyncio
    async def test_dry_run(self, cluster, caller):
        """Test that dry run changes nothing."""
        cluster.sessions["dyn"] = dynamic_session()

        session = await delete_and_cancel_session(cluster, caller, "dyn", dry_run=True)

        assert session.name == "dyn"
        assert cluster.mutations == []
        assert all(c.error_count == 0 for c in cluster.components)

    @pytest.mark.asyncio
    async def test_missing_retry_option(self, cluster, caller):
        """Test that the retry policy option is required."""
        cluster.sessions["dyn"] = dynamic_session()
        cluster.options = {}

        with pytest.raises(CsmError, match="default_batcher_retry_policy"):
            await delete_and_cancel_session(cluster, caller, "dyn")
        assert cluster.mutations == []

    @pytest.mark.asyncio
    async def test_foreign_group(self, cluster, caller):
        """Test that a session targeting another tenant is refused."""
        cluster.sessions["dyn"] = dynamic_session(groups=("team-b",))

        with pytest.raises(UnauthorizedError):
            await delete_and_cancel_session(cluster, caller, "dyn")
        assert cluster.mutations == []


class TestImageSession:
    """Test deletion of image customization sessions."""

    @pytest.mark.asyncio
    async def test_deletes_unbooted_images(self, cluster, caller):
        """Test that produced images are deleted unless a node boots them."""
        cluster.sessions["img"] = image_session(["img-1", "img-2"])
        cluster.boot_parameters = [BootParameters(hosts=["x1"], kernel="s3://boot-images/img-2/kernel")]

        await delete_and_cancel_session(cluster, caller, "img")

        assert cluster.mutations == [("delete_image", "img-1"), ("delete_session", "img")]

    @pytest.mark.asyncio
    async def test_unknown_definition(self, cluster, caller):
        """Test session with an unexpected target definition."""
        cluster.sessions["odd"] = Session(name="odd", target={"definition": "spread"})

        with pytest.raises(CsmError, match="Don't know how to continue"):
            await delete_and_cancel_session(cluster, caller, "odd")

    @pytest.mark.asyncio
    async def test_missing_session(self, cluster, caller):
        """Test unknown session name."""
        with pytest.raises(SessionNotFound):
            await delete_and_cancel_session(cluster, caller, "nope")


@pytest.mark.asyncio
async def test_session_xnames(cluster, caller):
    """Test that group members and the ansible limit are merged."""
    xnames = await session_xnames(cluster, caller, dynamic_session(limit="x9, x1"))

    assert xnames == ["x1", "x2", "x9"]
