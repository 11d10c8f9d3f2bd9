"""Tests for image build order resolution."""

import pytest

from csm_connector.errors import CyclicDependencyError
from csm_connector.models.satfile import ImageSpec
from csm_connector.sat.resolver import iter_build_order, next_ready, resolution_key


def _spec(name, ref_name=None, depends_on=None):
    base = {"image_ref": depends_on} if depends_on else {"ims": {"id": f"{name}-id", "type": "image"}}
    return ImageSpec(name=name, ref_name=ref_name, base=base, configuration_group_names=["Compute"])


def _drain(specs):
    processed = set()
    order = []
    for spec in iter_build_order(specs, processed):
        order.append(spec.name)
        processed.add(resolution_key(spec))
    return order


class TestNextReady:
    """Test single step selection."""

    def test_first_in_declaration_order(self):
        """Test that independent specs come out in input order."""
        specs = [_spec("a"), _spec("b")]

        assert next_ready(specs, set()).name == "a"
        assert next_ready(specs, {"a"}).name == "b"
        assert next_ready(specs, {"a", "b"}) is None

    def test_waits_for_dependency(self):
        """Test that a dependent spec waits for its base."""
        specs = [_spec("derived", depends_on="base-img"), _spec("base", ref_name="base-img")]

        assert next_ready(specs, set()).name == "base"
        assert next_ready(specs, {"base-img"}).name == "derived"

    def test_key_is_ref_name(self):
        """Test that processed keys use ref_name when present."""
        specs = [_spec("base", ref_name="base-img")]

        assert next_ready(specs, {"base"}).name == "base"
        assert next_ready(specs, {"base-img"}) is None


class TestBuildOrder:
    """Test the full ordering loop."""

    def test_forest(self):
        """Test that a forest is processed once per spec, parents first."""
        specs = [
            _spec("leaf", depends_on="mid-ref"),
            _spec("mid", ref_name="mid-ref", depends_on="root-ref"),
            _spec("other"),
            _spec("root", ref_name="root-ref"),
        ]

        order = _drain(specs)

        assert sorted(order) == ["leaf", "mid", "other", "root"]
        assert order.index("root") < order.index("mid") < order.index("leaf")

    def test_two_cycle(self):
        """Test that a two node cycle is reported."""
        specs = [
            _spec("a", ref_name="a-ref", depends_on="b-ref"),
            _spec("b", ref_name="b-ref", depends_on="a-ref"),
        ]

        assert next_ready(specs, set()) is None
        with pytest.raises(CyclicDependencyError) as exc_info:
            _drain(specs)
        assert exc_info.value.pending == ["a", "b"]

    def test_dangling_reference(self):
        """Test that a reference to no spec leaves it pending."""
        specs = [_spec("a"), _spec("b", depends_on="missing")]

        with pytest.raises(CyclicDependencyError) as exc_info:
            _drain(specs)
        assert exc_info.value.pending == ["b"]

    def test_unrecorded_spec(self):
        """Test that forgetting to record a spec is detected."""
        with pytest.raises(RuntimeError):
            for _ in iter_build_order([_spec("a")], set()):
                pass


def test_ims_base_named_after_image_in_file():
    """Test that an ims base naming an image of the file orders the build."""
    specs = [
        ImageSpec(name="derived", base={"ims": {"name": "base", "type": "image"}}, configuration_group_names=["Compute"]),
        _spec("base", ref_name="base-img"),
    ]

    assert _drain(specs) == ["base", "derived"]


def test_ims_base_named_after_itself():
    """Test that an image may be rebuilt from a cluster image of the same name."""
    specs = [ImageSpec(name="sles", base={"ims": {"name": "sles", "type": "image"}}, configuration_group_names=["Compute"])]

    assert _drain(specs) == ["sles"]
