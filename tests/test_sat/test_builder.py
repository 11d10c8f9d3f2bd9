"""Tests for the image build driver."""

import itertools

import pytest

from csm_connector.errors import BuildFailure, CyclicDependencyError, KeyNotFound, RecipeNotFound, SatFileError
from csm_connector.models.ims import Recipe
from csm_connector.models.satfile import ImageSpec
from csm_connector.sat.builder import ImageBuildDriver


CATALOG = {
    "cos": """
2.5:
  recipes:
    cos-2.5.x86_64:
      id: product-recipe
""",
}


def _spec(name, base=None, ref_name=None, configuration=None, groups=None, ims=None):
    return ImageSpec(
        name=name,
        ref_name=ref_name,
        base=base,
        ims=ims,
        configuration=configuration,
        configuration_group_names=groups or ["Compute"],
    )


@pytest.fixture
def chain():
    """A derived image declared before the recipe based image it extends."""
    return [
        _spec("derived", base={"image_ref": "base-img"}, configuration="cfg-derived"),
        _spec(
            "base",
            ref_name="base-img",
            base={"ims": {"name": "existing-recipe", "type": "recipe"}},
            configuration="cfg-base",
        ),
    ]


@pytest.fixture
def recipe_gateway(gateway):
    """Gateway with a single recipe."""
    gateway.recipes.append(Recipe(id="recipe-1", name="existing-recipe"))
    return gateway


class TestBuildAll:
    """Test building a whole images section."""

    @pytest.mark.asyncio
    async def test_chain_uses_built_base(self, recipe_gateway, chain, no_sleep):
        """Test that a dependent image is customized from the image built before it."""
        driver = ImageBuildDriver(recipe_gateway, sleep=no_sleep)
        registry = {}

        built = await driver.build_all(chain, registry)

        assert registry == {"base-img": "base-result", "derived": "derived-result"}
        assert list(built) == ["base-result", "derived-result"]
        base_session = recipe_gateway.sessions["base"]
        derived_session = recipe_gateway.sessions["derived"]
        assert base_session.target.groups[0].members == ["recipe-1-image"]
        assert derived_session.target.groups[0].members == ["base-result"]
        assert derived_session.configuration_name() == "cfg-derived"
        assert [m[0] for m in recipe_gateway.mutations] == ["post_job", "post_session", "post_session"]

    @pytest.mark.asyncio
    async def test_dry_run_mutates_nothing(self, recipe_gateway, chain, no_sleep):
        """Test that dry run writes nothing and hands out distinct placeholder ids."""
        counter = itertools.count(1)
        driver = ImageBuildDriver(
            recipe_gateway,
            dry_run=True,
            id_generator=lambda: f"dry-{next(counter)}",
            sleep=no_sleep,
        )
        registry = {}

        built = await driver.build_all(chain, registry)

        assert recipe_gateway.mutations == []
        assert len(set(registry.values())) == 2
        assert registry["base-img"] == "dry-2"
        assert registry["derived"] == "dry-3"
        assert len(built) == 2

    @pytest.mark.asyncio
    async def test_empty_section(self, gateway):
        """Test that no images is not an error."""
        assert await ImageBuildDriver(gateway).build_all([], {}) == {}

    @pytest.mark.asyncio
    async def test_prefilled_registry(self, gateway, no_sleep):
        """Test that entries already in the registry are not rebuilt."""
        driver = ImageBuildDriver(gateway, sleep=no_sleep)
        specs = [_spec("derived", base={"image_ref": "base-img"}, configuration="cfg")]
        registry = {"base-img": "existing-id"}

        await driver.build_all(specs, registry)

        assert gateway.sessions["derived"].target.groups[0].members == ["existing-id"]
        assert registry["derived"] == "derived-result"

    @pytest.mark.asyncio
    async def test_cycle(self, gateway, no_sleep):
        """Test that cyclic references build nothing."""
        specs = [
            _spec("a", ref_name="a-ref", base={"image_ref": "b-ref"}),
            _spec("b", ref_name="b-ref", base={"image_ref": "a-ref"}),
        ]

        with pytest.raises(CyclicDependencyError):
            await ImageBuildDriver(gateway, sleep=no_sleep).build_all(specs, {})
        assert gateway.mutations == []

    @pytest.mark.asyncio
    async def test_failed_session_keeps_earlier_images(self, gateway, no_sleep):
        """Test that a failed session stops the build and keeps what was built."""
        specs = [
            _spec("first", base={"ims": {"id": "img-1", "type": "image"}}),
            _spec("second", base={"ims": {"id": "img-2", "type": "image"}}, configuration="cfg"),
        ]
        gateway.session_succeeds = False
        registry = {}

        with pytest.raises(BuildFailure, match="CFS session 'second' failed"):
            await ImageBuildDriver(gateway, sleep=no_sleep).build_all(specs, registry)
        assert registry == {"first": "img-1"}


class TestBuildImage:
    """Test single image builds."""

    @pytest.mark.asyncio
    async def test_no_configuration_returns_base(self, gateway):
        """Test that an image without configuration is its base."""
        spec = _spec("plain", base={"ims": {"id": "img-1", "type": "image"}})

        assert await ImageBuildDriver(gateway).build_image(spec, {}) == "img-1"
        assert gateway.mutations == []

    @pytest.mark.asyncio
    async def test_system_groups_dropped(self, gateway, no_sleep):
        """Test that site wide groups are removed from the session targets."""
        spec = _spec(
            "img",
            base={"ims": {"id": "img-1", "type": "image"}},
            configuration="cfg",
            groups=["Compute", "alps"],
        )
        driver = ImageBuildDriver(gateway, system_groups=["alps"], sleep=no_sleep)

        await driver.build_image(spec, {})

        assert gateway.sessions["img"].target_groups() == ["Compute"]

    @pytest.mark.asyncio
    async def test_existing_image_by_name(self, gateway):
        """Test that the most recent image with the name is used."""
        gateway.add_image("old", "sles", created="2024-01-01T00:00:00Z")
        gateway.add_image("new", "sles", created="2024-06-01T00:00:00Z")
        spec = _spec("img", base={"ims": {"name": "sles", "type": "image"}})

        assert await ImageBuildDriver(gateway).build_image(spec, {}) == "new"

    @pytest.mark.asyncio
    async def test_product_recipe(self, gateway, no_sleep):
        """Test that a product recipe is built before use."""
        spec = _spec("img", base={"product": {"name": "cos", "version": "2.5", "type": "recipe"}})

        image_id = await ImageBuildDriver(gateway, catalog=CATALOG, sleep=no_sleep).build_image(spec, {})

        assert image_id == "product-recipe-image"
        assert gateway.mutations == [("post_job", "product-recipe")]

    @pytest.mark.asyncio
    async def test_missing_recipe(self, gateway):
        """Test recipe lookup by name."""
        spec = _spec("img", base={"ims": {"name": "nope", "type": "recipe"}})

        with pytest.raises(RecipeNotFound):
            await ImageBuildDriver(gateway).build_image(spec, {})

    @pytest.mark.asyncio
    async def test_missing_root_key(self, recipe_gateway):
        """Test that a recipe build needs the management key."""
        recipe_gateway.public_keys = []
        spec = _spec("img", base={"ims": {"name": "existing-recipe", "type": "recipe"}})

        with pytest.raises(KeyNotFound):
            await ImageBuildDriver(recipe_gateway).build_image(spec, {})

    @pytest.mark.asyncio
    async def test_legacy_recipe_rejected(self, gateway):
        """Test that a legacy ims recipe base is refused."""
        spec = _spec("img", ims={"name": "old", "is_recipe": True})

        with pytest.raises(SatFileError):
            await ImageBuildDriver(gateway).build_image(spec, {})

    @pytest.mark.asyncio
    async def test_unbuilt_reference(self, gateway):
        """Test that an image_ref must already be in the registry."""
        spec = _spec("img", base={"image_ref": "missing"})

        with pytest.raises(SatFileError, match="was not built"):
            await ImageBuildDriver(gateway).build_image(spec, {})

    @pytest.mark.asyncio
    async def test_existing_image_by_partial_name(self, gateway):
        """Test that a customized image whose name contains the base name is found."""
        gateway.add_image("v1", "compute-image-v1", created="2024-01-01T00:00:00Z")
        gateway.add_image("v2", "compute-image-v2", created="2024-06-01T00:00:00Z")
        spec = _spec("img", base={"ims": {"name": "compute-image", "type": "image"}})

        assert await ImageBuildDriver(gateway).build_image(spec, {}) == "v2"

    @pytest.mark.asyncio
    async def test_exact_name_wins_over_partial(self, gateway):
        """Test that an exact name match is preferred to a newer partial match."""
        gateway.add_image("exact", "compute-image", created="2024-01-01T00:00:00Z")
        gateway.add_image("partial", "compute-image-v2", created="2024-06-01T00:00:00Z")
        spec = _spec("img", base={"ims": {"name": "compute-image", "type": "image"}})

        assert await ImageBuildDriver(gateway).build_image(spec, {}) == "exact"

    @pytest.mark.asyncio
    async def test_base_named_after_image_in_file(self, gateway, no_sleep):
        """Test that an ims base naming an image of the file waits for that image."""
        gateway.add_image("cluster-base", "sles")
        gateway.add_image("old", "base", created="2020-01-01T00:00:00Z")
        specs = [
            _spec("derived", base={"ims": {"name": "base", "type": "image"}}, configuration="cfg"),
            _spec("base", ref_name="base-img", base={"ims": {"name": "sles", "type": "image"}}, configuration="cfg"),
        ]
        registry = {}

        await ImageBuildDriver(gateway, sleep=no_sleep).build_all(specs, registry)

        assert registry == {"base-img": "base-result", "derived": "derived-result"}
        assert gateway.sessions["derived"].target.groups[0].members == ["base-result"]
