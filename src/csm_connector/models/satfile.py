"""SAT file models.

The SAT file is a YAML document with four optional sections: ``hardware``,
``configurations``, ``images`` and ``session_templates``. Several fields take
one of a few mutually exclusive shapes (``base.image_ref`` / ``base.ims`` /
``base.product``, ``ims.name`` / ``ims.id``). Each shape is its own model with
``extra = "forbid"`` so exactly one of them validates, and dumping a parsed
file with ``exclude_none=True`` reproduces the keys that were written.
"""

from dataclasses import dataclass
from functools import cached_property
from typing import Dict, List, Literal, Optional, Set, Union

from pydantic import BaseModel, Field, validator

from csm_connector.errors import SatFileError


class _Shape(BaseModel):
    """One alternative of an untagged union."""

    class Config:
        """Pydantic config."""
        extra = "forbid"


class _Section(BaseModel):
    """Section entry that keeps unknown keys for lossless re-serialization."""

    class Config:
        """Pydantic config."""
        extra = "allow"


# -- configurations ---------------------------------------------------------


class GitSource(_Shape):
    """Layer pinned to a git ref. Commit wins over tag, tag wins over branch."""
    url: str
    commit: Optional[str] = None
    branch: Optional[str] = None
    tag: Optional[str] = None

    @validator("tag", always=True)
    def validate_ref(cls, v, values):
        """Require at least one ref."""
        if v is None and values.get("commit") is None and values.get("branch") is None:
            raise ValueError("git layer needs one of 'commit', 'branch' or 'tag'")
        return v


class ProductSource(_Shape):
    """Layer pinned through the product catalog."""
    name: str
    version: Optional[str] = None
    branch: Optional[str] = None
    commit: Optional[str] = None

    @validator("version", pre=True)
    def validate_version(cls, v):
        """Versions written as 1.0 parse as numbers."""
        return None if v is None else str(v)

    @validator("commit")
    def validate_single_ref(cls, v, values):
        """Reject both branch and commit."""
        if v is not None and values.get("branch") is not None:
            raise ValueError("product layer accepts either 'branch' or 'commit', not both")
        return v


class LayerSpec(_Section):
    """Configuration layer in the SAT file."""
    name: Optional[str] = None
    playbook: str = Field(default="site.yml")
    git: Optional[GitSource] = None
    product: Optional[ProductSource] = None

    @validator("product", always=True)
    def validate_source(cls, v, values):
        """Require exactly one of git or product."""
        if (v is None) == (values.get("git") is None):
            raise ValueError("layer needs exactly one of 'git' or 'product'")
        return v


class AdditionalInventorySpec(_Shape):
    """Additional inventory repository."""
    name: Optional[str] = None
    url: str
    commit: Optional[str] = None
    branch: Optional[str] = None


class ConfigurationSpec(_Section):
    """Entry of the configurations section."""
    name: str = Field(..., description="Configuration name")
    description: Optional[str] = None
    layers: List[LayerSpec] = Field(default_factory=list)
    additional_inventory: Optional[AdditionalInventorySpec] = None


# -- images -----------------------------------------------------------------


class ImsByName(_Shape):
    name: str
    type: Literal["recipe", "image"]


class ImsById(_Shape):
    id: str
    type: Literal["recipe", "image"]


class ImsBackwardCompatible(_Shape):
    id: str
    is_recipe: Optional[bool] = None


class ImsBase(_Shape):
    ims: Union[ImsByName, ImsById, ImsBackwardCompatible]


class ImageRefBase(_Shape):
    image_ref: str


class PrefixFilter(_Shape):
    prefix: str


class WildcardFilter(_Shape):
    wildcard: str


class ArchFilter(_Shape):
    arch: Literal["aarch64", "x86_64"]


ProductFilter = Union[PrefixFilter, WildcardFilter, ArchFilter]


class ProductImage(_Shape):
    name: str
    version: Optional[str] = None
    type: Literal["recipe", "recipes", "image", "images"]
    filter: Optional[ProductFilter] = None

    @validator("version", pre=True)
    def validate_version(cls, v):
        """Versions written as 1.0 parse as numbers."""
        return None if v is None else str(v)


class ProductBase(_Shape):
    product: ProductImage


class LegacyImsByName(_Shape):
    name: str
    is_recipe: bool


class LegacyImsById(_Shape):
    id: str
    is_recipe: bool


# Normalized view of an image base, computed once per spec.


@dataclass(frozen=True)
class ExistingImage:
    id: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class ExistingRecipe:
    name: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class ImageRef:
    ref_name: str


@dataclass(frozen=True)
class Product:
    name: str
    version: Optional[str]
    type: str
    filter: Optional[ProductFilter] = None

    @property
    def bucket(self) -> str:
        """Product catalog bucket holding the entries."""
        return "recipes" if self.type.startswith("recipe") else "images"


@dataclass(frozen=True)
class UnsupportedBase:
    reason: str


BaseSource = Union[ExistingImage, ExistingRecipe, ImageRef, Product, UnsupportedBase]


class ImageSpec(_Section):
    """Entry of the images section."""
    name: str = Field(..., description="Image name, unique within the file")
    ref_name: Optional[str] = Field(None, description="Symbolic id used by dependents")
    description: Optional[str] = None
    base: Optional[Union[ImageRefBase, ImsBase, ProductBase]] = None
    ims: Optional[Union[LegacyImsByName, LegacyImsById]] = None
    configuration: Optional[str] = None
    configuration_group_names: Optional[List[str]] = None

    @validator("ims", always=True)
    def validate_base(cls, v, values):
        """Require exactly one of base or the legacy ims key."""
        if (v is None) == (values.get("base") is None):
            raise ValueError("image needs exactly one of 'base' or 'ims'")
        return v

    @property
    def key(self) -> str:
        """Resolution key: ref_name if present, else name."""
        return self.ref_name or self.name

    @cached_property
    def source(self) -> BaseSource:
        """Base artifact this image is built from."""
        if self.ims is not None:
            if isinstance(self.ims, LegacyImsById) and not self.ims.is_recipe:
                return ExistingImage(id=self.ims.id)
            return UnsupportedBase("'images.ims' with 'is_recipe' or 'name' is not supported")

        base = self.base
        if isinstance(base, ImageRefBase):
            return ImageRef(ref_name=base.image_ref)
        if isinstance(base, ProductBase):
            product = base.product
            return Product(
                name=product.name,
                version=product.version,
                type=product.type,
                filter=product.filter,
            )

        ims = base.ims
        if isinstance(ims, ImsByName):
            if ims.type == "recipe":
                return ExistingRecipe(name=ims.name)
            return ExistingImage(name=ims.name)
        if isinstance(ims, ImsById):
            if ims.type == "recipe":
                return ExistingRecipe(id=ims.id)
            return ExistingImage(id=ims.id)
        if ims.is_recipe:
            return ExistingRecipe(id=ims.id)
        return ExistingImage(id=ims.id)

    def depends_on(self) -> Optional[str]:
        """ref_name of the image this one is built from, if any."""
        source = self.source
        return source.ref_name if isinstance(source, ImageRef) else None


# -- session templates ------------------------------------------------------


class TemplateImsName(_Shape):
    name: str


class TemplateImsId(_Shape):
    id: str


class TemplateImsImage(_Shape):
    ims: Union[TemplateImsName, TemplateImsId]


class TemplateImageRef(_Shape):
    image_ref: str


TemplateImage = Union[str, TemplateImageRef, TemplateImsImage]


class BootSetSpec(_Section):
    """Boot set parameters in the SAT file."""
    arch: Optional[Literal["X86", "ARM", "Other", "Unknown"]] = None
    kernel_parameters: Optional[str] = None
    network: Optional[str] = None
    node_list: Optional[List[str]] = None
    node_roles_group: Optional[List[str]] = None
    node_groups: Optional[List[str]] = None
    rootfs_provider: Optional[str] = None
    rootfs_provider_passthrough: Optional[str] = None


class BosParameters(_Section):
    boot_sets: Dict[str, BootSetSpec] = Field(default_factory=dict)


class SessionTemplateSpec(_Section):
    """Entry of the session_templates section."""
    name: str = Field(..., description="Boot template name")
    image: TemplateImage
    configuration: str
    description: Optional[str] = None
    bos_parameters: BosParameters = Field(default_factory=BosParameters)

    def target_groups(self) -> Optional[List[str]]:
        """Groups of the 'compute' boot set, else the 'uan' one; None if neither exists."""
        for boot_set_name in ("compute", "uan"):
            boot_set = self.bos_parameters.boot_sets.get(boot_set_name)
            if boot_set is not None:
                return list(boot_set.node_groups or [])
        return None

    def image_name_hint(self) -> Optional[str]:
        """Image name this template points at, if given by name."""
        if isinstance(self.image, str):
            return self.image
        if isinstance(self.image, TemplateImsImage) and isinstance(self.image.ims, TemplateImsName):
            return self.image.ims.name
        return None


# -- hardware ---------------------------------------------------------------


class HardwarePattern(_Shape):
    """Move hardware matching a pattern from a parent group into a target group."""
    target: str
    parent: str
    pattern: str


class HardwareNodes(_Shape):
    """Add a comma separated list of nodes to a target group."""
    target: str
    nodespattern: str
    parent: Optional[str] = None

    def nodes(self) -> List[str]:
        """Node ids listed in nodespattern."""
        return [node.strip() for node in self.nodespattern.split(",") if node.strip()]


HardwareSpec = Union[HardwarePattern, HardwareNodes]


# -- file -------------------------------------------------------------------


class SatFile(_Section):
    """Parsed SAT file."""
    hardware: Optional[List[HardwareSpec]] = None
    configurations: Optional[List[ConfigurationSpec]] = None
    images: Optional[List[ImageSpec]] = None
    session_templates: Optional[List[SessionTemplateSpec]] = None

    def filter(self, image_only: bool = False, session_template_only: bool = False) -> "SatFile":
        """Return a copy trimmed to the images or the session templates section."""
        if image_only and session_template_only:
            raise SatFileError("'image_only' and 'session_template_only' are mutually exclusive")

        if image_only:
            if not self.images:
                raise SatFileError("'images' section missing")
            used: Set[str] = {image.configuration for image in self.images if image.configuration}
            return self.model_copy(update={
                "configurations": [c for c in self.configurations or [] if c.name in used] or None,
                "session_templates": None,
            })

        if session_template_only:
            if not self.session_templates:
                raise SatFileError("'session_templates' section missing")
            image_names = {t.image_name_hint() for t in self.session_templates} - {None}
            image_refs = {
                t.image.image_ref for t in self.session_templates
                if isinstance(t.image, TemplateImageRef)
            }
            images = [
                image for image in self.images or []
                if image.name in image_names
                or image.ref_name in image_names
                or image.ref_name in image_refs
            ]
            used = {t.configuration for t in self.session_templates}
            used.update(image.configuration for image in images if image.configuration)
            return self.model_copy(update={
                "configurations": [c for c in self.configurations or [] if c.name in used] or None,
                "images": images or None,
            })

        return self

    def configuration_names(self) -> Set[str]:
        """Names of configurations declared in the file."""
        return {c.name for c in self.configurations or []}

    def ref_names(self) -> Set[str]:
        """ref_name values declared in the images section."""
        return {image.ref_name for image in self.images or [] if image.ref_name}

    def dump(self) -> dict:
        """Serialize back to the shape it was read from."""
        return self.model_dump(exclude_none=True)
