"""Product catalog lookups.

The catalog maps a product name to a YAML document keyed by version. Each
version holds buckets (``images``, ``recipes``, ``configuration``).
"""

import logging
from typing import Any, Dict, Mapping, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from csm_connector.errors import AmbiguousError, NotFoundError
from csm_connector.models.satfile import ArchFilter, PrefixFilter, Product, ProductFilter, WildcardFilter


logger = logging.getLogger(__name__)

ProductCatalog = Mapping[str, str]


def _load_product(catalog: ProductCatalog, name: str) -> Dict[str, Any]:
    raw = catalog.get(name)
    if raw is None:
        raise NotFoundError(f"Product {name} not found in cray product catalog")
    try:
        data = YAML(typ="safe").load(raw)
    except YAMLError as e:
        raise NotFoundError(f"Product {name} has an unreadable catalog entry: {e}") from e
    return {str(version): details for version, details in (data or {}).items()}


def product_entries(catalog: ProductCatalog, product: Product, image_name: str) -> Dict[str, Any]:
    """Entries of the bucket a product image points at."""
    versions = _load_product(catalog, product.name)
    version = product.version
    if version is None:
        if len(versions) != 1:
            raise AmbiguousError(
                f"Product catalog for image '{image_name}': product '{product.name}' "
                "needs a version"
            )
        version = next(iter(versions))
    entries = (versions.get(str(version)) or {}).get(product.bucket)
    if not entries:
        raise AmbiguousError(f"Product catalog for image '{image_name}' not found")
    return dict(entries)


def _matches(key: str, product_filter: ProductFilter) -> bool:
    if isinstance(product_filter, ArchFilter):
        return key.split(".")[-1] == product_filter.arch
    if isinstance(product_filter, WildcardFilter):
        return product_filter.wildcard in key
    if isinstance(product_filter, PrefixFilter):
        return key.startswith(product_filter.prefix)
    return False


def filter_entries(entries: Mapping[str, Any], product_filter: Optional[ProductFilter], image_name: str) -> str:
    """Narrow catalog entries to exactly one and return its id."""
    if product_filter is None:
        keys = list(entries)
    else:
        keys = [key for key in entries if _matches(key, product_filter)]

    if not keys:
        raise AmbiguousError(f"Product catalog for image '{image_name}' not found")
    if len(keys) > 1:
        raise AmbiguousError(f"Product catalog for image '{image_name}' multiple items found")

    logger.debug(f"Product catalog entry for image '{image_name}': {keys[0]}")
    return str(entries[keys[0]]["id"])


def resolve_product(catalog: ProductCatalog, product: Product, image_name: str) -> str:
    """Id of the image or recipe a product base points at."""
    return filter_entries(product_entries(catalog, product, image_name), product.filter, image_name)


def configuration_details(catalog: ProductCatalog, name: str, version: Optional[str]) -> Dict[str, Any]:
    """``configuration`` bucket (clone_url, commit) of a product version."""
    versions = _load_product(catalog, name)
    if version is None and len(versions) == 1:
        version = next(iter(versions))
    details = (versions.get(str(version)) or {}).get("configuration") if version else None
    if not details:
        raise NotFoundError(
            f"Product details for product name '{name}', product_version '{version}' "
            "and 'configuration' not found in cray product catalog"
        )
    return dict(details)
