"""Connector configuration and product catalog loading."""

import io
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError
from ruamel.yaml import YAML

from csm_connector.errors import CsmError
from csm_connector.models.config import ConnectorConfig


logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CSM_CONNECTOR_CONFIG"


def _yaml() -> YAML:
    yaml = YAML()
    yaml.preserve_quotes = True
    return yaml


def load_config(path: Optional[Path] = None) -> ConnectorConfig:
    """Load connector config from ``path``, else ``$CSM_CONNECTOR_CONFIG``, else defaults."""
    if path is None and os.environ.get(CONFIG_ENV_VAR):
        path = Path(os.environ[CONFIG_ENV_VAR])
    if path is None:
        logger.debug("No connector config given, using defaults")
        return ConnectorConfig()

    path = Path(path)
    if not path.exists():
        raise CsmError(f"Config not found: {path}")

    data = _yaml().load(path.read_text()) or {}
    try:
        config = ConnectorConfig(**data)
    except ValidationError as e:
        logger.error(f"Invalid config {path}: {e}")
        raise CsmError(f"Invalid config {path}:\n{e}") from e
    logger.debug(f"Loaded config: {path}")
    return config


def load_product_catalog(path: Optional[Path]) -> Dict[str, str]:
    """Product catalog exported from the cluster: product name -> YAML document.

    Entries may be written either as YAML text (as the cluster stores them) or
    as nested mappings, which are serialized back to text.
    """
    if path is None:
        return {}

    path = Path(path)
    if not path.exists():
        raise CsmError(f"Product catalog not found: {path}")

    yaml = _yaml()
    data = yaml.load(path.read_text()) or {}
    catalog: Dict[str, str] = {}
    for name, value in data.items():
        if isinstance(value, str):
            catalog[str(name)] = value
        else:
            stream = io.StringIO()
            yaml.dump(value, stream)
            catalog[str(name)] = stream.getvalue()
    logger.debug(f"Loaded {len(catalog)} products from {path}")
    return catalog
