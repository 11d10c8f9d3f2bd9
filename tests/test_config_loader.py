"""Tests for config and product catalog files."""

import pytest

from csm_connector.config import CONFIG_ENV_VAR, load_config, load_product_catalog
from csm_connector.errors import CsmError
from csm_connector.sat.catalog import resolve_product
from csm_connector.models.satfile import Product


CONFIG_YAML = """\
log_level: debug
backend:
  base_url: https://api.example.com/apis
  gitea_base_url: https://api.example.com/vcs
retry:
  attempts: 3
  delay: 0.5
vcs:
  clone_url_rewrites:
    vcs.cmn.local: api.example.com
"""


class TestLoadConfig:
    """Test connector config loading."""

    def test_from_path(self, tmp_path):
        """Test config file values."""
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)

        config = load_config(path)

        assert config.log_level == "DEBUG"
        assert config.backend.base_url == "https://api.example.com/apis"
        assert config.retry.attempts == 3
        assert config.vcs.clone_url_rewrites == {"vcs.cmn.local": "api.example.com"}

    def test_from_env(self, tmp_path, monkeypatch):
        """Test config path from the environment."""
        path = tmp_path / "config.yaml"
        path.write_text("retry:\n  attempts: 9\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert load_config().retry.attempts == 9

    def test_defaults(self, monkeypatch):
        """Test defaults without any config."""
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

        assert load_config().retry.attempts == 5

    def test_missing_file(self, tmp_path):
        """Test unknown config path."""
        with pytest.raises(CsmError, match="Config not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid(self, tmp_path):
        """Test invalid values."""
        path = tmp_path / "config.yaml"
        path.write_text("retry:\n  attempts: 0\n")

        with pytest.raises(CsmError, match="Invalid config"):
            load_config(path)


class TestLoadProductCatalog:
    """Test product catalog loading."""

    def test_text_and_mapping_entries(self, tmp_path):
        """Test that both entry styles resolve the same way."""
        path = tmp_path / "catalog.yaml"
        path.write_text(
            "cos: |\n"
            "  2.5:\n"
            "    images:\n"
            "      cos-2.5.x86_64:\n"
            "        id: text-id\n"
            "uss:\n"
            "  '1.0':\n"
            "    images:\n"
            "      uss-1.0.x86_64:\n"
            "        id: mapping-id\n"
        )

        catalog = load_product_catalog(path)

        assert resolve_product(catalog, Product(name="cos", version="2.5", type="images"), "img") == "text-id"
        assert resolve_product(catalog, Product(name="uss", version="1.0", type="images"), "img") == "mapping-id"

    def test_no_catalog(self):
        """Test that no path means an empty catalog."""
        assert load_product_catalog(None) == {}

    def test_missing_catalog(self, tmp_path):
        """Test unknown catalog path."""
        with pytest.raises(CsmError, match="Product catalog not found"):
            load_product_catalog(tmp_path / "nope.yaml")
