"""Smoke tests for plugin configuration loading.

These tests verify that plugin config is correctly loaded via Datasette's
plugin_config() API, catching mis-keyed plugin config that might pass
other tests but fail in real deployments.
"""

from pathlib import Path

from datasette.app import Datasette

from datasette_vendor_catalog.plugin import get_config


class TestPluginConfigLoading:
    """Tests for plugin configuration via datasette.plugin_config()."""

    async def test_plugin_config_is_loaded(self, db_path):
        """Plugin config should be readable via datasette.plugin_config()."""
        ds = Datasette(
            [str(db_path)],
            config={
                "plugins": {
                    "datasette-vendor-catalog": {
                        "catalog_db_path": str(db_path),
                        "intake": {"model": {"base_url": "http://test-runner:12434"}},
                    }
                }
            },
        )

        config = ds.plugin_config("datasette-vendor-catalog")

        assert config is not None, "Plugin config should not be None"
        assert config["catalog_db_path"] == str(db_path)
        assert config["intake"]["model"]["base_url"] == "http://test-runner:12434"

    async def test_plugin_config_wrong_key_returns_none(self, db_path):
        """Mis-keyed plugin config should return None."""
        ds = Datasette(
            [str(db_path)],
            config={
                "plugins": {
                    # Deliberately wrong key (underscore instead of hyphen)
                    "datasette_vendor_catalog": {"catalog_db_path": str(db_path)}
                }
            },
        )

        assert ds.plugin_config("datasette-vendor-catalog") is None

    async def test_missing_config_gives_defaults(self, db_path):
        """Without a plugin section the intake defaults apply."""
        ds = Datasette([str(db_path)], config={})

        config = get_config(ds)

        assert config.db_path == Path("vendor_catalog.db")
        assert config.evaluation_threshold == 70
        assert config.catalog.backend == "sqlite"

    async def test_get_config_builds_intake_config(self, db_path):
        ds = Datasette(
            [str(db_path)],
            config={
                "plugins": {
                    "datasette-vendor-catalog": {
                        "catalog_db_path": str(db_path),
                        "intake": {
                            "evaluation_threshold": 60,
                            "model": {"model": "ai/llama3.2"},
                        },
                    }
                }
            },
        )

        config = get_config(ds)

        assert config.db_path == db_path
        assert config.evaluation_threshold == 60
        assert config.model.model == "ai/llama3.2"

    async def test_get_config_applies_environment(self, db_path, monkeypatch):
        monkeypatch.setenv("CATALOG_API_URL", "http://backend:3000/api")
        ds = Datasette(
            [str(db_path)],
            config={"plugins": {"datasette-vendor-catalog": {"catalog_db_path": str(db_path)}}},
        )

        config = get_config(ds)

        assert config.catalog.backend == "http"
        assert config.catalog.api_base == "http://backend:3000/api"
