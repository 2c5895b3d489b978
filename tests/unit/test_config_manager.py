"""
Unit tests for ConfigManager layering and overrides.
"""

import pytest

from rankstream.core.config.config import Config
from rankstream.core.config.manager import ConfigInitializationError, ConfigManager

pytestmark = pytest.mark.unit


@pytest.fixture
def isolated_manager():
    """Run against a scratch directory, then restore the suite's config."""
    ConfigManager.reset()
    yield ConfigManager
    ConfigManager.reset()
    ConfigManager.initialize()


class TestLayers:
    """Test YAML loading and merging."""

    def test_environment_file_overlays_defaults(self, isolated_manager, tmp_path):
        (tmp_path / "defaults.yaml").write_text(
            "ranking:\n  top_n: 10\n  cache:\n    ttl_seconds: 30\n", encoding="utf-8"
        )
        (tmp_path / f"{Config.ENVIRONMENT}.yaml").write_text(
            "ranking:\n  top_n: 3\n", encoding="utf-8"
        )

        isolated_manager.initialize(tmp_path)

        assert isolated_manager.get("ranking.top_n") == 3
        assert isolated_manager.get("ranking.cache.ttl_seconds") == 30

    def test_missing_key_returns_default(self, isolated_manager, tmp_path):
        isolated_manager.initialize(tmp_path)

        assert isolated_manager.get("nope.not.here", 7) == 7
        assert isolated_manager.health_snapshot()["files"] == []

    def test_non_mapping_file_rejected(self, isolated_manager, tmp_path):
        (tmp_path / "defaults.yaml").write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ConfigInitializationError):
            isolated_manager.initialize(tmp_path)


class TestOverrides:
    """Test in-process overrides."""

    def test_override_survives_reload(self, isolated_manager, tmp_path):
        (tmp_path / "defaults.yaml").write_text("scores:\n  increment:\n    max: 1000\n")
        isolated_manager.initialize(tmp_path)

        isolated_manager.set("scores.increment.max", 50)
        isolated_manager.initialize(tmp_path)

        assert isolated_manager.get("scores.increment.max") == 50
        assert isolated_manager.health_snapshot()["overrides"] == ["scores.increment.max"]

    def test_reset_drops_overrides(self, isolated_manager, tmp_path):
        isolated_manager.initialize(tmp_path)
        isolated_manager.set("ranking.top_n", 1)

        isolated_manager.reset()
        isolated_manager.initialize(tmp_path)

        assert isolated_manager.get("ranking.top_n", 10) == 10
