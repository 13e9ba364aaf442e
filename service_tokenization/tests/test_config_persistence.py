"""
Tests for YAML configuration persistence and startup identity loading.
"""

import pytest
import yaml

from shared.config import get_config
from service_tokenization.app.identity import (
    ConfigPersistenceError,
    YamlConfigPersistence,
    load_identity,
    to_persisted,
)


class TestYamlConfigPersistence:
    """Test cases for YamlConfigPersistence."""

    @pytest.fixture
    def path(self, tmp_path):
        return tmp_path / "config.yaml"

    def test_missing_file_reads_as_empty(self, path):
        assert YamlConfigPersistence(str(path)).get_config() == {}

    def test_update_merges_into_existing_file(self, path):
        path.write_text("REGISTRY_HOST: http://registry.example\nOTHER: kept\n")
        persistence = YamlConfigPersistence(str(path))

        persistence.update_config({"HOME_ORG": "org-1"})

        data = yaml.safe_load(path.read_text())
        assert data == {"REGISTRY_HOST": "http://registry.example", "OTHER": "kept", "HOME_ORG": "org-1"}

    def test_update_creates_missing_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "config.yaml"
        YamlConfigPersistence(str(path)).update_config({"HOME_ORG": "org-1"})
        assert yaml.safe_load(path.read_text()) == {"HOME_ORG": "org-1"}

    def test_non_mapping_file_is_rejected(self, path):
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigPersistenceError):
            YamlConfigPersistence(str(path)).get_config()

    def test_invalid_yaml_is_rejected(self, path):
        path.write_text("HOME_ORG: [unclosed\n")
        with pytest.raises(ConfigPersistenceError):
            YamlConfigPersistence(str(path)).get_config()


def test_to_persisted_maps_field_names():
    assert to_persisted({"home_org": "org-1", "driver_host": "http://d"}) == {
        "HOME_ORG": "org-1",
        "TOKENIZE_DRIVER_HOST": "http://d",
    }


def test_to_persisted_rejects_unknown_fields():
    with pytest.raises(KeyError):
        to_persisted({"port": 1})


class TestLoadIdentity:
    """Startup identity: persisted values over settings."""

    def test_settings_used_when_nothing_persisted(self, tmp_path):
        config = get_config("tokenization", 31311, registry_host="http://registry.test/", driver_host="http://driver.test")
        identity = load_identity(config, YamlConfigPersistence(str(tmp_path / "config.yaml")))

        assert identity.registry_host == "http://registry.test"
        assert identity.driver_host == "http://driver.test"
        assert identity.home_org is None

    def test_persisted_values_override_settings(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "HOME_ORG: org-9\n"
            "REGISTRY_HOST: http://persisted-registry:31310\n"
            "TOKENIZE_DRIVER_HOST: http://persisted-driver:31312/\n"
        )
        config = get_config("tokenization", 31311, registry_host="http://registry.test", home_org="org-1")

        identity = load_identity(config, YamlConfigPersistence(str(path)))

        assert identity.home_org == "org-9"
        assert identity.registry_host == "http://persisted-registry:31310"
        assert identity.driver_host == "http://persisted-driver:31312"

    def test_empty_persisted_values_are_ignored(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("HOME_ORG: ''\n")
        config = get_config("tokenization", 31311, home_org="org-1")

        identity = load_identity(config, YamlConfigPersistence(str(path)))

        assert identity.home_org == "org-1"
