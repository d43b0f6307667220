"""
Tests for YAML setting overrides.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from casebinder import config


@pytest.fixture(autouse=True)
def restore_settings(monkeypatch):
    monkeypatch.setattr(config, 'SETTINGS', {})


class TestLoadSettings:

    def test_known_keys_override_defaults(self, tmp_path):
        settings_file = tmp_path / "casebinder.yaml"
        settings_file.write_text("upload_concurrency: 5\nbinder_title: TRIBUNAL BUNDLE\n", encoding='utf-8')

        loaded = config.load_settings(settings_file)

        assert loaded == {'upload_concurrency': 5, 'binder_title': 'TRIBUNAL BUNDLE'}
        assert config.get_setting('upload_concurrency') == 5
        assert config.get_setting('binder_title') == 'TRIBUNAL BUNDLE'

    def test_unknown_keys_ignored(self, tmp_path):
        settings_file = tmp_path / "casebinder.yaml"
        settings_file.write_text("page_width: 10\nmax_file_size_mb: 50\n", encoding='utf-8')

        assert config.load_settings(settings_file) == {'max_file_size_mb': 50}

    def test_missing_file_keeps_defaults(self, tmp_path):
        assert config.load_settings(tmp_path / "absent.yaml") == {}
        assert config.get_setting('upload_concurrency') == config.UPLOAD_CONCURRENCY

    def test_broken_file_keeps_defaults(self, tmp_path):
        settings_file = tmp_path / "casebinder.yaml"
        settings_file.write_text("upload_concurrency: [unclosed\n", encoding='utf-8')
        assert config.load_settings(settings_file) == {}

    def test_non_mapping_file_keeps_defaults(self, tmp_path):
        settings_file = tmp_path / "casebinder.yaml"
        settings_file.write_text("- just\n- a list\n", encoding='utf-8')
        assert config.load_settings(settings_file) == {}

    def test_empty_file(self, tmp_path):
        settings_file = tmp_path / "casebinder.yaml"
        settings_file.write_text("", encoding='utf-8')
        assert config.load_settings(settings_file) == {}


class TestGetSetting:

    def test_defaults(self):
        assert config.get_setting('timeline_signature_prefix') == 20
        assert config.get_setting('upload_concurrency') == config.UPLOAD_CONCURRENCY

    def test_unknown_setting(self):
        with pytest.raises(KeyError):
            config.get_setting('page_width')
