"""Tests for editor configuration: environment, settings.json and defaults."""

import json
import os

import pytest

from config.editor_settings import DEFAULT_FILE_NAMES, EditorSettings

ENV_VARS = (
    'FLYFF_RESOURCE_DIR', 'FLYFF_SAVE_DIRS', 'FLYFF_SAVE_ENCODING', 'FLYFF_LEGACY_ENCODING',
    'FLYFF_CREATE_BACKUPS', 'FLYFF_PARSE_BATCH_SIZE', 'FLYFF_MODEL_OVERRIDES',
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings_path(tmp_path):
    return tmp_path / 'settings.json'


class TestDefaults:

    def test_defaults(self, settings_path):
        settings = EditorSettings(settings_path)
        assert settings.resource_folder is None
        assert settings.save_encoding == 'cp1252'
        assert settings.legacy_encoding == 'cp1252'
        assert not settings.create_backups
        assert settings.batch_size == 1000
        assert settings.file_names == DEFAULT_FILE_NAMES
        assert settings.load_model_overrides() == {}

    def test_save_candidates_fall_back_to_resource_candidates(self, settings_path):
        settings = EditorSettings(settings_path)
        assert settings.save_candidates == settings.resource_candidates


class TestSources:

    def test_settings_file_is_read(self, settings_path, tmp_path):
        settings_path.write_text(json.dumps({
            'resource_folder': str(tmp_path),
            'save_encoding': 'cp949',
            'create_backups': True,
            'batch_size': 50,
            'file_names': {'spec_item': 'Spec_Item_Custom.txt', 'unknown': 'x'},
        }))
        settings = EditorSettings(settings_path)

        assert settings.resource_folder == tmp_path
        assert settings.resource_candidates[0] == tmp_path
        assert settings.save_encoding == 'cp949'
        assert settings.create_backups
        assert settings.batch_size == 50
        assert settings.file_name('spec_item') == 'Spec_Item_Custom.txt'
        assert 'unknown' not in settings.file_names

    def test_environment_wins_over_file(self, settings_path, tmp_path, monkeypatch):
        settings_path.write_text(json.dumps({'save_encoding': 'cp949', 'create_backups': True}))
        monkeypatch.setenv('FLYFF_SAVE_ENCODING', 'GBK')
        monkeypatch.setenv('FLYFF_CREATE_BACKUPS', 'false')
        monkeypatch.setenv('FLYFF_SAVE_DIRS', f"{tmp_path / 'a'}{os.pathsep}{tmp_path / 'b'}")

        settings = EditorSettings(settings_path)

        assert settings.save_encoding == 'gbk'
        assert not settings.create_backups
        assert settings.save_candidates == [tmp_path / 'a', tmp_path / 'b']

    def test_invalid_values_keep_defaults(self, settings_path, monkeypatch):
        monkeypatch.setenv('FLYFF_SAVE_ENCODING', 'ebcdic')
        monkeypatch.setenv('FLYFF_PARSE_BATCH_SIZE', 'many')
        settings = EditorSettings(settings_path)
        assert settings.save_encoding == 'cp1252'
        assert settings.batch_size == 1000

    def test_broken_settings_file_is_ignored(self, settings_path):
        settings_path.write_text('{not json')
        assert EditorSettings(settings_path).save_encoding == 'cp1252'


class TestSetters:

    def test_setters_persist(self, settings_path, tmp_path):
        settings = EditorSettings(settings_path)
        assert settings.set_resource_folder(str(tmp_path))
        assert settings.set_save_folders([str(tmp_path / 'out')])
        assert settings.set_save_encoding('CP1251')
        assert settings.set_create_backups(True)

        reloaded = EditorSettings(settings_path)
        assert reloaded.resource_folder == tmp_path
        assert reloaded.save_candidates == [tmp_path / 'out']
        assert reloaded.save_encoding == 'cp1251'
        assert reloaded.create_backups

    def test_rejected_values(self, settings_path, tmp_path):
        settings = EditorSettings(settings_path)
        assert not settings.set_resource_folder(str(tmp_path / 'missing'))
        assert not settings.set_save_encoding('ebcdic')
        assert not settings_path.exists()

    def test_settings_info(self, settings_path, tmp_path, monkeypatch):
        monkeypatch.setenv('FLYFF_RESOURCE_DIR', str(tmp_path))
        info = EditorSettings(settings_path).get_all_settings_info()
        assert info['resource_folder'] == {'path': str(tmp_path), 'exists': True, 'from_env': True}
        assert info['save_encoding'] == 'cp1252'


class TestModelOverrides:

    def test_overrides_file(self, settings_path, tmp_path, monkeypatch):
        overrides = tmp_path / 'overrides.json'
        overrides.write_text(json.dumps({
            'II_ARM_F_MISSING': {'file_name': 'Item_ArmMissing', 'mesh_name': 'Part_fMissing', 'extra': 1},
            'II_BROKEN': 'not an object',
        }))
        monkeypatch.setenv('FLYFF_MODEL_OVERRIDES', str(overrides))

        assert EditorSettings(settings_path).load_model_overrides() == {
            'II_ARM_F_MISSING': {'file_name': 'Item_ArmMissing', 'mesh_name': 'Part_fMissing'},
        }

    @pytest.mark.parametrize("content", [None, '[1, 2]', '{broken'])
    def test_unusable_overrides_are_empty(self, settings_path, tmp_path, monkeypatch, content):
        overrides = tmp_path / 'overrides.json'
        if content is not None:
            overrides.write_text(content)
        monkeypatch.setenv('FLYFF_MODEL_OVERRIDES', str(overrides))
        assert EditorSettings(settings_path).load_model_overrides() == {}
