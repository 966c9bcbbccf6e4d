import json

import pytest

from xdeploy.data_manager import DataManager
from xdeploy.models import AppData, DeviceConfig, Project


def test_load_missing_file_returns_empty(tmp_path):
    data = DataManager(tmp_path / "data.json").load()
    assert data.projects == []
    assert data.device_config == DeviceConfig()


def test_save_then_load(tmp_path):
    manager = DataManager(tmp_path / "nested" / "data.json")
    original = AppData(
        projects=[Project(name="Prism", project_path="~/Dev/Prism/Prism.xcodeproj", scheme="Prism", bundle_id="com.example.prism")],
        device_config=DeviceConfig(iphone_name="Dana's iPhone", ipad_name="Dana's iPad"),
    )
    original.selected_project_id = original.projects[0].id

    manager.save(original)
    loaded = manager.load()

    assert loaded == original


def test_saved_file_uses_app_keys(tmp_path):
    path = tmp_path / "data.json"
    DataManager(path).save(AppData(projects=[Project(name="A", project_path="p", scheme="A", bundle_id="b", id="X")]))

    payload = json.loads(path.read_text(encoding="utf-8"))

    assert payload["projects"][0] == {"id": "X", "name": "A", "projectPath": "p", "scheme": "A", "bundleID": "b"}
    assert payload["deviceConfig"] == {"iPadName": "iPad", "iPhoneName": "iPhone"}
    assert not list(tmp_path.glob(".data-*"))


def test_corrupt_file_returns_empty(tmp_path):
    path = tmp_path / "data.json"
    path.write_text("{not json", encoding="utf-8")
    assert DataManager(path).load().projects == []


def test_invalid_record_returns_empty(tmp_path):
    path = tmp_path / "data.json"
    path.write_text(json.dumps({"projects": [{"name": "only a name"}]}), encoding="utf-8")
    assert DataManager(path).load().projects == []


@pytest.mark.parametrize("content", [
    "null",
    "[]",
    '{"projects": [5]}',
    '{"projects": {"id": "X"}}',
    '{"deviceConfig": "x"}',
])
def test_wrong_shape_returns_empty(tmp_path, content):
    path = tmp_path / "data.json"
    path.write_text(content, encoding="utf-8")

    data = DataManager(path).load()

    assert data == AppData()
