import json

import pytest

from yesimbot_scaffold import scaffold
from yesimbot_scaffold.scaffold import (
    EXTENSION_KEYWORDS,
    class_name,
    full_package_name,
    scaffold_extension,
    validate_extension_name,
)


def test_scaffold_renders_all_placeholders(tmp_path):
    project = tmp_path / "weather-tool"

    bindings = scaffold_extension(project, "weather-tool", "weather tool", "Tells the weather")

    assert bindings["ClassName"] == "WeatherTool"
    for rel in ("src/index.ts", "README.md", "package.json"):
        assert "{{" not in (project / rel).read_text(encoding="utf-8"), rel
    assert (project / "esbuild.config.mjs").exists()
    index = (project / "src" / "index.ts").read_text(encoding="utf-8")
    assert "export default class WeatherTool" in index
    assert "name: 'weather-tool'" in index


def test_scaffold_merges_package_json(tmp_path):
    project = tmp_path / "weather"

    scaffold_extension(project, "weather", "weather", "Tells the weather")

    data = json.loads((project / "package.json").read_text(encoding="utf-8"))
    assert data["name"] == "koishi-plugin-yesimbot-extension-weather"
    assert data["description"] == "Tells the weather"
    assert data["keywords"] == EXTENSION_KEYWORDS
    assert data["scripts"]["build"] == "tsc && node esbuild.config.mjs"
    assert data["scripts"]["pack"] == "bun pm pack"


def test_description_with_quotes_keeps_package_json_valid(tmp_path):
    project = tmp_path / "quotes"

    scaffold_extension(project, "quotes", "quotes", 'Says "hi"\\o/')

    data = json.loads((project / "package.json").read_text(encoding="utf-8"))
    assert data["koishi"]["description"]["en"] == 'Says "hi"\\o/'


def test_failed_scaffold_removes_project(tmp_path, monkeypatch):
    def broken(path, updates):
        raise ValueError("bad manifest")

    monkeypatch.setattr(scaffold, "update_package_json", broken)
    project = tmp_path / "broken"

    with pytest.raises(ValueError):
        scaffold_extension(project, "broken", "broken", "")

    assert not project.exists()


def test_existing_directory_is_refused(tmp_path):
    project = tmp_path / "taken"
    project.mkdir()

    with pytest.raises(FileExistsError):
        scaffold_extension(project, "taken", "taken", "")
    assert project.exists()


@pytest.mark.parametrize("name, ok", [("weather", True), ("my-tool-2", True), ("MyTool", False), ("my_tool", False), ("", False)])
def test_validate_extension_name(name, ok):
    assert validate_extension_name(name) is ok


def test_names():
    assert class_name("image  search") == "ImageSearch"
    assert full_package_name("memo") == "koishi-plugin-yesimbot-extension-memo"
