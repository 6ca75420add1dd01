import json
import shlex
from pathlib import Path

from yesimbot_scaffold.build import BuildConfig, CoreBuilder
from yesimbot_scaffold.managers import PackageManager
from yesimbot_scaffold.recovery import PIN_JS, UNPIN_JS, build_recovery_commands, link_recovery_commands


def _builder(tmp_path, **overrides):
    config = BuildConfig(mirror_base="https://mirror.test", repo="Org/Proj", branch="dev", cache_root=tmp_path, **overrides)
    builder = CoreBuilder(config)
    builder.workdir = tmp_path / "1700000000000"
    return builder


def test_build_recovery_repeats_the_attempted_steps(tmp_path, monkeypatch):
    monkeypatch.delenv("GH_TOKEN", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    builder = _builder(tmp_path)

    lines = build_recovery_commands(builder, PackageManager.YARN)

    assert lines[0] == f"mkdir -p {builder.workdir} && cd {builder.workdir}"
    assert "https://mirror.test/Org/Proj/archive/refs/heads/dev.zip" in lines[1]
    assert "Authorization" not in lines[1]
    assert f"cd {builder.workdir / 'Proj-dev'}" in lines
    assert "yarn install --ignore-engines" in lines
    assert "yarn build" in lines


def test_build_recovery_includes_prepare_and_pin_steps(tmp_path):
    lines = build_recovery_commands(_builder(tmp_path), PackageManager.YARN)

    workspace = next(line for line in lines if line.startswith("test -f package.json"))
    written = json.loads(workspace.split("echo ", 1)[1].rsplit(" > ", 1)[0].strip("'"))
    assert written["workspaces"] == []
    assert "touch yarn.lock" in lines
    unpin = next(i for i, line in enumerate(lines) if line.startswith("find . -name package.json"))
    assert "*/node_modules/*" in lines[unpin]
    assert shlex.quote(UNPIN_JS) in lines[unpin]
    install = lines.index("yarn install --ignore-engines")
    pin = next(i for i, line in enumerate(lines) if shlex.quote(PIN_JS) in line)
    assert lines[pin].endswith('"yarn@$(yarn --version)"')
    assert unpin < install < pin < lines.index("yarn build")


def test_bun_recovery_pins_without_unpinning(tmp_path):
    lines = build_recovery_commands(_builder(tmp_path), PackageManager.BUN)

    assert "touch yarn.lock" in lines
    assert not any(line.startswith("find ") for line in lines)
    pin = next(i for i, line in enumerate(lines) if shlex.quote(PIN_JS) in line)
    assert lines[pin].endswith('"bun@$(bun --version)"')
    assert lines.index("bun install") < pin < lines.index("bun run build")


def test_build_recovery_sends_token_header_when_configured(tmp_path, monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.setenv("GH_TOKEN", "secret-value")

    lines = build_recovery_commands(_builder(tmp_path), PackageManager.BUN)

    assert '-H "Authorization: Bearer ${GH_TOKEN:-$GITHUB_TOKEN}"' in lines[1]
    assert "secret-value" not in "\n".join(lines)


def test_link_recovery_lists_every_package(tmp_path):
    project = tmp_path / "my ext"
    packages = [Path("/cache/1/YesImBot-dev/packages/core"), Path("/cache/1/YesImBot-dev/packages/memory")]

    lines = link_recovery_commands(project, PackageManager.BUN, packages)

    assert lines[0] == f"cd '{project}'"
    assert lines[1].startswith("rm -rf node_modules")
    assert "bun add --dev --force file:/cache/1/YesImBot-dev/packages/core" in lines
    assert "bun add --dev --force file:/cache/1/YesImBot-dev/packages/memory" in lines
    assert lines[-1] == "bun install"
