import os
from pathlib import Path

import pytest

from yesimbot_scaffold import managers
from yesimbot_scaffold.managers import PackageManager, commands_for, install_bun, select_package_manager
from yesimbot_scaffold.runner import CommandResult


def _never(*args, **kwargs):
    raise AssertionError("should not prompt")


@pytest.fixture(autouse=True)
def isolated_path(monkeypatch):
    monkeypatch.setenv("PATH", os.environ.get("PATH", ""))


def test_add_local_dependency_command_uses_file_specifier():
    cmd = commands_for(PackageManager.BUN).add_local_dep_cmd(Path("/tmp/core"))

    assert cmd == ("bun", "add", "--dev", "--force", "file:/tmp/core")


def test_manager_version_takes_last_output_line(fake_runner):
    runner = fake_runner({("yarn", "--version"): (0, "warning: something\n1.22.19\n", "")})

    assert managers.manager_version(PackageManager.YARN, runner) == "1.22.19"


def test_both_available_prompts_with_bun_default(fake_runner):
    asked = []

    def choose(options, default):
        asked.append((sorted(options), default))
        return "yarn"

    selected = select_package_manager(fake_runner(), choose=choose, confirm=_never)

    assert selected is PackageManager.YARN
    assert asked == [(["bun", "yarn"], "bun")]


@pytest.mark.parametrize("missing, expected", [("yarn", PackageManager.BUN), ("bun", PackageManager.YARN)])
def test_single_available_manager_is_used_without_prompt(fake_runner, missing, expected):
    selected = select_package_manager(fake_runner(missing={missing}), choose=_never, confirm=_never)

    assert selected is expected


def test_refusing_install_returns_none(fake_runner):
    runner = fake_runner(missing={"bun", "yarn"})

    assert select_package_manager(runner, choose=_never, confirm=lambda q: False) is None
    assert all(cmd[-1] == "--version" for cmd in runner.commands)


def test_install_falls_back_from_npm_to_script(fake_runner):
    state = {"installed": False}

    def script(cmd, kwargs):
        state["installed"] = True
        return CommandResult(cmd, 0)

    def bun_version(cmd, kwargs):
        return CommandResult(cmd, 0, "1.1.38\n") if state["installed"] else CommandResult(cmd, 127, "", "not found")

    runner = fake_runner({
        ("npm",): (1, "", "npm ERR! EACCES"),
        (managers.bun_install_methods()[1][1][0],): script,
        ("bun", "--version"): bun_version,
    }, missing={"yarn"})
    attempts = []

    selected = select_package_manager(runner, choose=_never, confirm=lambda q: True, on_attempt=attempts.append)

    assert selected is PackageManager.BUN
    assert attempts == ["npm", "install script"]
    npm_index = runner.commands.index(("npm", "install", "-g", "bun"))
    script_call = [c for c in runner.calls if c[1].get("shell")]
    assert len(script_call) == 1
    assert runner.calls.index(script_call[0]) > npm_index
    assert str(Path.home() / ".bun" / "bin") in os.environ["PATH"].split(os.pathsep)


def test_all_install_methods_failing_returns_none(fake_runner):
    runner = fake_runner({("npm",): (1, "", "no npm")}, missing={"bun", "yarn"})
    runner.responses[(managers.bun_install_methods()[1][1][0],)] = (1, "", "curl: could not resolve host")

    assert select_package_manager(runner, choose=_never, confirm=lambda q: True) is None


def test_shell_profile_is_only_touched_on_opt_in(tmp_path, fake_runner):
    runner = fake_runner({("npm",): (1, "", "no npm")})

    assert install_bun(runner, home=tmp_path, confirm_rc_edit=lambda lines: False) is True
    assert not (tmp_path / ".bashrc").exists()

    assert install_bun(runner, home=tmp_path, confirm_rc_edit=lambda lines: True) is True
    assert install_bun(runner, home=tmp_path, confirm_rc_edit=lambda lines: True) is True

    bashrc = (tmp_path / ".bashrc").read_text()
    assert bashrc.count('export PATH="$BUN_INSTALL/bin:$PATH"') == 1
    assert f'export BUN_INSTALL="{tmp_path / ".bun"}"' in bashrc
    assert (tmp_path / ".zshrc").exists()


def test_append_shell_exports_keeps_existing_content(tmp_path):
    rc = tmp_path / ".bashrc"
    rc.write_text("alias ll='ls -l'")

    touched = managers.append_shell_exports(tmp_path, ["export A=1"], rc_files=(".bashrc",))

    assert touched == [rc]
    assert rc.read_text() == "alias ll='ls -l'\n# bun\nexport A=1\n"
