"""Copy-pasteable shell commands that repeat a failed automated step by hand."""

import json
import shlex
from pathlib import Path
from typing import Optional, Sequence

from .build import CORE_PACKAGE, CoreBuilder
from .fetch import auth_headers
from .managers import ALL_LOCKFILES, PackageManager, commands_for


# node one-liners mirroring manifest.strip_package_manager / pin_package_manager
UNPIN_JS = (
    "const fs=require('fs'),f=process.argv[1],p=JSON.parse(fs.readFileSync(f,'utf8'));"
    "if('packageManager' in p){delete p.packageManager;fs.writeFileSync(f,JSON.stringify(p,null,2)+'\\n')}"
)
PIN_JS = (
    "const fs=require('fs'),p=JSON.parse(fs.readFileSync('package.json','utf8'));"
    "if(!('packageManager' in p)){p.packageManager=process.argv[1];"
    "fs.writeFileSync('package.json',JSON.stringify(p,null,2)+'\\n')}"
)


def _q(value) -> str:
    return shlex.quote(str(value))


def build_recovery_commands(builder: CoreBuilder, manager: PackageManager) -> list[str]:
    cmds = commands_for(manager)
    config = builder.config
    workdir = builder.workdir or config.cache_root / "<timestamp>"
    archive = builder.archive_path or workdir / config.archive_name
    root = builder.source_root or workdir / f"{config.repo_name}-{config.branch.replace('/', '-')}"

    curl = f"curl -fL -o {_q(archive.name)} {_q(builder.archive_url)}"
    if auth_headers(config.github_token):
        curl = f'curl -fL -H "Authorization: Bearer ${{GH_TOKEN:-$GITHUB_TOKEN}}" -o {_q(archive.name)} {_q(builder.archive_url)}'
    workspace = json.dumps({"name": f"{root.name.lower()}-root", "private": True, "workspaces": []})

    lines = [
        f"mkdir -p {_q(workdir)} && cd {_q(workdir)}",
        curl,
        f"unzip -o {_q(archive.name)}",
        f"cd {_q(root)}",
        f"test -f package.json || echo {_q(workspace)} > package.json",
        "touch yarn.lock",
    ]
    if manager is PackageManager.YARN:
        lines.append(shlex.join([
            "find", ".", "-name", "package.json", "-not", "-path", "*/node_modules/*",
            "-exec", "node", "-e", UNPIN_JS, "{}", ";",
        ]))
    lines.append(shlex.join(cmds.install_deps_cmd))
    lines.append(shlex.join(["node", "-e", PIN_JS]) + f' "{manager.value}@$({manager.value} --version)"')
    lines.append(shlex.join(cmds.build_cmd))
    lines.append(f"cat {_q(CORE_PACKAGE / 'package.json')}")
    return lines


def link_recovery_commands(
    project_path: Path,
    manager: PackageManager,
    packages: Optional[Sequence[Path]] = None,
    core_path: Optional[Path] = None,
) -> list[str]:
    cmds = commands_for(manager)
    targets = list(packages or ([core_path] if core_path else []))
    lines = [
        f"cd {_q(project_path)}",
        "rm -rf node_modules " + " ".join(ALL_LOCKFILES),
    ]
    if targets:
        lines.extend(shlex.join(cmds.add_local_dep_cmd(p)) for p in targets)
    else:
        lines.append(shlex.join(cmds.add_local_dep_cmd(Path("<path-to-built-core>"))))
    lines.append(shlex.join(cmds.install_deps_cmd))
    return lines
