"""Pytest path setup for src-layout imports, plus shared fixtures."""

import os
import stat
from pathlib import Path
import sys

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PYTHON = REPO_ROOT / "src" / "python"

if str(SRC_PYTHON) not in sys.path:
    sys.path.insert(0, str(SRC_PYTHON))


SCHEME_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<Scheme LastUpgradeVersion = "1500" version = "1.7">
   <BuildAction parallelizeBuildables = "YES" buildImplicitDependencies = "YES">
      <PreActions>
{actions}
      </PreActions>
   </BuildAction>
</Scheme>
"""

ACTION_TEMPLATE = """         <ExecutionAction ActionType = "Xcode.IDEStandardExecutionActionsCore.ExecutionActionType.ShellScriptAction">
            <ActionContent title = "Run Script" scriptText = "{script}">
            </ActionContent>
         </ExecutionAction>"""


def scheme_xml(*escaped_scripts: str) -> str:
    """Build a scheme file whose pre-actions hold the given (already escaped) scripts."""
    actions = "\n".join(ACTION_TEMPLATE.format(script=s) for s in escaped_scripts)
    return SCHEME_TEMPLATE.format(actions=actions)


@pytest.fixture
def xcodeproj(tmp_path):
    """An empty App.xcodeproj bundle under tmp_path/App."""
    project_dir = tmp_path / "App"
    bundle = project_dir / "App.xcodeproj"
    bundle.mkdir(parents=True)
    return bundle


@pytest.fixture
def write_scheme(xcodeproj):
    def _write(content: str, scheme: str = "App") -> Path:
        schemes = xcodeproj / "xcshareddata" / "xcschemes"
        schemes.mkdir(parents=True, exist_ok=True)
        path = schemes / f"{scheme}.xcscheme"
        path.write_text(content, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def make_executable(tmp_path):
    """Write an executable shell script into tmp_path/bin and return its path."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(name: str, body: str) -> str:
        path = bin_dir / name
        path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)
    return _make


posix_only = pytest.mark.skipif(os.name != "posix", reason="requires a POSIX shell")
