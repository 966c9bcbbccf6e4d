from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

DEFAULT_XCODEBUILD = "/usr/bin/xcodebuild"
DEFAULT_XCRUN = "/usr/bin/xcrun"
DEFAULT_SHELL = "/bin/sh"
DEFAULT_FORMATTER = "/opt/homebrew/bin/xcbeautify"

# xcbeautify only emits colors for a terminal unless forced.
FORMATTER_COLOR_ENV: Dict[str, str] = {
    "CLICOLOR_FORCE": "1",
    "TERM": "xterm-256color",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(environ: Mapping[str, str], name: str) -> Optional[bool]:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip().lower() in _TRUE_VALUES


def default_data_file() -> Path:
    return Path.home() / "Library" / "Application Support" / "xDeploy" / "data.json"


@dataclass
class DeployConfig:
    """Tool locations and switches for a DeploymentManager."""
    xcodebuild_path: str = DEFAULT_XCODEBUILD
    xcrun_path: str = DEFAULT_XCRUN
    shell_path: str = DEFAULT_SHELL
    formatter_path: str = DEFAULT_FORMATTER
    formatter_args: Tuple[str, ...] = ()
    formatter_env: Dict[str, str] = field(default_factory=lambda: dict(FORMATTER_COLOR_ENV))
    use_beautifier: bool = True
    use_pty: bool = False
    run_pre_build_scripts: bool = True
    data_file: Path = field(default_factory=default_data_file)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DeployConfig":
        """Build a config, honouring XDEPLOY_* overrides."""
        env = os.environ if environ is None else environ
        config = cls()
        config.xcodebuild_path = env.get("XDEPLOY_XCODEBUILD") or config.xcodebuild_path
        config.xcrun_path = env.get("XDEPLOY_XCRUN") or config.xcrun_path
        config.shell_path = env.get("XDEPLOY_SHELL") or config.shell_path
        config.formatter_path = env.get("XDEPLOY_FORMATTER") or config.formatter_path

        use_pty = _env_flag(env, "XDEPLOY_USE_PTY")
        if use_pty is not None:
            config.use_pty = use_pty
        if _env_flag(env, "XDEPLOY_NO_BEAUTIFY"):
            config.use_beautifier = False
        if _env_flag(env, "XDEPLOY_SKIP_PRE_BUILD"):
            config.run_pre_build_scripts = False

        data_file = env.get("XDEPLOY_DATA_FILE")
        if data_file:
            config.data_file = Path(os.path.expanduser(data_file))
        return config
