"""
Deployment orchestration: build, install and launch on a physical device.

DeploymentManager holds no per-call state. A driver creates one at startup
and hands it to whatever needs to deploy; every operation blocks the calling
thread until the underlying tools finish, so drivers run it off their UI
thread (see xdeploy.worker).
"""

import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

from .beautifier import run_command_with_beautifier
from .config import DeployConfig
from .errors import CommandFailedError, PreBuildScriptError
from .models import Project
from .process_runner import CancellationToken, OutputHandler, run_command
from .progress import DeploymentPhase, DeploymentTracker, StatusHandler
from .scheme_scripts import PreBuildScripts, load_pre_build_scripts

logger = logging.getLogger(__name__)


def build_arguments(project: Project, device_name: str) -> List[str]:
    return [
        "-scheme",
        project.scheme,
        "-project",
        project.expanded_project_path,
        "build",
        "-destination",
        f"platform=iOS,name={device_name}",
    ]


def install_arguments(project: Project, device_name: str) -> List[str]:
    return [
        "devicectl",
        "device",
        "install",
        "app",
        "--device",
        device_name,
        project.app_bundle_path,
    ]


def launch_arguments(project: Project, device_name: str) -> List[str]:
    return [
        "devicectl",
        "device",
        "process",
        "launch",
        "--device",
        device_name,
        project.bundle_id,
    ]


def _discard(_text: str) -> None:
    pass


class DeploymentManager:
    """Sequences pre-build scripts, xcodebuild and devicectl for one project."""

    def __init__(self, config: Optional[DeployConfig] = None):
        self.config = config or DeployConfig()
        self._locks_guard = threading.Lock()
        self._project_locks: Dict[str, "threading.RLock"] = {}

    def _project_lock(self, project: Project) -> "threading.RLock":
        # Two builds of one project would race on the same Build folder.
        key = project.expanded_project_path
        with self._locks_guard:
            return self._project_locks.setdefault(key, threading.RLock())

    # ------------------------------------------------------------------
    # Pre-build scripts
    # ------------------------------------------------------------------

    def _run_scripts(self, pre_build: PreBuildScripts, cancel_token: Optional[CancellationToken] = None) -> None:
        def log_output(line: str) -> None:
            logger.debug(f"[pre-build] {line.rstrip()}")

        for index, script in enumerate(pre_build.scripts):
            logger.info(f"Running pre-build script {index + 1}/{len(pre_build)}")
            try:
                run_command(
                    self.config.shell_path,
                    ["-c", script],
                    log_output,
                    env={"PROJECT_DIR": pre_build.project_dir},
                    merge_stderr=True,
                    cancel_token=cancel_token,
                )
            except CommandFailedError as e:
                raise PreBuildScriptError(e.exit_code, index) from e

    def run_pre_build_scripts(self, project: Project, cancel_token: Optional[CancellationToken] = None) -> int:
        """Run the scheme's pre-build scripts. Returns how many ran."""
        pre_build = load_pre_build_scripts(project)
        self._run_scripts(pre_build, cancel_token)
        return len(pre_build)

    # ------------------------------------------------------------------
    # Single operations
    # ------------------------------------------------------------------

    def build(
        self,
        project: Project,
        device_name: str,
        output_handler: Optional[OutputHandler] = None,
        *,
        run_scripts: bool = True,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        """Build the project for the named device."""
        with self._project_lock(project):
            if run_scripts and self.config.run_pre_build_scripts:
                self.run_pre_build_scripts(project, cancel_token)

            args = build_arguments(project, device_name)
            if self.config.use_beautifier:
                run_command_with_beautifier(
                    self.config.xcodebuild_path,
                    args,
                    output_handler,
                    formatter_path=self.config.formatter_path,
                    formatter_args=self.config.formatter_args,
                    formatter_env=self.config.formatter_env,
                    use_pty=self.config.use_pty,
                    cancel_token=cancel_token,
                )
            else:
                run_command(
                    self.config.xcodebuild_path,
                    args,
                    output_handler,
                    merge_stderr=True,
                    cancel_token=cancel_token,
                )

    def install(
        self,
        project: Project,
        device_name: str,
        output_handler: Optional[OutputHandler] = None,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        """Push the built app bundle to the named device."""
        run_command(
            self.config.xcrun_path,
            install_arguments(project, device_name),
            output_handler,
            cancel_token=cancel_token,
        )

    def launch(
        self,
        project: Project,
        device_name: str,
        output_handler: Optional[OutputHandler] = None,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        """Start the installed app on the named device."""
        run_command(
            self.config.xcrun_path,
            launch_arguments(project, device_name),
            output_handler,
            cancel_token=cancel_token,
        )

    # ------------------------------------------------------------------
    # Composite workflows
    # ------------------------------------------------------------------

    def deploy_install(
        self,
        project: Project,
        device_name: str,
        status_handler: Optional[StatusHandler] = None,
        output_handler: Optional[OutputHandler] = None,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DeploymentTracker:
        """Build, then install."""
        return self._deploy(project, device_name, False, status_handler, output_handler, cancel_token)

    def deploy_run(
        self,
        project: Project,
        device_name: str,
        status_handler: Optional[StatusHandler] = None,
        output_handler: Optional[OutputHandler] = None,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DeploymentTracker:
        """Build, install, then launch."""
        return self._deploy(project, device_name, True, status_handler, output_handler, cancel_token)

    def deploy_to_devices(
        self,
        project: Project,
        device_names: Sequence[str],
        *,
        include_run: bool,
        status_handler: Optional[StatusHandler] = None,
        output_handler: Optional[OutputHandler] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[DeploymentTracker]:
        """Deploy to each device in turn, stopping at the first failure."""
        if not device_names:
            raise ValueError("Select at least one device")
        return [
            self._deploy(project, device_name, include_run, status_handler, output_handler, cancel_token)
            for device_name in device_names
        ]

    def _deploy(
        self,
        project: Project,
        device_name: str,
        include_run: bool,
        status_handler: Optional[StatusHandler],
        output_handler: Optional[OutputHandler],
        cancel_token: Optional[CancellationToken],
    ) -> DeploymentTracker:
        output: Callable[[str], None] = output_handler or _discard
        tracker = DeploymentTracker(status_handler)

        with self._project_lock(project):
            try:
                if self.config.run_pre_build_scripts:
                    pre_build = load_pre_build_scripts(project)
                    if pre_build:
                        tracker.enter(DeploymentPhase.PRE_BUILD, f"Running pre-build scripts for {project.name}...")
                        self._run_scripts(pre_build, cancel_token)

                tracker.enter(DeploymentPhase.BUILDING, f"Building {project.name} for {device_name}...")
                output(f"=== Building {project.name} for {device_name} ===\n")
                self.build(project, device_name, output_handler, run_scripts=False, cancel_token=cancel_token)

                tracker.enter(DeploymentPhase.INSTALLING, f"Installing on {device_name}...")
                output(f"\n=== Installing on {device_name} ===\n")
                self.install(project, device_name, output_handler, cancel_token=cancel_token)

                if include_run:
                    tracker.enter(DeploymentPhase.LAUNCHING, f"Launching on {device_name}...")
                    output(f"\n=== Launching on {device_name} ===\n")
                    self.launch(project, device_name, output_handler, cancel_token=cancel_token)
                    output("\n✓ Launch complete\n")
                    tracker.finish(f"✓ Running {project.name} on {device_name}")
                else:
                    output("\n✓ Installation complete\n")
                    tracker.finish(f"✓ Installed {project.name} on {device_name}")
            except Exception as e:
                if not tracker.phase.is_terminal:
                    tracker.fail(e)
                logger.error(f"Deployment of {project.name} to {device_name} failed: {e}")
                raise

        return tracker
