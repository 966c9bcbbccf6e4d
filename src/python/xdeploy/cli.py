import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import DeployConfig
from .data_manager import DataManager
from .deployment import DeploymentManager
from .errors import DeploymentError
from .models import AppData, Project
from .progress import create_status_callback

logger = logging.getLogger(__name__)

DEVICE_SLOTS = ("iphone", "ipad")


def setup_logging(debug: bool = False, log_path: Optional[str] = None) -> None:
    """Setup logging: stderr always, plus an optional log file."""
    level = logging.DEBUG if debug else logging.WARNING
    format_str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(log_path) if log_path else logging.NullHandler()
        ]
    )
    logger.debug("xdeploy logging initialized")


def resolve_devices(app_data: AppData, values: Optional[List[str]]) -> List[str]:
    """Map 'iphone'/'ipad' to configured names; anything else is a custom device name."""
    if not values:
        values = ["iphone"]
    devices = []
    for value in values:
        if value.strip().lower() in DEVICE_SLOTS:
            devices.append(app_data.device_config.name_for(value))
        else:
            devices.append(value)
    return devices


def _exit_status(error: DeploymentError) -> int:
    code = error.exit_code
    return code if 0 < code < 256 else 1


def build():
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--debug", action="store_true", help="Enable debug logging")
    common.add_argument("--log", default=None, help="Also write the log to this file")
    common.add_argument("--data-file", default=None, help="Override the project data file")

    p = argparse.ArgumentParser(prog="xdeploy", description="xdeploy: build, install and run iOS apps on devices")
    sp = p.add_subparsers(dest="cmd", required=True)

    sp.add_parser("projects", parents=[common], help="List saved projects")

    a = sp.add_parser("add", parents=[common], help="Save a project")
    a.add_argument("--name", required=True)
    a.add_argument("--path", dest="project_path", required=True, help="Path to the .xcodeproj")
    a.add_argument("--scheme", default=None, help="Scheme name (default: project file name)")
    a.add_argument("--bundle-id", required=True)
    a.add_argument("--derived-data", default="", help="Explicit derived data directory")

    r = sp.add_parser("remove", parents=[common], help="Delete a saved project")
    r.add_argument("project", help="Project name or id")

    d = sp.add_parser("devices", parents=[common], help="Show or set the device names")
    d.add_argument("--iphone", default=None)
    d.add_argument("--ipad", default=None)

    for cmd, help_text in (
        ("build", "Build only"),
        ("install", "Build and install"),
        ("run", "Build, install and launch"),
    ):
        c = sp.add_parser(cmd, parents=[common], help=help_text)
        c.add_argument("project", help="Project name or id")
        c.add_argument(
            "--device",
            action="append",
            help="iphone, ipad, or a device name as shown in Xcode (repeatable)",
        )
        c.add_argument("--no-pre-build", action="store_true", help="Skip scheme pre-build scripts")
        c.add_argument("--no-beautify", action="store_true", help="Stream raw xcodebuild output")
        c.add_argument("--pty", action="store_true", help="Run the formatter on a pseudo-terminal")
        c.add_argument("--formatter", default=None, help="Path to the build log formatter")
    return p


def _write_output(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def _print_status(message: str) -> None:
    # Structured prefix so wrapping UIs can pick status lines out of the stream
    print(f"XDEPLOY_STATUS: {message}")
    sys.stdout.flush()


def _cmd_projects(app_data: AppData) -> int:
    if not app_data.projects:
        print("No projects. Add one with: xdeploy add --name ... --path ... --bundle-id ...")
        return 0
    for project in app_data.projects:
        marker = "*" if project.id == app_data.selected_project_id else " "
        print(f"{marker} {project.name:<24} {project.scheme:<20} {project.bundle_id}")
        print(f"    {project.project_path}")
    return 0


def _cmd_add(a, data_manager: DataManager, app_data: AppData) -> int:
    scheme = a.scheme or Path(a.project_path).stem
    project = Project(
        name=a.name,
        project_path=a.project_path,
        scheme=scheme,
        bundle_id=a.bundle_id,
        derived_data_path=a.derived_data,
    )
    app_data.projects.insert(0, project)
    data_manager.save(app_data)
    print(f"Added {project.name} ({project.id})")
    return 0


def _cmd_remove(a, data_manager: DataManager, app_data: AppData) -> int:
    project = app_data.find_project(a.project)
    if project is None:
        print(f"Unknown project: {a.project}", file=sys.stderr)
        return 2
    app_data.projects.remove(project)
    if app_data.selected_project_id == project.id:
        app_data.selected_project_id = None
    data_manager.save(app_data)
    print(f"Removed {project.name}")
    return 0


def _cmd_devices(a, data_manager: DataManager, app_data: AppData) -> int:
    if a.iphone or a.ipad:
        if a.iphone:
            app_data.device_config.iphone_name = a.iphone
        if a.ipad:
            app_data.device_config.ipad_name = a.ipad
        data_manager.save(app_data)
    print(f"iPhone: {app_data.device_config.iphone_name}")
    print(f"iPad:   {app_data.device_config.ipad_name}")
    return 0


def _cmd_deploy(a, config: DeployConfig, data_manager: DataManager, app_data: AppData) -> int:
    project = app_data.find_project(a.project)
    if project is None:
        print(f"Unknown project: {a.project}", file=sys.stderr)
        return 2

    if a.no_pre_build:
        config.run_pre_build_scripts = False
    if a.no_beautify:
        config.use_beautifier = False
    if a.pty:
        config.use_pty = True
    if a.formatter:
        config.formatter_path = a.formatter

    # Most recently deployed project goes to the top of the list.
    app_data.selected_project_id = project.id
    app_data.move_to_top(project.id)
    data_manager.save(app_data)

    devices = resolve_devices(app_data, a.device)
    manager = DeploymentManager(config)
    status = create_status_callback(_print_status)

    try:
        if a.cmd == "build":
            for device in devices:
                status(f"Building {project.name} for {device}...")
                manager.build(project, device, _write_output)
                status(f"✓ Built {project.name} for {device}")
        else:
            manager.deploy_to_devices(
                project,
                devices,
                include_run=a.cmd == "run",
                status_handler=status,
                output_handler=_write_output,
            )
    except DeploymentError as e:
        _write_output(f"\nError: {e}\n")
        if e.technical_details:
            logger.debug(f"[{e.error_code}] {e.technical_details}")
        return _exit_status(e)
    return 0


def main(argv: Optional[List[str]] = None):
    a = build().parse_args(argv)
    setup_logging(a.debug, a.log)

    config = DeployConfig.from_env()
    if a.data_file:
        config.data_file = Path(a.data_file).expanduser()
    data_manager = DataManager(config.data_file)
    app_data = data_manager.load()

    try:
        if a.cmd == "projects":
            code = _cmd_projects(app_data)
        elif a.cmd == "add":
            code = _cmd_add(a, data_manager, app_data)
        elif a.cmd == "remove":
            code = _cmd_remove(a, data_manager, app_data)
        elif a.cmd == "devices":
            code = _cmd_devices(a, data_manager, app_data)
        else:
            code = _cmd_deploy(a, config, data_manager, app_data)
    except KeyboardInterrupt:
        print("Operation cancelled by user", file=sys.stderr)
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    main()
