"""xdeploy: build, install and launch iOS apps on physical devices."""

from .config import DeployConfig
from .deployment import DeploymentManager
from .errors import (
    CommandFailedError,
    DeploymentCancelledError,
    DeploymentError,
    LaunchError,
    PreBuildScriptError,
)
from .models import AppData, DeviceConfig, Project
from .process_runner import CancellationToken

__version__ = "0.1.0"
