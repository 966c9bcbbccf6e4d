"""
Data model shared by the deployment engine and its drivers.

The JSON keys used by to_dict/from_dict match the desktop app's data.json,
so a file written by either side can be read by the other.
"""

import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

APP_BUNDLE_SUBPATH = Path("Build") / "Products" / "Debug-iphoneos"


def expand_home(path: str) -> str:
    """Expand a leading ``~`` to the user's home directory."""
    return os.path.expanduser(path)


def _require_mapping(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be an object, got {type(value).__name__}")
    return value


@dataclass
class Project:
    """An Xcode project reference that can be deployed to a device."""
    name: str
    project_path: str
    scheme: str
    bundle_id: str
    derived_data_path: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()).upper())

    @property
    def expanded_project_path(self) -> str:
        return expand_home(self.project_path)

    @property
    def project_directory(self) -> str:
        """Directory containing the .xcodeproj bundle."""
        return str(Path(self.expanded_project_path).parent)

    @property
    def app_bundle_path(self) -> str:
        """Path to the built .app, assuming the scheme name matches the product.

        With an explicit derived data directory the bundle lives under it;
        otherwise it lives in a Build folder next to the .xcodeproj.
        Example: ~/Developer/Prism/Build/Products/Debug-iphoneos/Prism.app
        """
        if self.derived_data_path:
            root = Path(expand_home(self.derived_data_path))
        else:
            root = Path(self.project_directory)
        return str(root / APP_BUNDLE_SUBPATH / f"{self.scheme}.app")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "projectPath": self.project_path,
            "scheme": self.scheme,
            "bundleID": self.bundle_id,
        }
        if self.derived_data_path:
            data["derivedDataPath"] = self.derived_data_path
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        data = _require_mapping(data, "Project record")
        missing = [key for key in ("name", "projectPath", "scheme", "bundleID") if key not in data]
        if missing:
            raise ValueError(f"Project record missing fields: {', '.join(missing)}")
        kwargs = {
            "name": data["name"],
            "project_path": data["projectPath"],
            "scheme": data["scheme"],
            "bundle_id": data["bundleID"],
            "derived_data_path": data.get("derivedDataPath") or "",
        }
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        return cls(**kwargs)


@dataclass
class DeviceConfig:
    """Names of the two device slots, as they appear in Xcode's device list."""
    iphone_name: str = "iPhone"
    ipad_name: str = "iPad"

    def name_for(self, slot: str) -> str:
        normalized = (slot or "").strip().lower()
        if normalized == "iphone":
            return self.iphone_name
        if normalized == "ipad":
            return self.ipad_name
        raise ValueError(f"Unknown device slot '{slot}'. Choose from iphone or ipad.")

    def to_dict(self) -> Dict[str, Any]:
        return {"iPhoneName": self.iphone_name, "iPadName": self.ipad_name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceConfig":
        data = _require_mapping(data, "deviceConfig")
        default = cls()
        return cls(
            iphone_name=data.get("iPhoneName") or default.iphone_name,
            ipad_name=data.get("iPadName") or default.ipad_name,
        )


@dataclass
class AppData:
    projects: List[Project] = field(default_factory=list)
    device_config: DeviceConfig = field(default_factory=DeviceConfig)
    selected_project_id: Optional[str] = None

    def find_project(self, key: str) -> Optional[Project]:
        """Look a project up by id, then by case-insensitive name."""
        for project in self.projects:
            if project.id == key:
                return project
        lowered = key.lower()
        for project in self.projects:
            if project.name.lower() == lowered:
                return project
        return None

    def move_to_top(self, project_id: str) -> bool:
        """Move a project to the head of the list. Returns True if it moved."""
        for index, project in enumerate(self.projects):
            if project.id == project_id:
                if index == 0:
                    return False
                self.projects.insert(0, self.projects.pop(index))
                return True
        return False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "projects": [p.to_dict() for p in self.projects],
            "deviceConfig": self.device_config.to_dict(),
        }
        if self.selected_project_id:
            data["selectedProjectID"] = self.selected_project_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppData":
        data = _require_mapping(data, "App data")
        projects = data.get("projects") or []
        if not isinstance(projects, list):
            raise ValueError(f"projects must be a list, got {type(projects).__name__}")
        return cls(
            projects=[Project.from_dict(p) for p in projects],
            device_config=DeviceConfig.from_dict(data.get("deviceConfig") or {}),
            selected_project_id=data.get("selectedProjectID"),
        )
