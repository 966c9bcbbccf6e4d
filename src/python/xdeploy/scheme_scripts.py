"""
Pre-build script extraction from shared Xcode scheme files.

Schemes can declare "Run Script" pre-actions that Xcode executes before a
build (typically build-number bumps). xcodebuild does not run them for us,
so they are pulled out of <project>.xcodeproj/xcshareddata/xcschemes and run
explicitly before the build.

Pre-build scripts are a best-effort enhancement: a missing, unreadable or
malformed scheme file yields no scripts rather than an error.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from lxml import etree

from .models import Project

logger = logging.getLogger(__name__)

SCRIPT_XPATH = "//PreActions//ExecutionAction//ActionContent[@scriptText]"

# Order matters: &amp; must come last so the ampersands it produces are not
# re-read as the start of another entity.
XML_ENTITY_TABLE = (
    ("&#10;", "\n"),
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)


@dataclass
class PreBuildScripts:
    """Scripts from one scheme plus the directory exposed as PROJECT_DIR."""
    project_dir: str
    scripts: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.scripts)

    def __len__(self) -> int:
        return len(self.scripts)


def decode_xml_entities(text: str) -> str:
    """Decode the escapes Xcode leaves in script bodies."""
    for entity, replacement in XML_ENTITY_TABLE:
        text = text.replace(entity, replacement)
    return text


def _safe_fromstring(xml_bytes: bytes):
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    return etree.fromstring(xml_bytes, parser)


def scheme_file_path(project: Project) -> Path:
    return (
        Path(project.expanded_project_path)
        / "xcshareddata"
        / "xcschemes"
        / f"{project.scheme}.xcscheme"
    )


def extract_pre_build_scripts(scheme_path: Path) -> List[str]:
    """Return the pre-build script bodies of a scheme file, in document order."""
    scheme_path = Path(scheme_path)
    if not scheme_path.is_file():
        logger.debug(f"No shared scheme at {scheme_path}; skipping pre-build scripts")
        return []

    try:
        data = scheme_path.read_bytes()
    except OSError as e:
        logger.warning(f"Could not read scheme {scheme_path}: {e}")
        return []

    try:
        root = _safe_fromstring(data)
    except (etree.XMLSyntaxError, ValueError) as e:
        logger.warning(f"Ignoring malformed scheme {scheme_path}: {e}")
        return []

    scripts = [decode_xml_entities(node.get("scriptText")) for node in root.xpath(SCRIPT_XPATH)]
    logger.debug(f"Found {len(scripts)} pre-build script(s) in {scheme_path.name}")
    return scripts


def load_pre_build_scripts(project: Project) -> PreBuildScripts:
    return PreBuildScripts(
        project_dir=project.project_directory,
        scripts=extract_pre_build_scripts(scheme_file_path(project)),
    )
