"""
Persistence of the project list and device names as one JSON file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from .config import default_data_file
from .models import AppData

logger = logging.getLogger(__name__)


class DataManager:
    """Loads and saves AppData. The deployment engine never touches this."""

    def __init__(self, data_file: Optional[Path] = None):
        self.data_file = Path(data_file) if data_file else default_data_file()

    def load(self) -> AppData:
        if not self.data_file.exists():
            return AppData()
        try:
            with open(self.data_file, "r", encoding="utf-8") as fh:
                return AppData.from_dict(json.load(fh))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load data from {self.data_file}: {e}")
            return AppData()

    def save(self, app_data: AppData) -> None:
        """Write the data atomically, sorted and pretty-printed."""
        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".data-", suffix=".json", dir=self.data_file.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(app_data.to_dict(), fh, indent=2, sort_keys=True, ensure_ascii=False)
            os.replace(tmp_path, self.data_file)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug(f"Saved {len(app_data.projects)} project(s) to {self.data_file}")
