import os
from typing import Optional

from .base import PackageManager
from .javascript import NodeManager

MANAGERS = [
    NodeManager(),
]


def detect_manager(project_dir: str = ".") -> Optional[PackageManager]:
    """Checks files in the project directory and returns the correct manager."""
    files = os.listdir(project_dir)

    for manager in MANAGERS:
        if manager.detect(files):
            return manager

    return None
