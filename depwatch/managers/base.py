from abc import ABC, abstractmethod
from typing import Iterable, List, Optional
from depwatch.core.model import DependencyNode

class PackageManager(ABC):
    """Base class inherited by all package manager collaborators."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Friendly ecosystem name (e.g., NPM)."""
        pass

    @property
    @abstractmethod
    def manifest_file(self) -> str:
        """Project descriptor that receives version overrides."""
        pass

    @property
    @abstractmethod
    def lock_files(self) -> List[str]:
        """Every lockfile variant the ecosystem may leave behind."""
        pass

    @property
    def install_dirs(self) -> List[str]:
        return []

    def detect(self, files: List[str]) -> bool:
        """
        Returns True if this manager supports the current directory.
        Default implementation checks for the manifest or any lock file.
        """
        for candidate in [self.manifest_file] + self.lock_files:
            if candidate in files:
                return True
        return False

    @abstractmethod
    def resolve_tree(self, project_dir: str, packages: Iterable[str],
                     timeout: Optional[float] = None) -> DependencyNode:
        pass

    @abstractmethod
    def reinstall(self, project_dir: str) -> None:
        pass
