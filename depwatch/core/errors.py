from typing import Optional


class DepwatchError(Exception):
    """Base class for every fatal condition reported to the operator."""


class ConfigError(DepwatchError):
    pass


class ResolutionError(DepwatchError):
    """The package manager produced no parseable dependency tree."""


class ManifestError(DepwatchError):
    pass


class MissingManifestError(ManifestError):
    pass


class ReinstallError(DepwatchError):
    def __init__(self, message: str, returncode: Optional[int] = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class ScanToolError(DepwatchError):
    def __init__(self, tool: str, returncode: int) -> None:
        super().__init__(f"{tool} exited with code {returncode}")
        self.tool = tool
        self.returncode = returncode
