from __future__ import annotations

from pathlib import Path
from typing import Optional


class SitePubError(Exception):
    exit_code = 1


class BuildError(SitePubError):
    exit_code = 1


class MalformedMetadataError(BuildError):
    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


class MalformedMarkupError(BuildError):
    def __init__(self, message: str, path: Optional[Path] = None, line: int = 0):
        self.path = path
        self.line = line
        location = ""
        if path is not None:
            location = f"{path}:{line}: " if line else f"{path}: "
        super().__init__(f"{location}{message}")


class TemplateError(BuildError):
    pass


class PublishError(SitePubError):
    exit_code = 2


class PublishAuthError(PublishError):
    pass


class PublishTransferError(PublishError):
    pass
