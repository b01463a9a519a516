from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class TranscriptionError(Exception):
    """
    Typed pipeline error carrying a stable machine-readable code.
    `fatal` errors fail the job; the rest degrade into result warnings.
    """

    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    fatal: bool = False

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def as_warning(self) -> str:
        return f"{self.code}: {self.message}"


class DownloadFailure(TranscriptionError):
    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(code="download_failure", message=message, details=details, fatal=True)


class PreprocessingDegraded(TranscriptionError):
    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(code="preprocessing_degraded", message=message, details=details)


class PassFailure(TranscriptionError):
    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(code="pass_failure", message=message, details=details)


class EnhancementFailure(TranscriptionError):
    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(code="enhancement_failure", message=message, details=details)


class PersistenceFailure(TranscriptionError):
    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(code="persistence_failure", message=message, details=details)


class FallbackExhausted(TranscriptionError):
    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(code="fallback_exhausted", message=message, details=details, fatal=True)
