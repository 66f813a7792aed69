"""
Error Taxonomy
==============

Every failure the recognition pipeline can produce derives from
``ScreenFenError``.  Each error carries a short machine-readable code and
the name of the pipeline stage that raised it, so a failed cycle is
attributable without parsing the message.

  BoardNotFound      – no candidate region met density / size / shape limits
  MissingTemplate    – one or more piece assets absent or unreadable
  InvalidPosition    – the encoded FEN failed validation
  MalformedInput     – image missing or too small to hold a board
  ConfigurationError – inconsistent tunables
"""

from __future__ import annotations

from typing import Iterable, List, Optional


class ScreenFenError(Exception):
    """Base class for all pipeline failures."""

    error_code: str = "SCREEN_FEN_ERROR"

    def __init__(self, message: str, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.error_code}] ({self.stage}) {self.message}"
        return f"[{self.error_code}] {self.message}"


class BoardNotFound(ScreenFenError):
    """No region of the image looks like a board.  Retry with a new capture."""

    error_code = "BOARD_NOT_FOUND"


class MissingTemplate(ScreenFenError):
    """Template assets are absent or unreadable.

    ``missing`` lists *every* offending file, not just the first one.
    """

    error_code = "MISSING_TEMPLATE"

    def __init__(
        self,
        style: str,
        missing: Iterable[str],
        stage: Optional[str] = None,
    ) -> None:
        self.style = style
        self.missing: List[str] = sorted(missing)
        super().__init__(
            f"Style '{style}' is missing {len(self.missing)} template(s): "
            + ", ".join(self.missing),
            stage=stage,
        )


class InvalidPosition(ScreenFenError):
    """The encoded position was rejected by the validator."""

    error_code = "INVALID_POSITION"

    def __init__(
        self,
        fen: str,
        violations: Iterable[str],
        stage: Optional[str] = None,
    ) -> None:
        self.fen = fen
        self.violations: List[str] = list(violations)
        super().__init__(
            f"Invalid position '{fen}': " + "; ".join(self.violations),
            stage=stage,
        )


class MalformedInput(ScreenFenError):
    """Image is missing, unreadable or below the minimum usable size."""

    error_code = "MALFORMED_INPUT"


class ConfigurationError(ScreenFenError):
    """A tunable is out of range or unknown."""

    error_code = "CONFIGURATION_ERROR"
