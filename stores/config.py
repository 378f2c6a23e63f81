"""Runtime settings resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

DEFAULT_TRANSLATE_URL = (
    "https://us-central1-calcium-spanner-439414-b5.cloudfunctions.net/translate_text"
)
DEFAULT_TRANSLATE_TIMEOUT_SECONDS = 10.0


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


@dataclass(frozen=True)
class Settings:
    """Locations and service endpoints used by the console, dashboard and reports."""

    data_dir: Path
    audit_log_path: Path
    report_dir: Path
    language: str = "en"
    translate_url: str = DEFAULT_TRANSLATE_URL
    translate_timeout: float = DEFAULT_TRANSLATE_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls, data_dir: Optional[Path | str] = None) -> "Settings":
        """Build settings from ``HMS_*`` environment variables.

        ``data_dir`` takes precedence over ``HMS_DATA_DIR`` when supplied.
        """

        root = _project_root()
        resolved_data_dir = Path(
            data_dir or os.getenv("HMS_DATA_DIR") or root / "data"
        )
        audit_override = os.getenv("HMS_AUDIT_LOG")
        report_override = os.getenv("HMS_REPORT_DIR")

        timeout_raw = os.getenv("HMS_TRANSLATE_TIMEOUT")
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_TRANSLATE_TIMEOUT_SECONDS
        except ValueError as exc:
            raise ValueError(
                f"HMS_TRANSLATE_TIMEOUT must be a number, got {timeout_raw!r}"
            ) from exc

        return cls(
            data_dir=resolved_data_dir,
            audit_log_path=Path(audit_override)
            if audit_override
            else resolved_data_dir / "audit_log.json",
            report_dir=Path(report_override) if report_override else root / "reports" / "output",
            language=(os.getenv("HMS_LANG") or "en").strip().lower(),
            translate_url=os.getenv("HMS_TRANSLATE_URL", DEFAULT_TRANSLATE_URL),
            translate_timeout=timeout,
        )

    def with_language(self, language: str) -> "Settings":
        return replace(self, language=language.strip().lower())
