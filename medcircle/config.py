"""
medcircle.config — YAML Configuration Loader
=============================================

**Why this file exists:**
This module reads ``config.yaml`` for community identity and the tuning
values of the moderation and verification rule engines.  Secrets
(``DATABASE_URL``, ``JWT_SECRET``) stay in the environment.

Usage::

    from medcircle.config import load_config

    cfg = load_config()                       # reads ./config.yaml by default
    print(cfg.community_name)                 # "MedCircle"
    print(cfg.moderation.max_offenses)        # 3
    print(cfg.verification.timeout_seconds)   # 10.0
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

DEFAULT_LICENSE_BOARDS: dict[str, str] = {
    "CA": "https://www.mbc.ca.gov/api/license-lookup",
    "NY": "https://www.health.ny.gov/api/professional-lookup",
    "TX": "https://www.tmb.state.tx.us/api/physician-lookup",
}


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ModerationSettings:
    """Escalation tuning.  A user is banned once ``count > max_offenses``."""

    max_offenses: int = 3
    penalty_events: int = 10  # MODERATION_PENALTY entries per offense


@dataclass(frozen=True, slots=True)
class VerificationSettings:
    """Endpoints and limits for the external credential checks."""

    npi_api_url: str = "https://npiregistry.cms.hhs.gov/api/"
    document_endpoint: str = "http://localhost:8000/api/verify-document"
    license_boards: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_LICENSE_BOARDS)
    )
    timeout_seconds: float = 10.0
    require_npi: bool = False


@dataclass(frozen=True, slots=True)
class MedCircleConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    community_name: str
    moderation: ModerationSettings = field(default_factory=ModerationSettings)
    verification: VerificationSettings = field(default_factory=VerificationSettings)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def _moderation_from(raw: dict) -> ModerationSettings:
    max_offenses = int(raw.get("max_offenses", 3))
    penalty_events = int(raw.get("penalty_events", 10))
    if max_offenses < 0 or penalty_events < 0:
        raise ValueError("moderation.max_offenses and penalty_events must be >= 0")
    return ModerationSettings(max_offenses=max_offenses, penalty_events=penalty_events)


def _verification_from(raw: dict) -> VerificationSettings:
    defaults = VerificationSettings()
    boards = raw.get("license_boards")
    return VerificationSettings(
        npi_api_url=raw.get("npi_api_url", defaults.npi_api_url),
        document_endpoint=raw.get("document_endpoint", defaults.document_endpoint),
        license_boards=(
            {str(k).upper(): str(v) for k, v in boards.items()}
            if boards else dict(DEFAULT_LICENSE_BOARDS)
        ),
        timeout_seconds=float(raw.get("timeout_seconds", defaults.timeout_seconds)),
        require_npi=bool(raw.get("require_npi", False)),
    )


def load_config(path: str | Path | None = None) -> MedCircleConfig:
    """Read *path* and return a :class:`MedCircleConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to
        ``$MEDCIRCLE_CONFIG`` or ``config.yaml`` in the working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    if path is None:
        path = os.getenv("MEDCIRCLE_CONFIG", "config.yaml")
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return MedCircleConfig(
        community_name=raw["community_name"],
        moderation=_moderation_from(raw.get("moderation") or {}),
        verification=_verification_from(raw.get("verification") or {}),
    )
