"""attendance_etl.pipeline_config

YAML run configuration for the attendance pipeline.

Responsibilities:
  - Load and validate config/pipeline.yml
  - Supply defaults for every key, so PipelineConfig() alone is a usable
    configuration for tests and ad hoc runs
  - Hash the YAML content for traceability in the stats document

Usage:
    from pathlib import Path
    from attendance_etl.pipeline_config import load_pipeline_config

    config = load_pipeline_config(Path("config/pipeline.yml"))
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "pipeline.yml"

REQUIRED_YAML_KEYS = frozenset({"version"})

KNOWN_YAML_KEYS = frozenset({
    "version",
    "country_code",
    "groups",
    "referral_cutoff_date",
    "age_threshold",
    "years_considered",
    "complimentary_markers",
    "default_event_name",
    "default_ticket_type",
    "guest_prefix",
})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class PipelineConfigError(ValueError):
    """Raised when a YAML config file fails validation."""


# ---------------------------------------------------------------------------
# PipelineConfig dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineConfig:
    version: str = "default"
    country_code: str = "91"
    groups: tuple[str, ...] = ("YG", "SG", "JG", "HG")
    referral_cutoff_date: date = date(2025, 10, 9)
    age_threshold: int = 40
    years_considered: tuple[int, ...] = (2019, 2020, 2021, 2022, 2023, 2024)
    complimentary_markers: tuple[str, ...] = ("complimentary",)
    default_event_name: str = "Global Youth Festival 2025"
    default_ticket_type: str = "Festival Pass"
    guest_prefix: str = "Guest_"
    yaml_hash: str = ""
    raw_yaml: str = field(repr=False, default="")


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_pipeline_config(yaml_path: Path) -> PipelineConfig:
    """Load, validate, and return a PipelineConfig from a YAML file.

    Raises:
        PipelineConfigError: If any field is missing or invalid.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    data: dict[str, Any] = yaml.safe_load(raw)
    validate_pipeline_config(data)
    defaults = PipelineConfig()
    cutoff = data.get("referral_cutoff_date", defaults.referral_cutoff_date)
    if isinstance(cutoff, str):
        cutoff = date.fromisoformat(cutoff)
    return PipelineConfig(
        version=str(data["version"]),
        country_code=str(data.get("country_code", defaults.country_code)),
        groups=tuple(str(g) for g in data.get("groups", defaults.groups)),
        referral_cutoff_date=cutoff,
        age_threshold=int(data.get("age_threshold", defaults.age_threshold)),
        years_considered=tuple(
            int(y) for y in data.get("years_considered", defaults.years_considered)
        ),
        complimentary_markers=tuple(
            str(m).lower()
            for m in data.get("complimentary_markers", defaults.complimentary_markers)
        ),
        default_event_name=str(data.get("default_event_name", defaults.default_event_name)),
        default_ticket_type=str(data.get("default_ticket_type", defaults.default_ticket_type)),
        guest_prefix=str(data.get("guest_prefix", defaults.guest_prefix)),
        yaml_hash=hashlib.sha256(raw.encode("utf-8")).hexdigest(),
        raw_yaml=raw,
    )


def validate_pipeline_config(data: dict[str, Any]) -> None:
    """Raise PipelineConfigError if data does not match the config schema.

    Validates:
      - root is a mapping with the required keys and no unknown keys
      - country_code is digits
      - groups is a non-empty list of distinct names
      - referral_cutoff_date is an ISO date
      - age_threshold is a positive integer
    """
    if not isinstance(data, dict):
        raise PipelineConfigError("YAML root must be a mapping.")

    missing_keys = REQUIRED_YAML_KEYS - set(data.keys())
    if missing_keys:
        raise PipelineConfigError(f"Missing required YAML keys: {sorted(missing_keys)}")

    unknown_keys = set(data.keys()) - KNOWN_YAML_KEYS
    if unknown_keys:
        raise PipelineConfigError(f"Unknown YAML keys: {sorted(unknown_keys)}")

    if "country_code" in data and not str(data["country_code"]).isdigit():
        raise PipelineConfigError(
            f"country_code must be digits, got {data['country_code']!r}."
        )

    if "groups" in data:
        groups = data["groups"]
        if not isinstance(groups, list) or not groups:
            raise PipelineConfigError("groups must be a non-empty list.")
        if len(set(map(str, groups))) != len(groups):
            raise PipelineConfigError(f"groups must be distinct, got {groups!r}.")

    if "referral_cutoff_date" in data:
        cutoff = data["referral_cutoff_date"]
        if not isinstance(cutoff, date):
            try:
                date.fromisoformat(str(cutoff))
            except ValueError as exc:
                raise PipelineConfigError(
                    f"referral_cutoff_date must be YYYY-MM-DD, got {cutoff!r}."
                ) from exc

    if "age_threshold" in data:
        threshold = data["age_threshold"]
        if not isinstance(threshold, int) or isinstance(threshold, bool) or threshold <= 0:
            raise PipelineConfigError(
                f"age_threshold must be a positive integer, got {threshold!r}."
            )

    for list_key in ("years_considered", "complimentary_markers"):
        if list_key in data and not isinstance(data[list_key], list):
            raise PipelineConfigError(f"{list_key} must be a list.")
