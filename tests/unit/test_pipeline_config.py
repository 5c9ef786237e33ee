"""Unit tests for attendance_etl.pipeline_config."""

from __future__ import annotations

import hashlib
from datetime import date
from pathlib import Path

import pytest

from attendance_etl.pipeline_config import (
    DEFAULT_CONFIG_PATH,
    PipelineConfig,
    PipelineConfigError,
    load_pipeline_config,
    validate_pipeline_config,
)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "pipeline.yml"
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

class TestLoadPipelineConfig:
    def test_repo_default_file(self):
        config = load_pipeline_config(DEFAULT_CONFIG_PATH)
        assert config.version == "2025.10"
        assert config.groups == ("YG", "SG", "JG", "HG")
        assert config.referral_cutoff_date == date(2025, 10, 9)
        assert config.age_threshold == 40
        assert config.years_considered == (2019, 2020, 2021, 2022, 2023, 2024)

    def test_minimal_file_uses_defaults(self, tmp_path):
        config = load_pipeline_config(_write(tmp_path, "version: test\n"))
        defaults = PipelineConfig()
        assert config.version == "test"
        assert config.country_code == defaults.country_code
        assert config.guest_prefix == "Guest_"

    def test_quoted_cutoff_date(self, tmp_path):
        config = load_pipeline_config(
            _write(tmp_path, "version: '1'\nreferral_cutoff_date: '2025-11-01'\n")
        )
        assert config.referral_cutoff_date == date(2025, 11, 1)

    def test_markers_lowercased(self, tmp_path):
        config = load_pipeline_config(
            _write(tmp_path, "version: '1'\ncomplimentary_markers: [COMP, Free]\n")
        )
        assert config.complimentary_markers == ("comp", "free")

    def test_yaml_hash(self, tmp_path):
        text = "version: '1'\n"
        config = load_pipeline_config(_write(tmp_path, text))
        assert config.yaml_hash == hashlib.sha256(text.encode("utf-8")).hexdigest()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_pipeline_config(tmp_path / "absent.yml")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidatePipelineConfig:
    def test_root_must_be_mapping(self):
        with pytest.raises(PipelineConfigError, match="mapping"):
            validate_pipeline_config(["version"])

    def test_version_required(self):
        with pytest.raises(PipelineConfigError, match="version"):
            validate_pipeline_config({"groups": ["YG"]})

    def test_unknown_key(self):
        with pytest.raises(PipelineConfigError, match="Unknown"):
            validate_pipeline_config({"version": "1", "grups": ["YG"]})

    def test_country_code_digits(self):
        with pytest.raises(PipelineConfigError, match="country_code"):
            validate_pipeline_config({"version": "1", "country_code": "+91"})

    def test_groups_distinct(self):
        with pytest.raises(PipelineConfigError, match="distinct"):
            validate_pipeline_config({"version": "1", "groups": ["YG", "YG"]})

    def test_groups_non_empty(self):
        with pytest.raises(PipelineConfigError, match="non-empty"):
            validate_pipeline_config({"version": "1", "groups": []})

    def test_bad_cutoff(self):
        with pytest.raises(PipelineConfigError, match="referral_cutoff_date"):
            validate_pipeline_config({"version": "1", "referral_cutoff_date": "09-10-2025"})

    def test_age_threshold_positive_int(self):
        for bad in (0, -1, "40", True):
            with pytest.raises(PipelineConfigError, match="age_threshold"):
                validate_pipeline_config({"version": "1", "age_threshold": bad})

    def test_list_keys(self):
        with pytest.raises(PipelineConfigError, match="years_considered"):
            validate_pipeline_config({"version": "1", "years_considered": 2024})

    def test_valid(self):
        validate_pipeline_config({
            "version": "1",
            "country_code": "91",
            "groups": ["YG", "SG"],
            "referral_cutoff_date": date(2025, 10, 9),
            "age_threshold": 40,
        })
