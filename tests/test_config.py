import json

import pytest

from integrity_engine.config import ConfigurationError, ConfigurationService, ProctoringConfig
from shared_utils.validation import (
    sanitize_filename, validate_json_payload, validate_proctoring_configuration, validate_session_id
)


def write_config(tmp_path, data):
    (tmp_path / "default.json").write_text(json.dumps(data))


def test_defaults_without_file(tmp_path):
    config = ConfigurationService(config_dir=str(tmp_path), environ={}).load_configuration()

    assert config == ProctoringConfig()
    assert config.camera_width == 1280
    assert config.debounce_window_seconds == 1.0
    assert config.screening.high_match_threshold == 85


def test_file_values_and_screening_merge(tmp_path):
    write_config(tmp_path, {"camera_index": 2, "max_violations": 5,
                            "screening": {"potential_threshold": 60}})

    config = ConfigurationService(config_dir=str(tmp_path), environ={}).load_configuration()

    assert config.camera_index == 2
    assert config.max_violations == 5
    assert config.screening.potential_threshold == 60
    assert config.screening.high_match_threshold == 85


def test_environment_overrides_file(tmp_path):
    write_config(tmp_path, {"confidence_threshold": 0.4})
    environ = {
        "PROCTORING_CONFIDENCE_THRESHOLD": "0.7",
        "PROCTORING_SESSIONS_DIR": "/var/sessions",
        "PROCTORING_SCREENING_HIGH_MATCH": "90",
    }

    config = ConfigurationService(config_dir=str(tmp_path), environ=environ).load_configuration()

    assert config.confidence_threshold == 0.7
    assert config.sessions_dir == "/var/sessions"
    assert config.screening.high_match_threshold == 90


def test_invalid_environment_value_is_ignored(tmp_path):
    environ = {"PROCTORING_CAMERA_INDEX": "front"}

    config = ConfigurationService(config_dir=str(tmp_path), environ=environ).load_configuration()

    assert config.camera_index == 0


def test_invalid_json_raises(tmp_path):
    (tmp_path / "default.json").write_text("{not json")

    with pytest.raises(ConfigurationError):
        ConfigurationService(config_dir=str(tmp_path), environ={}).load_configuration()


@pytest.mark.parametrize("data", [
    {"confidence_threshold": 1.5},
    {"tick_interval_seconds": 0},
    {"screen_check_interval_seconds": -1},
    {"model_path": ""},
    {"screening": {"potential_threshold": 90, "high_match_threshold": 80}},
])
def test_invalid_values_raise(tmp_path, data):
    write_config(tmp_path, data)

    with pytest.raises(ConfigurationError):
        ConfigurationService(config_dir=str(tmp_path), environ={}).load_configuration()


def test_round_trip_through_dict():
    config = ProctoringConfig(camera_index=1, model_path="yolov8s.pt")
    assert ProctoringConfig.from_dict(config.to_dict()) == config


def test_validation_reports_every_problem():
    is_valid, errors = validate_proctoring_configuration({"camera_width": -1, "max_violations": "3"})

    assert not is_valid
    assert len(errors) == 2


def test_session_id_validation():
    assert validate_session_id("123e4567-e89b-12d3-a456-426614174000")
    assert not validate_session_id("../etc/passwd")
    assert not validate_session_id(None)


def test_payload_and_filename_helpers():
    assert validate_json_payload({"a": 1}, ["a", "b"]) == (False, ["Missing required field: b"])
    assert validate_json_payload([], ["a"])[0] is False
    assert sanitize_filename('cv:"final".pdf') == 'cv__final_.pdf'
