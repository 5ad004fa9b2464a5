from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest
import yaml
from jsonschema.exceptions import ValidationError

from staffplan_import.config.loader import SCHEMA_PATH

"""Config schema contract test."""

SAMPLE_CONFIG = Path(__file__).resolve().parents[2] / "config" / "import.yml"


@pytest.fixture(scope="module")
def schema() -> dict:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def test_sample_config_is_valid(schema):
    config = yaml.safe_load(SAMPLE_CONFIG.read_text(encoding="utf-8"))
    jsonschema.validate(config, schema)


def test_minimal_config_is_valid(schema):
    jsonschema.validate({}, schema)
    jsonschema.validate({"database": {"dsn": "postgresql://localhost/staffplan"}}, schema)


@pytest.mark.parametrize(
    "config",
    [
        {"unknown": 1},
        {"database": {"hostname": "x"}},
        {"database": {"port": "5432"}},
        {"parameter_ceiling": 0},
        {"parameter_ceiling": 70000},
        {"long_term_threshold_days": -1},
        {"long_term_threshold_days": "60"},
    ],
)
def test_invalid_configs_are_rejected(schema, config):
    with pytest.raises(ValidationError):
        jsonschema.validate(config, schema)
