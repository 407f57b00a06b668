"""Tests for config loading and validation."""

import pytest

from aws_source.config import DEFAULT_CONFIG_PATH, ConfigLoader, Settings, load_config, validate_config
from aws_source.config.loader import normalise_keys, split_lists


def write_config(tmp_path, text):
    path = tmp_path / "source.yaml"
    path.write_text(text)
    return path


def test_defaults_when_nothing_is_set(tmp_path):
    config = load_config(tmp_path / "missing.yaml", environ={})

    assert config["log"] == "info"
    assert config["nats_servers"] == ["nats://localhost:4222", "nats://nats:4222"]
    assert config["max_parallel"] == 2000
    assert config["aws_access_strategy"] == "defaults"
    assert config["aws_regions"] == []


def test_file_keys_may_use_dashes(tmp_path):
    path = write_config(tmp_path, """
aws-regions:
  - eu-west-2
  - us-east-1
max-parallel: 50
nats_name_prefix: prod
""")

    config = load_config(path, environ={})

    assert config["aws_regions"] == ["eu-west-2", "us-east-1"]
    assert config["max_parallel"] == 50
    assert config["nats_name_prefix"] == "prod"


def test_precedence(tmp_path):
    path = write_config(tmp_path, "log: warn\naws-regions: eu-west-1\nmax-parallel: 10\n")
    environ = {"LOG": "debug", "AWS_REGIONS": "eu-west-2, us-east-1"}

    config = load_config(path, environ=environ, log="error", max_parallel=None)

    # Flag beats env beats file
    assert config["log"] == "error"
    assert config["aws_regions"] == ["eu-west-2", "us-east-1"]
    assert config["max_parallel"] == 10


def test_empty_env_values_are_ignored(tmp_path):
    config = load_config(tmp_path / "missing.yaml", environ={"LOG": "", "SENTRY_DSN": ""})

    assert config["log"] == "info"
    assert config["sentry_dsn"] == ""


def test_unknown_env_values_are_ignored():
    loader = ConfigLoader()

    assert loader.load_from_env({"HOME": "/root", "AWS_PROFILE": "dev"}) == {"aws_profile": "dev"}


def test_load_from_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigLoader().load_from_file(tmp_path / "missing.yaml")


def test_load_from_empty_file(tmp_path):
    assert ConfigLoader().load_from_file(write_config(tmp_path, "")) == {}


def test_loader_keeps_no_state(tmp_path):
    loader = ConfigLoader()

    assert loader.load_from_file(write_config(tmp_path, "")) == {}
    assert vars(loader) == {}


def test_merge_configs_deep_merges_dicts():
    merged = ConfigLoader().merge_configs(
        {"a": {"x": 1, "y": 2}, "b": 1},
        {"a": {"y": 3}},
        {},
    )

    assert merged == {"a": {"x": 1, "y": 3}, "b": 1}


def test_normalise_keys():
    assert normalise_keys({"aws-target-role-arn": "x", "log": "info"}) == {
        "aws_target_role_arn": "x",
        "log": "info",
    }


def test_split_lists():
    config = split_lists({
        "nats_servers": "nats://a:4222,nats://b:4222",
        "aws_regions": ["eu-west-2"],
        "log": "info,debug",
    })

    assert config["nats_servers"] == ["nats://a:4222", "nats://b:4222"]
    assert config["aws_regions"] == ["eu-west-2"]
    assert config["log"] == "info,debug"


def test_default_path_constant():
    assert DEFAULT_CONFIG_PATH.endswith("source.yaml")


def test_validate_config():
    settings = validate_config({
        "aws_regions": ["eu-west-2"],
        "max_parallel": "20",
        "auto_config": "true",
    })

    assert isinstance(settings, Settings)
    assert settings.max_parallel == 20
    assert settings.auto_config is True
    assert settings.health_check_port == 8080


@pytest.mark.parametrize("config,field", [
    ({"max_parallel": 0}, "max_parallel"),
    ({"health_check_port": 70000}, "health_check_port"),
    ({"run_mode": "staging"}, "run_mode"),
    ({"aws_access_strategy": "magic"}, "aws_access_strategy"),
    ({"max_parallel": "lots"}, "max_parallel"),
])
def test_validate_config_errors(config, field):
    with pytest.raises(ValueError) as excinfo:
        validate_config(config)

    message = str(excinfo.value)
    assert message.startswith("Configuration validation failed:")
    assert field in message


def test_auth_config_from_settings():
    settings = Settings(
        aws_access_strategy="sso-profile",
        aws_profile="dev",
        aws_regions=["eu-west-2"],
    )

    auth = settings.auth_config()

    assert auth.strategy == "sso-profile"
    assert auth.profile == "dev"
    assert auth.regions == ["eu-west-2"]


def test_redacted_hides_secrets():
    settings = Settings(aws_secret_access_key="s3cret", sentry_dsn="https://key@sentry.io/1", aws_access_key_id="AKIA")

    data = settings.redacted()

    assert data["aws_secret_access_key"] == "REDACTED"
    assert data["sentry_dsn"] == "REDACTED"
    assert data["honeycomb_api_key"] == ""
    assert data["aws_access_key_id"] == "AKIA"
