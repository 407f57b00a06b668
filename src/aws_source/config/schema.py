"""Configuration schema validation."""

from typing import Any, Dict, List
import logging

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..auth import STRATEGIES, AwsAuthConfig

logger = logging.getLogger(__name__)

RUN_MODES = ["release", "debug", "test"]

# Settings that are never logged in full
SECRET_KEYS = ["aws_secret_access_key", "aws_external_id", "honeycomb_api_key", "sentry_dsn"]


class Settings(BaseModel):
    """Effective settings for the source, after merging file, env and flags."""

    log: str = Field(default="info", description="Log level")
    nats_servers: List[str] = Field(
        default_factory=lambda: ["nats://localhost:4222", "nats://nats:4222"],
        description="NATS servers to connect to"
    )
    nats_name_prefix: str = Field(default="", description="Prefix for the NATS connection name")
    nats_creds_file: str = Field(default="", description="NATS user credentials file")
    nats_nkey_seed_file: str = Field(default="", description="NATS NKey seed file")
    nats_tls_cert: str = Field(default="", description="Client certificate for NATS TLS")
    nats_tls_key: str = Field(default="", description="Client key for NATS TLS")
    nats_tls_ca: str = Field(default="", description="CA bundle for NATS TLS")
    max_parallel: int = Field(default=2000, description="Max number of queries to run in parallel")
    health_check_port: int = Field(default=8080, description="Port for the /healthz endpoint")
    honeycomb_api_key: str = Field(default="", description="Send traces to Honeycomb with this key")
    sentry_dsn: str = Field(default="", description="Report errors to this Sentry DSN")
    run_mode: str = Field(default="release", description="release, debug or test")
    aws_access_strategy: str = Field(default="defaults", description="How to authenticate to AWS")
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_external_id: str = ""
    aws_target_role_arn: str = ""
    aws_profile: str = ""
    aws_regions: List[str] = Field(default_factory=list, description="Regions to discover resources in")
    auto_config: bool = Field(default=False, description="Use the local AWS config")

    @field_validator("max_parallel")
    @classmethod
    def _check_max_parallel(cls, value: int) -> int:
        if value < 1:
            raise ValueError(f"must be at least 1, got {value}")
        return value

    @field_validator("health_check_port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError(f"must be between 1 and 65535, got {value}")
        return value

    @field_validator("run_mode")
    @classmethod
    def _check_run_mode(cls, value: str) -> str:
        if value not in RUN_MODES:
            raise ValueError(f"must be one of: {RUN_MODES}")
        return value

    @field_validator("aws_access_strategy")
    @classmethod
    def _check_strategy(cls, value: str) -> str:
        if value not in STRATEGIES:
            raise ValueError(f"must be one of: {STRATEGIES}")
        return value

    def auth_config(self) -> AwsAuthConfig:
        return AwsAuthConfig(
            strategy=self.aws_access_strategy,
            access_key_id=self.aws_access_key_id,
            secret_access_key=self.aws_secret_access_key,
            external_id=self.aws_external_id,
            target_role_arn=self.aws_target_role_arn,
            profile=self.aws_profile,
            auto_config=self.auto_config,
            regions=self.aws_regions,
        )

    def redacted(self) -> Dict[str, Any]:
        """Settings as a dict, with secrets replaced so they can be logged."""
        data = self.model_dump()
        for key in SECRET_KEYS:
            if data.get(key):
                data[key] = "REDACTED"
        return data


def validate_config(config: Dict[str, Any]) -> Settings:
    """Validate a merged configuration dictionary.

    Args:
        config: Configuration dictionary to validate

    Returns:
        Validated Settings

    Raises:
        ValueError: If configuration is invalid
    """
    try:
        settings = Settings(**config)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        error_msg = "Configuration validation failed:\n" + "\n".join(errors)
        logger.error(error_msg)
        raise ValueError(error_msg) from e

    logger.debug("Configuration validation passed")
    return settings
