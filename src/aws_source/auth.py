"""AWS authentication strategies and session creation."""

from typing import List, Optional, Tuple
import logging
import time

import boto3
import botocore.session
from botocore.config import Config
from botocore.credentials import CredentialProvider, RefreshableCredentials
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AssumedRoleProvider(CredentialProvider):
    """Hands botocore credentials that were obtained by assuming a role."""

    METHOD = 'sts-assume-role'

    def __init__(self, credentials: RefreshableCredentials):
        super().__init__()
        self.credentials = credentials

    def load(self) -> RefreshableCredentials:
        return self.credentials


STRATEGIES = ["defaults", "access-key", "external-id", "sso-profile"]

# Timeout for working out which account a session belongs to
CALLER_IDENTITY_TIMEOUT = 10


class AwsAuthConfig(BaseModel):
    """How the source authenticates to AWS, and which regions it covers."""

    strategy: str = Field(
        default="defaults",
        description="One of: defaults, access-key, external-id, sso-profile"
    )
    access_key_id: str = Field(default="", description="Access key ID, for the access-key strategy")
    secret_access_key: str = Field(default="", description="Secret access key, for the access-key strategy")
    external_id: str = Field(default="", description="External ID used when assuming the target role")
    target_role_arn: str = Field(default="", description="Role to assume, for the external-id strategy")
    profile: str = Field(default="", description="Local profile name, for the sso-profile strategy")
    auto_config: bool = Field(
        default=False,
        description="Use the local AWS config and environment regardless of strategy"
    )
    regions: List[str] = Field(default_factory=list, description="Regions to discover resources in")

    def _require(self, strategy: str, blank: List[str], required: List[str]):
        for field in required:
            if not getattr(self, field):
                raise ValueError(f"with {strategy} strategy, {_flag(field)} cannot be blank")
        for field in blank:
            if getattr(self, field):
                raise ValueError(f"with {strategy} strategy, {_flag(field)} must be blank")

    def get_session(self, region: str) -> boto3.Session:
        """
        Build a boto3 session for one region using the configured strategy.

        Args:
            region: AWS region the session is for

        Returns:
            boto3 Session

        Raises:
            ValueError: If the region is blank, the strategy is unknown, or the
                fields set don't suit the strategy
        """
        if not region:
            raise ValueError("aws-region cannot be blank")

        if self.auto_config:
            if self.strategy != "defaults":
                logger.warning(
                    f"auto-config is set to true, but aws-access-strategy is {self.strategy} "
                    f"rather than 'defaults'. This may cause unexpected behaviour"
                )
            return boto3.Session(region_name=region)

        if self.strategy == "defaults":
            return boto3.Session(region_name=region)

        if self.strategy == "access-key":
            self._require(
                "access-key",
                blank=["external_id", "target_role_arn", "profile"],
                required=["access_key_id", "secret_access_key"],
            )
            return boto3.Session(
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
                region_name=region,
            )

        if self.strategy == "external-id":
            self._require(
                "external-id",
                blank=["access_key_id", "secret_access_key", "profile"],
                required=["external_id", "target_role_arn"],
            )
            return self._assume_role_session(region)

        if self.strategy == "sso-profile":
            self._require(
                "sso-profile",
                blank=["access_key_id", "secret_access_key", "external_id", "target_role_arn"],
                required=["profile"],
            )
            return boto3.Session(profile_name=self.profile, region_name=region)

        raise ValueError("invalid aws-access-strategy")

    def _assume_role_session(self, region: str) -> boto3.Session:
        """Session whose credentials come from assuming the target role, refreshed before expiry."""
        sts = boto3.Session(region_name=region).client('sts')

        def refresh():
            response = sts.assume_role(
                RoleArn=self.target_role_arn,
                RoleSessionName=f"aws-source-{int(time.time())}",
                ExternalId=self.external_id,
            )
            creds = response['Credentials']
            logger.debug(f"Assumed role {self.target_role_arn}, expires {creds['Expiration']}")
            return {
                'access_key': creds['AccessKeyId'],
                'secret_key': creds['SecretAccessKey'],
                'token': creds['SessionToken'],
                'expiry_time': creds['Expiration'].isoformat(),
            }

        credentials = RefreshableCredentials.create_from_metadata(
            metadata=refresh(),
            refresh_using=refresh,
            method='sts-assume-role',
        )

        bc_session = botocore.session.Session()
        # Checked before environment variables and shared config files
        resolver = bc_session.get_component('credential_provider')
        resolver.providers.insert(0, AssumedRoleProvider(credentials))
        bc_session.set_config_variable('region', region)
        return boto3.Session(botocore_session=bc_session)

    def create_sessions(self) -> List[Tuple[str, boto3.Session]]:
        """
        Build one session per configured region.

        Returns:
            List of (region, session) pairs, in the configured order

        Raises:
            ValueError: If no regions are configured or a session can't be built
        """
        if not self.regions:
            raise ValueError("no regions specified")

        sessions = []
        for region in self.regions:
            region = region.strip()
            try:
                sessions.append((region, self.get_session(region)))
            except ValueError as e:
                raise ValueError(f"error getting AWS config for region {region}: {e}") from e

        return sessions

    def redacted(self) -> dict:
        """Config as a dict with secrets hidden, for logging."""
        data = self.model_dump()
        for field in ("secret_access_key", "external_id"):
            if data[field]:
                data[field] = "REDACTED"
        return data


def _flag(field: str) -> str:
    return "aws-" + field.replace("_", "-")


def get_account_id(session: boto3.Session, config: Optional[Config] = None) -> str:
    """
    Work out which account a session's credentials belong to.

    Raises:
        botocore.exceptions.ClientError: If STS rejects the credentials
    """
    timeouts = Config(
        connect_timeout=CALLER_IDENTITY_TIMEOUT,
        read_timeout=CALLER_IDENTITY_TIMEOUT,
    )
    if config is not None:
        timeouts = config.merge(timeouts)

    sts = session.client('sts', config=timeouts)
    identity = sts.get_caller_identity()
    logger.info(f"Using account {identity['Account']} as {identity.get('Arn', 'unknown')}")
    return identity['Account']
