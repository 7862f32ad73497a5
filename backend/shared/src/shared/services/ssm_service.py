"""SSM Parameter Store access for gateway secrets.

Provides cached access to AWS SSM Parameter Store SecureString parameters.
Secrets live under /stars/{environment}/..., e.g.
/stars/prod/fragment/api_key.
"""

import logging
from functools import lru_cache
from typing import ClassVar

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

PARAMETER_PREFIX = "/stars"


class SSMServiceError(Exception):
    """Raised when SSM parameter retrieval fails."""

    pass


def parameter_path(environment: str, name: str) -> str:
    """Build the full SSM path for a gateway secret.

    Args:
        environment: Deployment environment (dev, prod)
        name: Relative name, e.g. "kassa/api_key"

    Returns:
        Parameter path like "/stars/dev/kassa/api_key"
    """
    return f"{PARAMETER_PREFIX}/{environment}/{name.strip('/')}"


class SSMService:
    """Retrieves secrets from AWS SSM Parameter Store.

    Values are decrypted and cached in-process, so each parameter costs at
    most one API call per process.

    Usage:
        ssm = SSMService()
        api_key = ssm.get_parameter("/stars/dev/fragment/api_key")
    """

    _instance: ClassVar["SSMService | None"] = None
    _cache: ClassVar[dict[str, str]] = {}

    def __init__(self, region_name: str | None = None) -> None:
        self._client = boto3.client("ssm", region_name=region_name)

    @classmethod
    def get_instance(cls) -> "SSMService":
        """Get singleton instance of SSMService."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Retrieve a parameter value from SSM Parameter Store.

        Args:
            name: Full parameter path (e.g., "/stars/dev/kassa/api_key")
            use_cache: Whether to use cached value if available (default: True)

        Returns:
            The decrypted parameter value.

        Raises:
            SSMServiceError: If parameter cannot be retrieved.
        """
        if use_cache and name in self._cache:
            logger.debug("SSM cache hit for %s", name)
            return self._cache[name]

        try:
            logger.info("Fetching SSM parameter: %s", name)
            response = self._client.get_parameter(Name=name, WithDecryption=True)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code == "ParameterNotFound":
                raise SSMServiceError(f"SSM parameter not found: {name}") from e
            if error_code == "AccessDeniedException":
                raise SSMServiceError(
                    f"Access denied to SSM parameter: {name}. "
                    "Check IAM permissions for ssm:GetParameter."
                ) from e
            raise SSMServiceError(f"Failed to retrieve SSM parameter {name}: {e}") from e
        except BotoCoreError as e:
            # No credentials, no region, endpoint unreachable
            raise SSMServiceError(f"SSM unavailable for {name}: {e}") from e

        value = response["Parameter"]["Value"]
        self._cache[name] = value
        return value

    def get_optional_parameter(self, name: str) -> str | None:
        """Like get_parameter, but returns None when the parameter is absent."""
        try:
            return self.get_parameter(name)
        except SSMServiceError as e:
            logger.debug("Optional SSM parameter unavailable: %s", e)
            return None

    def clear_cache(self) -> None:
        """Clear all cached parameters."""
        self._cache.clear()
        logger.info("SSM parameter cache cleared")


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance."""
    return SSMService.get_instance()
