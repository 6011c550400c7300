"""SSM Parameter Store access for gateway and provider secrets.

Secrets are stored as SecureString parameters under
``/booking/{environment}/...``:

- ``stripe/secret_key`` and ``stripe/webhook_secret``
- ``smtp/password``
- ``twilio/auth_token``
"""

import logging
from functools import lru_cache

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class SSMServiceError(Exception):
    """Raised when SSM parameter retrieval fails."""


class SSMService:
    """Cached reader for SSM SecureString parameters.

    Usage:
        ssm = get_ssm_service()
        key = ssm.get_parameter(settings.ssm_path("stripe/secret_key"))
    """

    def __init__(self) -> None:
        self._client = boto3.client("ssm")
        self._cache: dict[str, str] = {}

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Retrieve a decrypted parameter value.

        Args:
            name: Full parameter path (e.g., "/booking/dev/stripe/secret_key")
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

        value: str = response["Parameter"]["Value"]
        self._cache[name] = value
        return value

    def get_optional_parameter(self, name: str) -> str | None:
        """Like get_parameter, but a missing or unreadable parameter yields None.

        Used for optional provider credentials, where absence only means the
        provider is not configured.
        """
        try:
            return self.get_parameter(name)
        except SSMServiceError as e:
            logger.info("Optional SSM parameter unavailable: %s (%s)", name, e)
            return None


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance.

    Returns:
        SSMService: Shared service instance.
    """
    return SSMService()
