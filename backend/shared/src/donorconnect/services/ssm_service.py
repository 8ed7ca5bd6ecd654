"""Stripe credentials from AWS SSM Parameter Store.

Secrets live under /donorconnect/<environment>/stripe/ as SecureString
parameters. Values are cached per process; Lambda containers pick up
rotated secrets on their next cold start.
"""

import logging
from functools import lru_cache
from typing import ClassVar

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import get_settings

logger = logging.getLogger(__name__)


class SSMServiceError(Exception):
    """Raised when a parameter cannot be read."""


def _describe_failure(name: str, error: ClientError) -> str:
    code = error.response.get("Error", {}).get("Code", "Unknown")
    if code == "ParameterNotFound":
        return f"SSM parameter not found: {name}"
    if code in ("AccessDeniedException", "AccessDenied"):
        return f"Access denied to SSM parameter {name}; check ssm:GetParameter on the role"
    return f"Failed to retrieve SSM parameter {name}: {error}"


class SSMService:
    """Reads SecureString parameters with decryption.

    Names may be absolute ("/donorconnect/dev/stripe/secret_key") or relative
    to the environment prefix ("stripe/secret_key").
    """

    _instance: ClassVar["SSMService | None"] = None
    _cache: ClassVar[dict[str, str]] = {}

    def __init__(self, prefix: str | None = None) -> None:
        self.prefix = (prefix or get_settings().ssm_prefix).rstrip("/")
        self._client = boto3.client("ssm")

    @classmethod
    def get_instance(cls) -> "SSMService":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the shared instance and every cached value (tests only)."""
        cls._instance = None
        cls._cache.clear()

    def resolve(self, name: str) -> str:
        return name if name.startswith("/") else f"{self.prefix}/{name}"

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Return the decrypted value of one parameter.

        Raises:
            SSMServiceError: If the parameter is missing or unreadable.
        """
        path = self.resolve(name)
        if use_cache and path in self._cache:
            return self._cache[path]

        logger.info("Fetching SSM parameter %s", path)
        try:
            response = self._client.get_parameter(Name=path, WithDecryption=True)
        except ClientError as e:
            raise SSMServiceError(_describe_failure(path, e)) from e
        except BotoCoreError as e:
            raise SSMServiceError(f"Failed to reach SSM for {path}: {e}") from e

        value: str = response["Parameter"]["Value"]
        self._cache[path] = value
        return value

    def get_parameters(self, *names: str) -> dict[str, str]:
        """Fetch several parameters in one call, keyed by the names given.

        Raises:
            SSMServiceError: If any of them does not exist.
        """
        paths = {name: self.resolve(name) for name in names}
        missing = [p for p in paths.values() if p not in self._cache]
        if missing:
            try:
                response = self._client.get_parameters(Names=missing, WithDecryption=True)
            except ClientError as e:
                raise SSMServiceError(_describe_failure(", ".join(missing), e)) from e
            if response.get("InvalidParameters"):
                raise SSMServiceError(
                    "SSM parameters not found: " + ", ".join(response["InvalidParameters"])
                )
            for parameter in response["Parameters"]:
                self._cache[parameter["Name"]] = parameter["Value"]

        return {name: self._cache[path] for name, path in paths.items()}

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("SSM parameter cache cleared")


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Shared SSMService for the process."""
    return SSMService.get_instance()
