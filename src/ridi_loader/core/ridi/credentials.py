"""
RIDI device credential validation.
"""

import logging

import requests

from ... import get_version
from ...utils.errors import CredentialValidationError

logger = logging.getLogger(__name__)

DEVICES_API_URL = "https://account.ridibooks.com/api/user-devices/app"
DEVICE_ID_LENGTH = 36
DEFAULT_TIMEOUT = 10


class CredentialValidator:
    """Checks a device id / user index pair against the RIDI account API."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, user_agent: str | None = None):
        self.timeout = timeout
        self.user_agent = user_agent or f"ridi-loader/{get_version()}"

    def validate(self, device_id: str, user_idx: str) -> None:
        """
        Validate credentials with RIDI.

        Args:
            device_id: RIDI device id (UUID, 36 characters)
            user_idx: RIDI user index

        Raises:
            CredentialValidationError: Malformed or rejected credentials
        """
        if len(device_id) != DEVICE_ID_LENGTH:
            raise CredentialValidationError(
                f"Invalid device ID format (expected {DEVICE_ID_LENGTH} characters)"
            )
        if not user_idx:
            raise CredentialValidationError("User index cannot be empty")

        try:
            response = requests.get(
                DEVICES_API_URL,
                headers={
                    "X-Device-Id": device_id,
                    "X-User-Idx": user_idx,
                    "User-Agent": self.user_agent,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise CredentialValidationError(f"Failed to connect to RIDI API: {e}")

        if not response.ok:
            raise CredentialValidationError(
                f"Invalid credentials: HTTP {response.status_code} - Check your device_id and user_idx"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CredentialValidationError(f"Failed to parse RIDI API response: {e}")

        result = data.get("result") if isinstance(data, dict) else None
        if not isinstance(result, list) or not result:
            raise CredentialValidationError("No valid devices found for these credentials")

        logger.debug("RIDI reported %d registered device(s)", len(result))
