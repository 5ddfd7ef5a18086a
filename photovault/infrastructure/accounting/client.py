"""
Client for the signed statistics endpoint.

The endpoint sits behind IAM auth, so every request is signed with AWS
Signature Version 4 using the session's temporary credentials. The
gateway verifies the signature and passes the caller's identity on to the
accounting service; the prefix in the body is only a claim.
"""

import json
import logging
from typing import Any, Optional

import requests
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials as BotoCredentials

from ...core.media.errors import (
    ForbiddenError,
    InvalidArgumentError,
    NotAuthenticatedError,
    UnavailableError,
)
from ...core.media.models import Session, StorageStats

logger = logging.getLogger(__name__)

SIGNING_SERVICE = "lambda"
DEFAULT_TIMEOUT_SECONDS = 30


class SignedStatsClient:
    """Fetches StorageStats for the signed-in session."""

    def __init__(
        self,
        endpoint_url: str,
        region: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http: Optional[requests.Session] = None,
    ) -> None:
        if not endpoint_url:
            raise ValueError("endpoint_url is required")
        self._url = endpoint_url
        self._region = region
        self._timeout = timeout
        self._http = http or requests.Session()

    def fetch_stats(self, session: Session) -> StorageStats:
        """
        Ask the endpoint for the session's statistics.

        Raises:
            NotAuthenticatedError: no credentials, or the endpoint returned 401
            ForbiddenError: the endpoint returned 403
            InvalidArgumentError: the endpoint returned 400
            UnavailableError: network failure or any other response
        """
        if session.credentials is None:
            raise NotAuthenticatedError("Session has no credentials to sign with")

        body = json.dumps({"prefix": session.prefix})
        headers = self._sign(session, body)

        logger.info("Requesting storage statistics", extra={"prefix": session.prefix})
        try:
            response = self._http.post(
                self._url,
                data=body,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.exceptions.Timeout as e:
            raise UnavailableError("Statistics request timed out") from e
        except requests.exceptions.RequestException as e:
            logger.error("Statistics request failed", extra={"error": str(e)})
            raise UnavailableError(f"Statistics request failed: {e}") from e

        if response.status_code == 200:
            return self._parse_stats(response)

        message = self._error_message(response)
        logger.warning(
            "Statistics endpoint returned an error",
            extra={"status_code": response.status_code, "error": message}
        )
        if response.status_code == 400:
            raise InvalidArgumentError(message)
        if response.status_code == 401:
            raise NotAuthenticatedError(message)
        if response.status_code == 403:
            raise ForbiddenError(message)
        raise UnavailableError(f"HTTP {response.status_code}: {message}")

    def _sign(self, session: Session, body: str) -> dict[str, str]:
        creds = session.credentials
        request = AWSRequest(
            method="POST",
            url=self._url,
            data=body,
            headers={"Content-Type": "application/json"},
        )
        SigV4Auth(
            BotoCredentials(creds.access_key_id, creds.secret_access_key, creds.session_token),
            SIGNING_SERVICE,
            self._region,
        ).add_auth(request)
        return dict(request.headers.items())

    @staticmethod
    def _parse_stats(response: requests.Response) -> StorageStats:
        try:
            data: dict[str, Any] = response.json()
            return StorageStats(
                object_count=int(data["objectCount"]),
                total_size_bytes=int(data["totalSize"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise UnavailableError(f"Malformed statistics response: {e}") from e

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(data, dict):
            return str(data.get("message") or data.get("error") or data)
        return str(data)
