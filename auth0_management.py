## Upstand FM - Auth0 Management & Client Credentials Helpers ##
##
## DESCRIPTION:
##   Small requests-based helpers used by the Auth0 hooks. Provides a client
##   credentials token provider (optionally caching the token for its lifetime)
##   and a thin Auth0 Management API client for reading a user and replacing
##   the invite fields of its app metadata.
##
## REQUIREMENTS:
##   - Python 3.8+
##   - requests library
##
## NOTES:
##   - Auth0 merges app_metadata objects on PATCH, so callers must send every
##     key they want written with an explicit value (see replace_app_metadata)
##   - Tokens and client secrets are never logged
##
################################################################################
import logging
import time
import urllib.parse
from typing import Any, Dict, Mapping, Optional, Protocol

import requests

logger = logging.getLogger(__name__)

# Refresh cached tokens this many seconds before they actually expire.
TOKEN_EXPIRY_SKEW_SECONDS = 30


class HookError(Exception):
    """Base class for errors raised by the hook helpers."""


class HttpStatusError(HookError):
    """An outbound call answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TokenFetchError(HttpStatusError):
    """The token endpoint refused the client credentials exchange."""


class ManagementApiError(HttpStatusError):
    """The Auth0 Management API rejected a user read or update."""


def _snippet(response: requests.Response) -> str:
    return (response.text or "")[:300].replace("\n", " ")


def management_user_id(raw_id: str) -> str:
    """Return the Management API id for a database-connection user."""
    return f"auth0|{raw_id}"


class TokenProvider(Protocol):
    def get_token(self) -> str:
        ...


class ClientCredentialsTokenProvider:
    """
    Exchange a client id/secret pair for an access token.

    With cache=True the token is reused until shortly before its expires_in
    elapses; otherwise every call to get_token() performs a new exchange.
    """

    def __init__(
        self,
        token_endpoint: str,
        client_id: str,
        client_secret: str,
        audience: str,
        session: Optional[requests.Session] = None,
        cache: bool = False,
        timeout: Optional[float] = None,
    ) -> None:
        self.token_endpoint = token_endpoint
        self.client_id = client_id
        self.client_secret = client_secret
        self.audience = audience
        self.cache = cache
        self.timeout = timeout
        self._session = session or requests.Session()
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def get_token(self) -> str:
        if self.cache and self._token and self._expires_at - time.time() > TOKEN_EXPIRY_SKEW_SECONDS:
            return self._token

        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "audience": self.audience,
            "grant_type": "client_credentials",
        }
        logger.info("Requesting client credentials token for audience %s", self.audience)
        response = self._session.post(
            self.token_endpoint,
            json=payload,
            headers={"content-type": "application/json"},
            timeout=self.timeout,
        )

        if not response.ok:
            logger.error(
                "Token endpoint returned status %s: %s",
                response.status_code,
                _snippet(response),
            )
            raise TokenFetchError("Failed to fetch token", response.status_code, _snippet(response))

        data = response.json()
        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            logger.error("Token endpoint response did not contain an access_token")
            raise TokenFetchError("Failed to fetch token", response.status_code)

        if self.cache:
            self._token = access_token
            self._expires_at = time.time() + float(data.get("expires_in") or 0)
        return access_token


class Auth0ManagementClient:
    """Thin wrapper around the Auth0 Management API v2 users endpoints."""

    def __init__(
        self,
        domain: str,
        client_id: str,
        client_secret: str,
        session: Optional[requests.Session] = None,
        token_provider: Optional[TokenProvider] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.domain = domain.strip().rstrip("/")
        if "://" in self.domain:
            self.domain = urllib.parse.urlparse(self.domain).netloc
        self.timeout = timeout
        self._session = session or requests.Session()
        self._base_url = f"https://{self.domain}/api/v2/"
        # Mirrors the management SDK, which keeps its token for expires_in.
        self._token_provider = token_provider or ClientCredentialsTokenProvider(
            token_endpoint=f"https://{self.domain}/oauth/token",
            client_id=client_id,
            client_secret=client_secret,
            audience=self._base_url,
            session=self._session,
            cache=True,
            timeout=timeout,
        )

    def get_user(self, user_id: str) -> Dict[str, Any]:
        """Fetch a user record by its Management API id (e.g. "auth0|abc123")."""
        logger.info("Fetching Auth0 user %s", user_id)
        response = self._request("GET", user_id)
        return response.json()

    def replace_app_metadata(self, user_id: str, metadata: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Write the given app_metadata keys with explicit values.

        Every key in metadata is sent literally. Keys cannot be removed this
        way; set them to an empty value instead.
        """
        logger.info("Replacing app_metadata keys %s for Auth0 user %s", sorted(metadata), user_id)
        response = self._request("PATCH", user_id, json={"app_metadata": dict(metadata)})
        return response.json() if response.content else {}

    def _request(self, method: str, user_id: str, json: Optional[Dict[str, Any]] = None) -> requests.Response:
        url = f"{self._base_url}users/{urllib.parse.quote(user_id, safe='')}"
        headers = {
            "Authorization": f"Bearer {self._token_provider.get_token()}",
            "Content-Type": "application/json",
        }
        response = self._session.request(method, url, headers=headers, json=json, timeout=self.timeout)
        if not response.ok:
            logger.error(
                "Auth0 Management API %s %s failed (status %s): %s",
                method,
                user_id,
                response.status_code,
                _snippet(response),
            )
            raise ManagementApiError(
                f"Auth0 Management API {method} failed for {user_id}",
                response.status_code,
                _snippet(response),
            )
        return response
