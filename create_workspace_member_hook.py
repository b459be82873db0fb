## Upstand FM - Create Workspace Member Hook ##
##
## DESCRIPTION:
##   Auth0 post-change-password hook that provisions a workspace member when a
##   password reset was really an invitation acceptance. Auth0 has no "user
##   invite" API, so invites are sent as password reset mails and the user's
##   app_metadata.isUserInvite flag marks them.
##
##   When the flag is set the hook fetches a client credentials token, creates
##   the member through the Upstand FM API and clears the invite fields of the
##   user's app_metadata. Otherwise it does nothing.
##
## USAGE:
##   The host calls handler(user, context, cb):
##   - user:    {"id": "...", "username": "...", "email": "...", "last_password_reset": "..."}
##   - context: {"webtask": {"secrets": {...}}}
##   - cb:      called with no argument on success, with the error on failure
##
##   create_workspace_member(user, secrets) is the same flow as a plain
##   function returning a HookResult.
##
## REQUIREMENTS:
##   - Python 3.8+
##   - requests library
##
## REQUIRED SECRETS:
##   AUTH0_DOMAIN                          - Auth0 tenant domain
##   ACCOUNT_CLIENT_ID                     - Management API client id
##   ACCOUNT_CLIENT_SECRET                 - Management API client secret
##   CREATE_WORKSPACE_MEMBER_CLIENT_ID     - Client allowed to create workspace members
##   CREATE_WORKSPACE_MEMBER_CLIENT_SECRET - Secret for the client above
##   AUDIENCE                              - Upstand FM API audience
##   TOKEN_ENDPOINT                        - OAuth2 token endpoint URL
##
## OPTIONAL SECRETS:
##   WORKSPACE_API_URL - Upstand FM API base URL (default: "https://api.upstand.fm")
##
## NOTES:
##   - Nothing is retried; any failure aborts the remaining steps
##   - If the member is created but clearing the flag fails, the flag stays
##     set and the next password change creates the member again
##
################################################################################
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import requests

from auth0_management import (
    Auth0ManagementClient,
    ClientCredentialsTokenProvider,
    HookError,
    HttpStatusError,
    TokenProvider,
    management_user_id,
)

logger = logging.getLogger(__name__)

WORKSPACE_API_URL = "https://api.upstand.fm"
PLACEHOLDER_FULL_NAME = "User"

REQUIRED_SECRETS = [
    "AUTH0_DOMAIN",
    "ACCOUNT_CLIENT_ID",
    "ACCOUNT_CLIENT_SECRET",
    "CREATE_WORKSPACE_MEMBER_CLIENT_ID",
    "CREATE_WORKSPACE_MEMBER_CLIENT_SECRET",
    "AUDIENCE",
    "TOKEN_ENDPOINT",
]

# Explicit values for every invite key; Auth0 merges nested metadata objects.
CLEARED_INVITE_METADATA = {"isUserInvite": False, "inviteMsg": ""}


class ConfigurationError(HookError):
    """The secrets bag or the user object is incomplete."""


class MemberCreationError(HttpStatusError):
    """The Upstand FM API did not create the workspace member."""


def configure_logging() -> None:
    """Configure the global logging settings for the hook."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )


@dataclass
class HookSecrets:
    auth0_domain: str
    account_client_id: str
    account_client_secret: str
    create_workspace_member_client_id: str
    create_workspace_member_client_secret: str
    audience: str
    token_endpoint: str
    workspace_api_url: str = WORKSPACE_API_URL

    @classmethod
    def from_mapping(cls, secrets: Mapping[str, Any]) -> "HookSecrets":
        """
        Build the secrets from the host's secrets bag.

        Raises ConfigurationError naming every missing key.
        """
        missing = [name for name in REQUIRED_SECRETS if not secrets.get(name)]
        if missing:
            logger.error("Missing required secret(s): %s", ", ".join(missing))
            raise ConfigurationError(f"Missing required secret(s): {', '.join(missing)}")

        return cls(
            auth0_domain=secrets["AUTH0_DOMAIN"],
            account_client_id=secrets["ACCOUNT_CLIENT_ID"],
            account_client_secret=secrets["ACCOUNT_CLIENT_SECRET"],
            create_workspace_member_client_id=secrets["CREATE_WORKSPACE_MEMBER_CLIENT_ID"],
            create_workspace_member_client_secret=secrets["CREATE_WORKSPACE_MEMBER_CLIENT_SECRET"],
            audience=secrets["AUDIENCE"],
            token_endpoint=secrets["TOKEN_ENDPOINT"],
            workspace_api_url=(secrets.get("WORKSPACE_API_URL") or WORKSPACE_API_URL).rstrip("/"),
        )


@dataclass
class HookUser:
    id: str
    email: Optional[str] = None
    username: Optional[str] = None
    last_password_reset: Optional[str] = None

    @classmethod
    def from_mapping(cls, user: Mapping[str, Any]) -> "HookUser":
        if not user or not user.get("id"):
            raise ConfigurationError("User object is missing an id")
        return cls(
            id=str(user["id"]),
            email=user.get("email"),
            username=user.get("username"),
            last_password_reset=user.get("last_password_reset"),
        )


@dataclass
class HookResult:
    provisioned: bool = False
    member: Optional[Dict[str, Any]] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def fetch_token(secrets: HookSecrets, session: Optional[requests.Session] = None) -> str:
    """
    Get an access token to interact with the Upstand FM API.

    The create-workspace-member client is the only one granted the
    "create:workspace-member" scope.
    """
    provider = ClientCredentialsTokenProvider(
        token_endpoint=secrets.token_endpoint,
        client_id=secrets.create_workspace_member_client_id,
        client_secret=secrets.create_workspace_member_client_secret,
        audience=secrets.audience,
        session=session,
    )
    return provider.get_token()


def create_member(
    token: str,
    workspace_id: Optional[str],
    user_id: str,
    email: Optional[str],
    session: Optional[requests.Session] = None,
    base_url: str = WORKSPACE_API_URL,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Create a workspace member and return the created member."""
    if not workspace_id:
        logger.error("Invite for %s has no workspaceId; cannot create member", user_id)
        raise MemberCreationError("Failed to create workspace member: missing workspaceId")

    url = f"{base_url}/workspaces/{workspace_id}/members"
    headers = {
        "content-type": "application/json",
        "Authorization": f"Bearer {token}",
    }
    payload = {"userId": user_id, "fullName": PLACEHOLDER_FULL_NAME}
    # A missing email is left out of the body rather than sent as null.
    if email is not None:
        payload["email"] = email
    http = session or requests
    resp = http.post(url, headers=headers, json=payload, timeout=timeout)

    if not resp.ok:
        snippet = (resp.text or "")[:300].replace("\n", " ")
        logger.error(
            "Workspace member creation failed for %s in workspace %s (status %s): %s",
            user_id,
            workspace_id,
            resp.status_code,
            snippet,
        )
        raise MemberCreationError("Failed to create workspace member", resp.status_code, snippet)

    logger.info("Created workspace member %s in workspace %s", user_id, workspace_id)
    return resp.json() if resp.content else {}


def create_workspace_member(
    user: HookUser,
    secrets: HookSecrets,
    management_client: Optional[Auth0ManagementClient] = None,
    token_provider: Optional[TokenProvider] = None,
    session: Optional[requests.Session] = None,
) -> HookResult:
    """Run the invite flow for one password change and report the outcome."""
    try:
        if management_client is None:
            management_client = Auth0ManagementClient(
                domain=secrets.auth0_domain,
                client_id=secrets.account_client_id,
                client_secret=secrets.account_client_secret,
                session=session,
            )

        user_id = management_user_id(user.id)
        app_metadata = management_client.get_user(user_id).get("app_metadata") or {}

        # Only password resets that result from an invite are handled.
        if not app_metadata.get("isUserInvite"):
            logger.info("User %s has no pending invite; nothing to do", user_id)
            return HookResult(provisioned=False)

        if token_provider is not None:
            token = token_provider.get_token()
        else:
            token = fetch_token(secrets, session=session)
        logger.info("Acquired workspace API token for %s", user_id)

        member = create_member(
            token,
            app_metadata.get("workspaceId"),
            user_id,
            user.email,
            session=session,
            base_url=secrets.workspace_api_url,
        )

        management_client.replace_app_metadata(user_id, dict(CLEARED_INVITE_METADATA))
        logger.info("Cleared invite flag for %s", user_id)
        return HookResult(provisioned=True, member=member)
    except Exception as exc:
        logger.error("Create workspace member hook failed for user %s: %r", user.id, exc)
        return HookResult(error=exc)


def _webtask_secrets(context: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    webtask = (context or {}).get("webtask") or {}
    return webtask.get("secrets") or {}


def handler(
    user: Mapping[str, Any],
    context: Optional[Mapping[str, Any]],
    cb: Callable[..., Any],
) -> None:
    """Auth0 post-change-password entry point."""
    configure_logging()
    try:
        hook_user = HookUser.from_mapping(user)
        secrets = HookSecrets.from_mapping(_webtask_secrets(context))
        result = create_workspace_member(hook_user, secrets)
    except Exception as exc:
        logger.error("Create workspace member hook rejected its input: %r", exc)
        cb(exc)
        return

    if result.ok:
        cb()
    else:
        cb(result.error)
