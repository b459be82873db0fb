import pytest

from tests.helpers import AUTH0_DOMAIN, TOKEN_ENDPOINT


@pytest.fixture
def secrets_bag():
    return {
        "AUTH0_DOMAIN": AUTH0_DOMAIN,
        "ACCOUNT_CLIENT_ID": "account-client-id",
        "ACCOUNT_CLIENT_SECRET": "account-client-secret",
        "CREATE_WORKSPACE_MEMBER_CLIENT_ID": "member-client-id",
        "CREATE_WORKSPACE_MEMBER_CLIENT_SECRET": "member-client-secret",
        "AUDIENCE": "https://api.upstand.fm",
        "TOKEN_ENDPOINT": TOKEN_ENDPOINT,
    }


@pytest.fixture
def user_payload():
    return {
        "id": "abc123",
        "username": "jane",
        "email": "jane@example.com",
        "last_password_reset": "2019-08-01T10:00:00.000Z",
    }
