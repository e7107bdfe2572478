import pytest

from auth import AdminSessions, AuthError, hash_password, login, verify_password
from conftest import ADMIN_PASSWORDS


def test_login_with_valid_credentials(admin_gateway):
    admin = login(admin_gateway, "superadmin", ADMIN_PASSWORDS["superadmin"])
    assert admin.username == "superadmin"
    assert admin.role == "super"


@pytest.mark.parametrize("username,password", [
    ("superadmin", "wrong"),
    ("nobody", "whatever"),
])
def test_login_rejects_bad_credentials(admin_gateway, username, password):
    with pytest.raises(AuthError, match="Invalid credentials"):
        login(admin_gateway, username, password)


def test_login_rejects_inactive_admin(admin_gateway):
    admin_gateway.update("admins", {"is_active": False}, {"username": "viewer"})
    with pytest.raises(AuthError):
        login(admin_gateway, "viewer", ADMIN_PASSWORDS["viewer"])


def test_login_requires_both_fields(admin_gateway):
    with pytest.raises(AuthError, match="both"):
        login(admin_gateway, "superadmin", "")


def test_verify_password_handles_missing_or_bad_hash():
    assert verify_password("x", None) is False
    assert verify_password("x", "not-a-hash") is False
    assert verify_password("x", hash_password("x")) is True


def test_sessions_open_and_close(admin_gateway):
    sessions = AdminSessions()
    admin = login(admin_gateway, "localadmin", ADMIN_PASSWORDS["localadmin"])

    token = sessions.open(admin)

    assert sessions.get(token) == admin
    assert sessions.close(token) is True
    assert sessions.get(token) is None
    assert sessions.close(token) is False


def test_close_admin_ends_all_of_their_sessions(admin_gateway):
    sessions = AdminSessions()
    local = login(admin_gateway, "localadmin", ADMIN_PASSWORDS["localadmin"])
    viewer = login(admin_gateway, "viewer", ADMIN_PASSWORDS["viewer"])
    first, second = sessions.open(local), sessions.open(local)
    other = sessions.open(viewer)

    assert sessions.close_admin(local.id) == 2

    assert sessions.get(first) is None
    assert sessions.get(second) is None
    assert sessions.get(other) == viewer
