from types import SimpleNamespace

import pytest

from artisan_market.auth import IdentityProvider
from artisan_market.guard import (
    HOME_PATH,
    SIGN_IN_PATH,
    GuardPending,
    GuardRedirect,
    GuardState,
    Outcome,
    enforce,
    evaluate,
)


def ctx(loading=False, user=None, role=None, profile=None):
    if user is not None and profile is None:
        profile = SimpleNamespace(role=role)
    return SimpleNamespace(loading=loading, user=user, role=role, profile=profile)


def test_loading_renders_placeholder():
    decision = evaluate(ctx(loading=True), required_role="artisan")
    assert decision.state is GuardState.LOADING
    assert decision.outcome is Outcome.PLACEHOLDER


def test_no_session_redirects_to_sign_in():
    decision = evaluate(ctx())
    assert decision.state is GuardState.UNAUTHENTICATED
    assert (decision.outcome, decision.location) == (Outcome.REDIRECT, SIGN_IN_PATH)


def test_wrong_role_redirects_home():
    decision = evaluate(ctx(user=object(), role="customer"), required_role="artisan")
    assert decision.state is GuardState.AUTHENTICATED
    assert (decision.outcome, decision.location) == (Outcome.REDIRECT, HOME_PATH)


@pytest.mark.parametrize("required", [None, "artisan"])
def test_matching_session_renders(required):
    decision = evaluate(ctx(user=object(), role="artisan"), required_role=required)
    assert decision.outcome is Outcome.RENDER


def test_enforce_raises():
    with pytest.raises(GuardRedirect) as exc:
        enforce(ctx())
    assert exc.value.location == SIGN_IN_PATH

    with pytest.raises(GuardPending):
        enforce(ctx(loading=True))

    c = ctx(user=object(), role="customer")
    assert enforce(c, "customer") is c


def test_protected_view_redirects_without_session(client):
    r = client.get("/ui/orders", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == SIGN_IN_PATH


def test_customer_redirected_away_from_artisan_view(client, signup):
    headers = signup("customer")
    r = client.get("/ui/my-products", headers=headers, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == HOME_PATH


def test_artisan_sees_artisan_view(client, signup):
    headers = signup("artisan")
    r = client.get("/ui/my-products", headers=headers)
    assert r.status_code == 200
    assert "My Products" in r.text


def test_session_without_profile_goes_to_sign_in():
    orphan = SimpleNamespace(loading=False, user=object(), role=None, profile=None)
    decision = evaluate(orphan)
    assert decision.state is GuardState.AUTHENTICATED
    assert (decision.outcome, decision.location) == (Outcome.REDIRECT, SIGN_IN_PATH)


def test_profile_less_account_redirected_from_orders(client, db_session):
    IdentityProvider(db_session).create_account("noprofile@example.com", "secret123")
    token = client.post("/auth/login", json={"email": "noprofile@example.com", "password": "secret123"}).json()["access_token"]
    headers = {"Authorization": f"Bearer {token}"}

    r = client.get("/ui/orders", headers=headers, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == SIGN_IN_PATH

    r = client.post("/ui/orders/1", data={"status": "accepted"}, headers=headers, follow_redirects=False)
    assert r.status_code == 303
