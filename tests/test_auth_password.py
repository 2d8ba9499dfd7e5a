import pytest

from artisan_market.auth import (
    SIGNED_IN,
    SIGNED_OUT,
    IdentityProvider,
    create_access_token,
    hash_password,
    verify_password,
)
from artisan_market.errors import AuthError, InvalidInput


def test_hash_and_verify():
    hashed = hash_password("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)


def test_verify_credentials(db_session):
    idp = IdentityProvider(db_session)
    created = idp.create_account("Pw@Example.com", "secret123")

    with pytest.raises(AuthError):
        idp.verify_credentials("pw@example.com", "wrong")

    identity = idp.verify_credentials("pw@example.com", "secret123")
    assert identity.id == created.id
    assert identity.email == "pw@example.com"


def test_duplicate_email_rejected(db_session):
    idp = IdentityProvider(db_session)
    idp.create_account("dup@example.com", "secret123")
    with pytest.raises(InvalidInput):
        idp.create_account("DUP@example.com", "secret123")


def test_terminated_session_no_longer_resolves(db_session):
    idp = IdentityProvider(db_session)
    identity = idp.create_account("out@example.com", "secret123")
    assert idp.get_current_session(identity.access_token) == identity

    idp.terminate_session(identity)
    assert idp.get_current_session(identity.access_token) is None


def test_garbage_and_foreign_tokens_do_not_resolve(db_session):
    idp = IdentityProvider(db_session)
    assert idp.get_current_session(None) is None
    assert idp.get_current_session("not-a-jwt") is None
    # well-signed token for a session that was never opened
    assert idp.get_current_session(create_access_token(1, "missing")) is None


def test_listeners_notified_and_unsubscribed(db_session):
    idp = IdentityProvider(db_session)
    events = []
    unsubscribe = idp.subscribe(lambda event, identity: events.append(event))

    identity = idp.create_account("events@example.com", "secret123")
    idp.terminate_session(identity)
    assert events == [SIGNED_IN, SIGNED_OUT]

    unsubscribe()
    idp.verify_credentials("events@example.com", "secret123")
    assert events == [SIGNED_IN, SIGNED_OUT]
    assert idp.listener_count == 0
