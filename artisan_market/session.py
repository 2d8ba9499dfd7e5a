"""Per-request auth context: current identity, its profile, and the sign-up/in/out operations.

Lifecycle::

    ctx = AuthContext(IdentityProvider(db), db)
    ctx.start(token)      # resolve existing session, subscribe to changes
    ...
    ctx.close()           # unsubscribe
"""
import logging
from typing import Callable, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .auth import SIGNED_IN, SIGNED_OUT, Identity, IdentityProvider
from .errors import InvalidInput, MarketError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def validate_password(password: str, confirm_password: str) -> None:
    if password != confirm_password:
        raise InvalidInput("Passwords do not match")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


class AuthContext:
    def __init__(self, identity: IdentityProvider, db: Session):
        self.identity = identity
        self.db = db
        self.user: Optional[Identity] = None
        self.profile: Optional[models.User] = None
        self.loading = True
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ----- lifecycle -----

    def start(self, token: Optional[str] = None) -> "AuthContext":
        if self._unsubscribe is None:
            self._unsubscribe = self.identity.subscribe(self._on_auth_change)
        try:
            self.user = self.identity.get_current_session(token)
            self.refresh_profile()
        finally:
            self.loading = False
        return self

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _on_auth_change(self, event: str, identity: Optional[Identity]):
        if event == SIGNED_IN:
            self.user = identity
        elif event == SIGNED_OUT:
            self.user = None
        self.refresh_profile()

    def refresh_profile(self) -> Optional[models.User]:
        if self.user is None:
            self.profile = None
        else:
            self.profile = crud.get_profile(self.db, self.user.id)
            if self.profile is not None:
                self.db.refresh(self.profile)
        return self.profile

    # ----- state -----

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def role(self) -> Optional[str]:
        return self.profile.role if self.profile is not None else None

    @property
    def token(self) -> Optional[str]:
        return self.user.access_token if self.user is not None else None

    # ----- operations -----

    def sign_up(self, email: str, password: str, confirm_password: str, **profile_fields) -> models.User:
        validate_password(password, confirm_password)
        try:
            data = schemas.SignupRequest(
                email=email, password=password, confirm_password=confirm_password, **profile_fields
            )
        except ValidationError as e:
            raise InvalidInput(_first_error(e)) from e

        identity = self.identity.create_account(data.email, data.password)
        try:
            crud.create_profile(self.db, identity.id, data)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("profile for account %s could not be saved: %s", identity.id, e)
            raise MarketError("account created but the profile could not be saved") from e
        self.user = identity
        return self.refresh_profile()

    def sign_in(self, email: str, password: str) -> Identity:
        return self.identity.verify_credentials(email, password)

    def sign_out(self) -> None:
        self.identity.terminate_session(self.user)


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    field = ".".join(str(p) for p in err.get("loc", ()))
    return f"{field}: {err.get('msg')}" if field else err.get("msg", "invalid input")
