"""Identity collaborator: accounts, password hashing, session tokens.

Tokens are HS256 JWTs whose ``sid`` claim names a row in ``auth_sessions``;
revoking that row (sign-out) makes the token stop resolving even before it
expires.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .config import get_settings
from .errors import AuthError, InvalidInput

logger = logging.getLogger(__name__)

# Use pbkdf2_sha256 as default to avoid bcrypt 72-byte limitation in some envs
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")

ALGORITHM = "HS256"

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"


@dataclass(frozen=True)
class Identity:
    id: int
    email: str
    session_id: str
    access_token: str


AuthListener = Callable[[str, Optional[Identity]], None]


def create_access_token(account_id: int, session_id: str, expires_delta: Optional[int] = None) -> str:
    settings = get_settings()
    now = int(time.time())
    exp = now + (expires_delta or settings.token_ttl_seconds)
    payload = {"sub": str(account_id), "sid": session_id, "iat": now, "exp": exp}
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, get_settings().jwt_secret, algorithms=[ALGORITHM])


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class IdentityProvider:
    """Account and session operations bound to one database session."""

    def __init__(self, db: Session):
        self.db = db
        self._listeners: List[AuthListener] = []

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, event: str, identity: Optional[Identity]):
        for listener in list(self._listeners):
            listener(event, identity)

    def _open_session(self, account: models.Account) -> Identity:
        sid = uuid.uuid4().hex
        self.db.add(models.AuthSession(id=sid, account_id=account.id))
        self.db.commit()
        token = create_access_token(account.id, sid)
        return Identity(id=account.id, email=account.email, session_id=sid, access_token=token)

    def create_account(self, email: str, password: str) -> Identity:
        email = normalize_email(email)
        if "@" not in email:
            raise InvalidInput("a valid email address is required")
        account = models.Account(email=email, password_hash=hash_password(password))
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise InvalidInput("an account with this email already exists") from e
        self.db.refresh(account)
        identity = self._open_session(account)
        logger.info("account %s created", account.id)
        self._notify(SIGNED_IN, identity)
        return identity

    def verify_credentials(self, email: str, password: str) -> Identity:
        account = (
            self.db.query(models.Account)
            .filter(func.lower(models.Account.email) == normalize_email(email))
            .first()
        )
        if not account or not verify_password(password, account.password_hash):
            logger.info("rejected sign-in for %s", normalize_email(email))
            raise AuthError("invalid email or password")
        identity = self._open_session(account)
        logger.info("account %s signed in", account.id)
        self._notify(SIGNED_IN, identity)
        return identity

    def get_current_session(self, token: Optional[str]) -> Optional[Identity]:
        if not token:
            return None
        try:
            payload = decode_access_token(token)
        except jwt.PyJWTError:
            return None
        session = self.db.get(models.AuthSession, payload.get("sid"))
        if session is None or session.revoked_at is not None:
            return None
        if str(session.account_id) != payload.get("sub"):
            return None
        account = session.account
        return Identity(id=account.id, email=account.email, session_id=session.id, access_token=token)

    def terminate_session(self, identity: Optional[Identity]) -> None:
        if identity is not None:
            session = self.db.get(models.AuthSession, identity.session_id)
            if session is not None and session.revoked_at is None:
                session.revoked_at = models.utcnow()
                self.db.commit()
            logger.info("account %s signed out", identity.id)
        self._notify(SIGNED_OUT, None)
