"""
Credential service: password hashing, signed session tokens and the
default administrator bootstrap.

Tokens are stateless HS256 JWTs carrying the user id, role, issue time,
expiry and a unique token id. Nothing is stored server-side, so a token
stays valid until it expires (there is no revocation list); the auth gate
additionally re-checks that the subject is still an active user.
"""

import secrets
import time
from typing import Optional
from uuid import uuid4

import bcrypt
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError
from pydantic import BaseModel

from ..models.user import User, UserRole
from ..storage.document_store import DocumentStore
from ..utils.config import AppSettings, AuthSettings
from ..utils.exceptions import (
    AuthError,
    AuthErrorKind,
    DuplicateKeyError,
    StartupError,
    StartupErrorKind,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_ADMIN_PASSWORD = "admin123"
MIN_PASSWORD_LENGTH = 8


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt"""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash"""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except (ValueError, TypeError, AttributeError):
        return False


def resolve_secret_key(auth: AuthSettings, app: AppSettings) -> str:
    """
    Return the token signing secret.

    Production refuses to start without one; elsewhere a random per-process
    secret is generated, which invalidates tokens on every restart.
    """
    if auth.secret_key:
        return auth.secret_key
    if app.is_production:
        raise StartupError("JWT_SECRET must be set in production", StartupErrorKind.MISSING_SECRET)
    logger.warning("JWT_SECRET not set; generated an ephemeral signing secret")
    return secrets.token_urlsafe(32)


class TokenClaims(BaseModel):
    """Identity resolved from a verified token"""

    user_id: str
    role: str


class CredentialService:
    """Issue and check credentials against the document store"""

    def __init__(self, store: DocumentStore, settings: AuthSettings, secret_key: str):
        self.store = store
        self.settings = settings
        self.secret_key = secret_key
        self._dummy_hash: Optional[str] = None

    def hash_password(self, password: str) -> str:
        return hash_password(password, rounds=self.settings.bcrypt_rounds)

    # Tokens

    def issue_token(self, user: User) -> str:
        """Create a signed token for the given user"""
        now = int(time.time())
        payload = {
            "sub": user.id,
            "role": str(UserRole(user.role).value),
            "iat": now,
            "exp": now + int(self.settings.token_ttl_hours * 3600),
            "jti": uuid4().hex,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.settings.algorithm)

    def verify_token(self, token: Optional[str]) -> TokenClaims:
        """
        Check signature and expiry.

        Raises:
            AuthError(MALFORMED): not a decodable JWT, bad registered claims, or subject/role missing
            AuthError(INVALID_SIGNATURE): signature or algorithm does not verify
            AuthError(EXPIRED): past its exp claim
        """
        if not token or not isinstance(token, str):
            raise AuthError("Token missing", AuthErrorKind.MALFORMED)

        try:
            jwt.get_unverified_claims(token)
        except JWTError as e:
            raise AuthError(f"Token malformed: {str(e)}", AuthErrorKind.MALFORMED)

        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[self.settings.algorithm])
        except ExpiredSignatureError:
            raise AuthError("Token expired", AuthErrorKind.EXPIRED)
        except JWTClaimsError as e:
            raise AuthError(f"Token claims invalid: {str(e)}", AuthErrorKind.MALFORMED)
        except JWTError as e:
            raise AuthError(f"Token rejected: {str(e)}", AuthErrorKind.INVALID_SIGNATURE)

        user_id = claims.get("sub")
        role = claims.get("role")
        if not user_id or not role:
            raise AuthError("Token is missing subject or role", AuthErrorKind.MALFORMED)
        return TokenClaims(user_id=user_id, role=role)

    # Users

    def register(
        self,
        login_id: str,
        password: str,
        role: UserRole,
        full_name: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> User:
        """Create a user; raises DuplicateKeyError when the login id is taken"""
        login_id = login_id.strip()
        if not login_id:
            raise ValueError("Login id must not be blank")
        user = User(
            login_id=login_id,
            password_hash=self.hash_password(password),
            role=role,
            full_name=full_name,
            created_by=created_by,
        )
        self.store.insert_user(user)
        logger.info("User registered", user_id=user.id, role=user.role)
        return user

    def authenticate(self, login_id: str, password: str) -> Optional[User]:
        """Return user if credentials are valid, else None"""
        user = self.store.find_user_by_login_id(login_id)
        if not user:
            # Spend the same bcrypt work so unknown ids are not distinguishable by timing
            if self._dummy_hash is None:
                self._dummy_hash = self.hash_password(secrets.token_urlsafe(16))
            verify_password(password, self._dummy_hash)
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    def change_password(self, user: User, current_password: str, new_password: str) -> bool:
        """
        Replace the password hash after checking the current password.

        Returns False when the current password does not match; raises
        ValueError when the new one is shorter than MIN_PASSWORD_LENGTH.
        """
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"New password must be at least {MIN_PASSWORD_LENGTH} characters")
        if not verify_password(current_password, user.password_hash):
            return False
        self.store.update_user(user.id, password_hash=self.hash_password(new_password))
        logger.info("Password changed", user_id=user.id)
        return True

    def create_default_admin(self) -> Optional[User]:
        """
        Create the well-known admin account if it does not exist yet.

        Safe to call on every startup. Never raises: a failure is logged and
        the service keeps serving other traffic.
        """
        login_id = self.settings.admin_login_id
        try:
            if self.store.find_user_by_login_id(login_id):
                logger.info("Default admin already exists", login_id=login_id)
                return None

            if self.settings.admin_password == DEFAULT_ADMIN_PASSWORD:
                logger.warning("Default admin uses the built-in password; set ADMIN_PASSWORD")

            admin = User(
                login_id=login_id,
                password_hash=self.hash_password(self.settings.admin_password),
                role=UserRole.ADMIN,
            )
            self.store.insert_user(admin)
        except DuplicateKeyError:
            logger.info("Default admin created concurrently", login_id=login_id)
            return None
        except Exception as e:
            logger.exception("Admin user creation error", error=str(e))
            return None

        logger.info("Default admin created", login_id=login_id, user_id=admin.id)
        return admin
