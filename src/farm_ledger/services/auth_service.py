"""Auth Service - registration, login and account administration.

Accounts follow an approval workflow: register() creates a PENDIENTE user,
an administrator approves (ACTIVO) or rejects (RECHAZADO) it, and may later
toggle it between ACTIVO and INACTIVO. Only ACTIVO users can log in.

Passwords are stored as salted PBKDF2-SHA256 hashes in the form
"<iterations>$<salt hex>$<hash hex>". login() returns an AuthResult whose
session_context() is what the UI passes into every other service call. The
result also carries a random client-side token, never verified server-side.
"""

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import User, UserRole, UserStatus
from ..utils.constants import MAX_EMAIL_LENGTH, MAX_NAME_LENGTH, MIN_PASSWORD_LENGTH
from ..utils.datetime_utils import utc_now
from ..utils.validators import (
    parse_choice,
    validate_all,
    validate_required_string,
    validate_string_length,
)
from .exceptions import (
    AuthenticationError,
    DuplicateEmail,
    UserNotActive,
    UserNotFound,
    ValidationError,
)
from .ledger_store import fetch, run_atomic, run_query
from .logging_utils import get_service_logger, log_operation
from .session_context import SessionContext

logger = get_service_logger(__name__)

PBKDF2_ITERATIONS = 260_000
SALT_BYTES = 16


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful login.

    token is an opaque random handle for the client to key its local
    session on. It is not stored or checked by the ledger; authorization
    comes from the SessionContext built by session_context(), which carries
    the user id and role only.
    """

    token: str
    user_id: str
    role: UserRole
    name: str
    email: str

    def session_context(self) -> SessionContext:
        return SessionContext(user_id=self.user_id, role=self.role, email=self.email)


def hash_password(password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Hash a password with a fresh random salt."""
    salt = secrets.token_bytes(SALT_BYTES)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"{iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored hash in constant time."""
    try:
        iterations, salt_hex, digest_hex = password_hash.split("$")
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(digest_hex)
        rounds = int(iterations)
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(digest, expected)


def _normalize_email(email: Optional[str]) -> str:
    email = validate_string_length(
        validate_required_string(email, "Email").lower(), MAX_EMAIL_LENGTH, "Email"
    )
    local, _, domain = email.partition("@")
    if not local or "." not in domain:
        raise ValidationError(f"Email: '{email}' is not a valid address")
    return email


def _require_admin(context: Optional[SessionContext], operation: str) -> None:
    if context is None or not context.is_admin:
        log_operation(
            logger,
            operation=operation,
            outcome="forbidden",
            level=logging.WARNING,
            user_id=context.user_id if context else None,
        )
        raise AuthenticationError(
            context.email if context and context.email else "",
            reason="Administrator role required",
        )


def register(profile: Dict[str, Any], session: Optional[Session] = None) -> str:
    """
    Register a new account awaiting approval.

    Args:
        profile: Dictionary with email, password, name and optionally role
        session: Optional session for transactional composition

    Returns:
        The new user's id (status PENDIENTE)

    Raises:
        ValidationError: If the profile is incomplete or the password too short
        DuplicateEmail: If an account with the email already exists
    """
    email, name, password, role = validate_all(
        lambda: _normalize_email(profile.get("email")),
        lambda: validate_string_length(
            validate_required_string(profile.get("name"), "Name"), MAX_NAME_LENGTH, "Name"
        ),
        lambda: _validate_password(profile.get("password")),
        lambda: parse_choice(profile.get("role") or UserRole.GALPONERO, UserRole, "Role"),
    )
    password_hash = hash_password(password)

    def _impl(sess: Session) -> str:
        if sess.query(User).filter(User.email == email).first() is not None:
            raise DuplicateEmail(email)
        user = User(
            email=email,
            name=name,
            role=role,
            status=UserStatus.PENDIENTE,
            password_hash=password_hash,
        )
        sess.add(user)
        sess.flush()
        return user.id

    user_id = run_atomic("register", _impl, session=session)
    log_operation(logger, operation="register", outcome="pending_approval", user_id=user_id)
    return user_id


def _validate_password(password: Optional[str]) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password: Must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def login(email: str, password: str) -> AuthResult:
    """
    Authenticate an ACTIVO user.

    Raises:
        AuthenticationError: If the email is unknown or the password wrong
        UserNotActive: If the account is pending, inactive or rejected
    """
    email = (email or "").strip().lower()

    def _impl(sess: Session) -> Optional[User]:
        return sess.query(User).filter(User.email == email).first()

    user = run_query("login", _impl)
    if user is None or not verify_password(password or "", user.password_hash):
        log_operation(logger, operation="login", outcome="rejected", level=logging.WARNING)
        raise AuthenticationError(email)
    if not user.is_active:
        log_operation(
            logger,
            operation="login",
            outcome="not_active",
            level=logging.WARNING,
            user_id=user.id,
            status=user.status.value,
        )
        raise UserNotActive(email, user.status.value)

    log_operation(logger, operation="login", outcome="success", user_id=user.id)
    return AuthResult(
        token=secrets.token_urlsafe(32),
        user_id=user.id,
        role=user.role,
        name=user.name,
        email=user.email,
    )


def _set_status(
    operation: str,
    user_id: str,
    context: Optional[SessionContext],
    choose_status,
) -> User:
    _require_admin(context, operation)

    def _impl(sess: Session) -> User:
        user = fetch(sess, User, user_id, UserNotFound)
        user.status = choose_status(user)
        user.updated_at = utc_now()
        sess.flush()
        return user

    user = run_atomic(operation, _impl)
    log_operation(
        logger, operation=operation, outcome="success", user_id=user.id, status=user.status.value
    )
    return user


def approve_user(user_id: str, context: Optional[SessionContext] = None) -> User:
    """Activate a pending account. Requires an admin context."""
    return _set_status("approve_user", user_id, context, lambda user: UserStatus.ACTIVO)


def reject_user(user_id: str, context: Optional[SessionContext] = None) -> User:
    """Reject a pending account. Requires an admin context."""
    return _set_status("reject_user", user_id, context, lambda user: UserStatus.RECHAZADO)


def toggle_user_status(user_id: str, context: Optional[SessionContext] = None) -> User:
    """Switch an account between ACTIVO and INACTIVO.

    Pending and rejected accounts become ACTIVO, as in an approval.
    """
    return _set_status(
        "toggle_user_status",
        user_id,
        context,
        lambda user: UserStatus.INACTIVO if user.status == UserStatus.ACTIVO else UserStatus.ACTIVO,
    )


def update_user_role(user_id: str, role: Any, context: Optional[SessionContext] = None) -> User:
    """Change an account's role. Requires an admin context."""
    role = parse_choice(role, UserRole, "Role")
    _require_admin(context, "update_user_role")

    def _impl(sess: Session) -> User:
        user = fetch(sess, User, user_id, UserNotFound)
        user.role = role
        user.updated_at = utc_now()
        sess.flush()
        return user

    user = run_atomic("update_user_role", _impl)
    log_operation(logger, operation="update_user_role", outcome="success", user_id=user.id, role=role.value)
    return user


def delete_user(user_id: str, context: Optional[SessionContext] = None) -> None:
    """Delete an account. Admins cannot delete themselves."""
    _require_admin(context, "delete_user")
    if context.user_id == user_id:
        raise ValidationError("Administrators cannot delete their own account")

    def _impl(sess: Session) -> None:
        sess.delete(fetch(sess, User, user_id, UserNotFound))
        sess.flush()

    run_atomic("delete_user", _impl)
    log_operation(logger, operation="delete_user", outcome="success", user_id=user_id)


def get_user(user_id: str) -> User:
    return run_query("get_user", lambda sess: fetch(sess, User, user_id, UserNotFound))


def list_users(status: Optional[Any] = None) -> List[User]:
    """List accounts ordered by name, optionally with one status."""
    status = parse_choice(status, UserStatus, "Status") if status is not None else None

    def _impl(sess: Session) -> List[User]:
        query = sess.query(User)
        if status is not None:
            query = query.filter(User.status == status)
        return query.order_by(User.name).all()

    return run_query("list_users", _impl)
