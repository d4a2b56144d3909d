"""Authentication helpers used at the command-line boundary.

Password hashing, registration, credential checks, and role gating live here
rather than in the store: the store only keeps the opaque hash it is given.
Hashes are produced with ``bcrypt``.
"""

from __future__ import annotations

from typing import Optional

import bcrypt

from . import log
from .constants import UserRole
from .data_manager import ConfigSettings
from .errors import ConflictError, InvalidInputError, PermissionDeniedError
from .store import EntityStore, User


BCRYPT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 6
# bcrypt only looks at the first 72 bytes and newer releases refuse more.
MAX_PASSWORD_BYTES = 72


def hash_password(password: str, *, rounds: Optional[int] = None) -> str:
    """Hash ``password`` with a fresh bcrypt salt.

    ``rounds`` defaults to the module-level ``BCRYPT_ROUNDS``.

    Raises:
        InvalidInputError: If the password is shorter than
            ``MIN_PASSWORD_LENGTH`` characters or longer than
            ``MAX_PASSWORD_BYTES`` bytes once UTF-8 encoded.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInputError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise InvalidInputError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=rounds or BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Return ``True`` when ``password`` matches ``password_hash``.

    A malformed stored hash, or a password bcrypt cannot take, counts as a
    mismatch.
    """
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        log.warning("Stored password hash is not a valid bcrypt hash")
        return False


def register_user(
    store: EntityStore,
    username: str,
    password: str,
    *,
    email: Optional[str] = None,
    role: UserRole = UserRole.USER,
    rounds: Optional[int] = None,
) -> User:
    """Create a user after checking the username is free.

    The lookup and the insert run under the store lock so two registrations
    for the same name cannot both succeed.

    Raises:
        InvalidInputError: If the username is blank or the password too short.
        ConflictError: If the username is already taken.
    """
    username = username.strip()
    if not username:
        raise InvalidInputError("Username must not be empty")
    password_hash = hash_password(password, rounds=rounds)
    with store.locked():
        if store.get_user_by_username(username) is not None:
            log.warning("Registration rejected: username '%s' already exists", username)
            raise ConflictError(f"Username already exists: {username}")
        return store.create_user(username, password_hash, email=email, role=role)


def authenticate(store: EntityStore, username: str, password: str) -> Optional[User]:
    """Return the matching user, or ``None`` for bad credentials."""
    user = store.get_user_by_username(username)
    if user is None or not verify_password(password, user.password_hash):
        log.warning("Authentication failed for username '%s'", username)
        return None
    return user


def ensure_admin_user(store: EntityStore, settings: ConfigSettings, *, rounds: Optional[int] = None) -> Optional[User]:
    """Create the configured bootstrap admin once.

    Returns:
        User | None: The new admin, or ``None`` when the account already
            exists.
    """
    if store.get_user_by_username(settings.admin_username) is not None:
        return None
    admin = register_user(
        store,
        settings.admin_username,
        settings.admin_password,
        email=settings.admin_email,
        role=UserRole.ADMIN,
        rounds=rounds,
    )
    log.info("Bootstrap admin '%s' created", admin.username)
    return admin


def require_role(user: Optional[User], role: Optional[UserRole]) -> None:
    """Check that ``user`` may run an operation requiring ``role``.

    ``None`` means the operation is public. ``UserRole.USER`` accepts any
    signed-in user; ``UserRole.ADMIN`` accepts admins only.

    Raises:
        PermissionDeniedError: If the caller is anonymous or under-privileged.
    """
    if role is None:
        return
    if user is None:
        raise PermissionDeniedError("Authentication required")
    if role is UserRole.ADMIN and user.role is not UserRole.ADMIN:
        log.warning("User '%s' denied admin operation", user.username)
        raise PermissionDeniedError("Administrator role required")
