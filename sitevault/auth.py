"""
Admin authentication for the backup API.

Only users with role 'admin' may sign in. Password hashes are never part of a
backup, so an account recreated by a restore has no hash and cannot sign in
until a password is set again.
"""

from typing import Optional

from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin
from sitevault.models import User


ADMIN_ROLE = 'admin'


def hash_password(password: str) -> str:
    """Salted pbkdf2:sha256 hash for storage in User.password_hash."""
    return generate_password_hash(password, method='pbkdf2:sha256')


def verify_password(password_hash: Optional[str], password: str) -> bool:
    """
    Check a password against a stored hash.

    Returns:
        False when no hash is stored, otherwise whether the password matches
    """
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


def authenticate_admin(email: str, password: str) -> Optional[User]:
    """
    Look up an admin by email and check the password.

    Returns:
        The User, or None if unknown, not an admin, or the password is wrong
    """
    user = User.query.filter_by(email=email).first()
    if user is None or user.role != ADMIN_ROLE:
        return None
    if not verify_password(user.password_hash, password):
        return None
    return user


class UserModel(UserMixin):
    """Flask-Login session wrapper around a User row."""

    def __init__(self, user: User):
        self.user = user

    def get_id(self):
        return str(self.user.id)

    @property
    def id(self):
        return self.user.id

    @property
    def email(self):
        return self.user.email

    @property
    def is_admin(self):
        return self.user.role == ADMIN_ROLE
