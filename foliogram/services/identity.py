"""Identity resolution.

Every user-facing record (notification recipients, appointment owners and
bookers, mentions) stores a plain identifier string: a username or an
email address. Matching an identifier to an account happens here and
nowhere else.
"""
from dataclasses import dataclass

from sqlalchemy import func

from ..models.db_models import User


def normalize_identifier(value):
    if value is None:
        return ""
    return str(value).strip().lower()


def resolve_user(identifier):
    """Returns the account an identifier refers to, matching username first, then email."""
    key = normalize_identifier(identifier)
    if not key:
        return None
    user = User.query.filter(func.lower(User.username) == key).first()
    if user is None:
        user = User.query.filter(func.lower(User.email) == key).first()
    return user


def canonical_identifier(identifier):
    user = resolve_user(identifier)
    if user is not None:
        return user.username
    return normalize_identifier(identifier)


@dataclass(frozen=True)
class Identity:
    user_id: int
    username: str
    email: str
    role: str
    display_name: str

    @classmethod
    def from_user(cls, user):
        return cls(
            user_id=user.id,
            username=user.username,
            email=user.email or "",
            role=user.role or "user",
            display_name=user.display_name,
        )

    @property
    def match_keys(self):
        keys = (normalize_identifier(self.username), normalize_identifier(self.email))
        return {key for key in keys if key}

    def owns(self, identifier):
        key = normalize_identifier(identifier)
        return bool(key) and key in self.match_keys

    def has_role(self, *roles):
        return self.role in roles

    @property
    def is_admin(self):
        return self.role == "admin"
