"""Authorization policy.

Every guarded action has one entry in ``POLICY``; ``authorize`` is the only
place the rules are evaluated. Roles are read from the account document on
each call, so demoting or blocking an account takes effect on its next
request rather than when its token expires.
"""
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from fastapi import Depends

from accounts import AccountRegistry, get_accounts
from errors import Forbidden, Unauthenticated
from identity import Identity, current_identity

logger = logging.getLogger(__name__)

MODERATORS = frozenset({"admin", "volunteer"})
ADMINS = frozenset({"admin"})


@dataclass(frozen=True)
class Owner:
    """Caller must be the resource owner."""


@dataclass(frozen=True)
class Roles:
    allowed: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class OwnerOrRoles:
    allowed: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ActiveAccount:
    """Any registered account that is not blocked."""


@dataclass(frozen=True)
class Grant:
    via: str  # owner | role | account
    role: Optional[str] = None


POLICY = {
    "user:register": Owner(),
    "user:read": Owner(),
    "user:update": Owner(),
    "user:last-login": Owner(),
    "request:create": ActiveAccount(),
    "request:read": ActiveAccount(),
    "request:claim": Owner(),
    "request:list-own": Owner(),
    "request:stats-own": Owner(),
    "request:update": OwnerOrRoles(MODERATORS),
    "request:delete": Roles(ADMINS),
    "admin:stats": Roles(MODERATORS),
    "admin:requests": Roles(MODERATORS),
    "admin:users": Roles(ADMINS),
    "admin:update-user": Roles(ADMINS),
    "blog:create": Roles(MODERATORS),
    "blog:update": Roles(MODERATORS),
    "blog:stats": Roles(MODERATORS),
    "blog:publish": Roles(ADMINS),
    "blog:delete": Roles(ADMINS),
    "payment:intent": ActiveAccount(),
    "payment:save": Owner(),
    "payment:list": Roles(ADMINS),
}


def _active_role(accounts: AccountRegistry, identity: Identity) -> Optional[str]:
    account = accounts.lookup(identity.email)
    if not account or account.get("status") == "blocked":
        return None
    return account.get("role", "donor")


def is_moderator(accounts: AccountRegistry, identity: Optional[Identity]) -> bool:
    """Visibility check for routes that are public but show moderators more."""
    return identity is not None and _active_role(accounts, identity) in MODERATORS


def authorize(
    accounts: AccountRegistry,
    identity: Optional[Identity],
    action: str,
    owner_email: Optional[str] = None,
) -> Grant:
    rule = POLICY[action]
    if identity is None:
        raise Unauthenticated()

    if isinstance(rule, Owner):
        if owner_email is None or identity.email != owner_email:
            logger.info("Denied %s for %s: not the owner", action, identity.email)
            raise Forbidden()
        return Grant("owner")

    role = _active_role(accounts, identity)

    if isinstance(rule, ActiveAccount):
        if role is None:
            raise Forbidden()
        return Grant("account", role)

    if role in rule.allowed:
        return Grant("role", role)
    if isinstance(rule, OwnerOrRoles) and owner_email is not None and identity.email == owner_email:
        return Grant("owner", role)
    logger.info("Denied %s for %s with role %s", action, identity.email, role)
    raise Forbidden()


def require(action: str):
    """Route dependency for actions that do not depend on a resource owner."""

    def dependency(
        identity: Identity = Depends(current_identity),
        accounts: AccountRegistry = Depends(get_accounts),
    ) -> Grant:
        return authorize(accounts, identity, action)

    return dependency
