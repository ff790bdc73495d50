"""
Capability checks shared by every feature.

Handlers ask `require(principal, action, owner_id=...)` instead of comparing
roles and ids themselves. A denial is a 401 "Unauthorized".
"""

from __future__ import annotations

from typing import Any, Callable

from core.errors import AuthError

from .principal import Principal

Rule = Callable[[Principal, Any, dict], bool]


def _owner(principal: Principal, owner_id: Any, context: dict) -> bool:
    return principal.owns(owner_id)


def _admin(principal: Principal, owner_id: Any, context: dict) -> bool:
    return principal.is_admin


def _owner_or_admin(principal: Principal, owner_id: Any, context: dict) -> bool:
    return principal.is_admin or principal.owns(owner_id)


def _visible_unless_private(flag: str) -> Rule:
    def rule(principal: Principal, owner_id: Any, context: dict) -> bool:
        return bool(context.get(flag)) or _owner_or_admin(principal, owner_id, context)

    return rule


RULES: dict[str, Rule] = {
    "calculator:edit": _owner_or_admin,
    "calculator:delete": _owner_or_admin,
    "calculator:verify": _admin,
    "calculator:review": _admin,
    "comment:delete": _owner,
    "reply:delete": _owner,
    "moderation:review": _admin,
    "user:edit": _owner,
    "user:delete": _owner_or_admin,
    "user:save": _owner,
    "user:view-saved": _visible_unless_private("show_saved_calculators"),
    "user:view-comments": _visible_unless_private("show_comments"),
}

# Public-visibility actions also apply to anonymous callers.
PUBLIC_FLAGS = {
    "user:view-saved": "show_saved_calculators",
    "user:view-comments": "show_comments",
}


def allows(principal: Principal | None, action: str, owner_id: Any = None, **context: Any) -> bool:
    rule = RULES.get(action)
    if rule is None:
        raise KeyError(f"Unknown action: {action}")
    if principal is None:
        flag = PUBLIC_FLAGS.get(action)
        return bool(flag and context.get(flag))
    return rule(principal, owner_id, context)


def require(
    principal: Principal | None,
    action: str,
    owner_id: Any = None,
    *,
    detail: str = "Unauthorized",
    **context: Any,
) -> None:
    if not allows(principal, action, owner_id, **context):
        raise AuthError(detail)
