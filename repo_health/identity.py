"""Identity predicates: bot detection, maintainer roles and qualifying responders."""

from __future__ import annotations

from collections.abc import Collection, Iterable

from repo_health.config import KNOWN_BOTS, MAINTAINER_ROLE_SUFFIXES


def is_bot(login: str | None, bot_logins: Collection[str] = KNOWN_BOTS) -> bool:
    """Return True if *login* is a bot account or missing (deleted user)."""
    if not login:
        return True
    lower = login.lower()
    return lower in bot_logins or lower.endswith("[bot]")


def maintainer_roles(
    roles: Iterable[str],
    suffixes: tuple[str, ...] = MAINTAINER_ROLE_SUFFIXES,
) -> list[str]:
    """Filter a role list down to the tags that confer maintainer status."""
    return [role for role in roles if role.endswith(suffixes)]


def is_qualifying_responder(
    login: str | None,
    item_author: str | None,
    maintainers: Collection[str],
    bot_logins: Collection[str] = KNOWN_BOTS,
) -> bool:
    """Whether a comment or review by *login* counts as a maintainer response.

    The responder must be a known, non-bot maintainer other than the item's
    own author.
    """
    if not login:
        return False
    if login == item_author:
        return False
    if is_bot(login, bot_logins):
        return False
    return login in maintainers
