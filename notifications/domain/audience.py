"""Audience matching.

Decides whether a user belongs to the audience of a notification. A
notification is visible to a user when every one of its INCLUDE rules
matches that user; a notification without INCLUDE rules is visible to
everyone. EXCLUDE rules are stored but not evaluated.

Every function here is pure: the user is passed in explicitly and nothing
is read from storage or request state.
"""

from typing import Callable, Dict, Iterable, Mapping, Set

from users.domain.entities import User

from .entities import AudienceRule, AudienceType


def parse_user_list(audience_value: str | None) -> Set[str]:
    """Split a comma-joined user id list into trimmed, non-empty tokens."""
    if not audience_value:
        return set()
    return {token.strip() for token in audience_value.split(",") if token.strip()}


def _normalized(audience_value: str | None) -> str | None:
    if audience_value is None:
        return None
    value = audience_value.strip()
    return value or None


def _matches_all_users(user: User, value: str | None) -> bool:
    return True


def _matches_role(user: User, value: str | None) -> bool:
    return value is not None and user.role is not None and value == str(user.role)


def _matches_major(user: User, value: str | None) -> bool:
    return (
        value is not None
        and user.is_student
        and user.major_id is not None
        and value == str(user.major_id)
    )


def _matches_department(user: User, value: str | None) -> bool:
    return (
        value is not None
        and user.is_lecturer
        and user.department_id is not None
        and value == str(user.department_id)
    )


def _matches_user_list(user: User, value: str | None) -> bool:
    return user.id is not None and str(user.id) in parse_user_list(value)


RULE_PREDICATES: Dict[str, Callable[[User, str | None], bool]] = {
    AudienceType.ALL_USERS: _matches_all_users,
    AudienceType.ROLE: _matches_role,
    AudienceType.MAJOR: _matches_major,
    AudienceType.DEPARTMENT: _matches_department,
    AudienceType.USER_LIST: _matches_user_list,
}


def matches(user: User, rule: AudienceRule) -> bool:
    """Evaluate a single rule against a user, ignoring its condition logic.

    Unknown audience types and missing values for value-bearing types never
    match. Missing user attributes never raise.

    Parameters
    ----------
    user : User
        The current user.
    rule : AudienceRule
        Rule to evaluate.

    Returns
    -------
    bool
        True if the user satisfies the rule's predicate.
    """
    predicate = RULE_PREDICATES.get(str(rule.audience_type))
    if predicate is None:
        return False
    return predicate(user, _normalized(rule.audience_value))


def is_visible(user: User, rules: Iterable[AudienceRule]) -> bool:
    """Return True when the user matches every INCLUDE rule.

    An empty set of INCLUDE rules is vacuously satisfied.
    """
    return all(matches(user, rule) for rule in rules if rule.is_include)


def visible_notification_ids(
    user: User,
    notification_ids: Iterable[int],
    rules_by_notification: Mapping[int, Iterable[AudienceRule]],
) -> Set[int]:
    """Bulk form of `is_visible` over many notifications.

    For each notification, counts its INCLUDE rules and how many of them
    the user matches; the notification is kept when both counts agree.
    Notifications missing from `rules_by_notification` have no rules and are
    therefore kept.

    Parameters
    ----------
    user : User
        The current user.
    notification_ids : Iterable[int]
        Candidate notification ids.
    rules_by_notification : Mapping[int, Iterable[AudienceRule]]
        Rules grouped by notification id.

    Returns
    -------
    Set[int]
        Ids of the notifications visible to the user.
    """
    visible = set()
    for notification_id in notification_ids:
        include_rules = [
            rule
            for rule in rules_by_notification.get(notification_id, ())
            if rule.is_include
        ]
        matched = sum(1 for rule in include_rules if matches(user, rule))
        if matched == len(include_rules):
            visible.add(notification_id)
    return visible
