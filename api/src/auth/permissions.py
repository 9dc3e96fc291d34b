"""Role-based access control.

Hierarchical roles:
- ADMIN (level 3): maintenance operations such as batch resync
- TEACHER (level 2): may record progress and enrollments on behalf of students
- STUDENT (level 1): may only act for themselves
- USER (level 0): registered account without courses
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles; higher level includes the permissions of lower ones."""

    USER = "user"
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.USER: 0,
    UserRole.STUDENT: 1,
    UserRole.TEACHER: 2,
    UserRole.ADMIN: 3,
}


def get_role_level(role: UserRole | str) -> int:
    """Permission level of a role; unknown roles get 0."""
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.TEACHER)
        True
        >>> has_permission("student", "teacher")
        False
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def can_act_for_others(role: UserRole | str) -> bool:
    """TEACHER and ADMIN may record actions for another student."""
    return has_permission(role, UserRole.TEACHER)
