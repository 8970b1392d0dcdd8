from enum import Enum


class Role(str, Enum):
    ADMIN = "Admin"
    PROJECT_MANAGER = "ProjectManager"
    CONTRIBUTOR = "Contributor"


MANAGER_ROLES = (Role.ADMIN, Role.PROJECT_MANAGER)
# Roles that can be granted through membership management
ASSIGNABLE_MEMBER_ROLES = (Role.PROJECT_MANAGER, Role.CONTRIBUTOR)


class TaskStatus(str, Enum):
    TODO = "ToDo"
    IN_PROGRESS = "InProgress"
    IN_REVIEW = "InReview"
    DONE = "Done"


class TaskPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


PRIORITY_RANK = {
    TaskPriority.LOW: 0,
    TaskPriority.MEDIUM: 1,
    TaskPriority.HIGH: 2,
    TaskPriority.CRITICAL: 3,
}
