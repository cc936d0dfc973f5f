# simflow/models/enums.py
from __future__ import annotations
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    ENGINEER = "Engineer"
    END_USER = "End-User"


class ProjectStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"  # legacy alias of Active
    ACTIVE = "Active"
    ON_HOLD = "On Hold"
    SUSPENDED = "Suspended"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"
    ARCHIVED = "Archived"


class RequestStatus(str, Enum):
    SUBMITTED = "Submitted"
    FEASIBILITY_REVIEW = "Feasibility Review"
    RESOURCE_ALLOCATION = "Resource Allocation"
    ENGINEERING_REVIEW = "Engineering Review"
    DISCUSSION = "Discussion"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    REVISION_REQUESTED = "Revision Requested"
    REVISION_APPROVAL = "Revision Approval"
    ACCEPTED = "Accepted"
    DENIED = "Denied"


class HourTransactionType(str, Enum):
    ALLOCATION = "allocation"
    DEALLOCATION = "deallocation"
    ADJUSTMENT = "adjustment"
    COMPLETION = "completion"
    ROLLOVER = "rollover"
    EXTENSION = "extension"


class DiscussionStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    DENIED = "Denied"
    OVERRIDE = "Override"


class DiscussionAction(str, Enum):
    APPROVE = "approve"
    DENY = "deny"
    OVERRIDE = "override"


class ProjectPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class RequestPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
