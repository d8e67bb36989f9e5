"""
backend/doit/database/enums.py

Enumerations

Defines enumerations stored in documents across the platform:
- TaskStatus: Lifecycle of a posted task
- ApplicationStatus: State of a bid on a task
- MessageType: Kind of payload carried by a chat message
"""

from enum import Enum


# ---------------------------------------------------
# Task Status Enumeration
# ---------------------------------------------------
class TaskStatus(str, Enum):
    """
    Lifecycle: OPEN -> MATCHED (application accepted) -> COMPLETED (creator rated).
    """

    OPEN = "open"
    MATCHED = "matched"
    COMPLETED = "completed"


# ---------------------------------------------------
# Application Status Enumeration
# ---------------------------------------------------
class ApplicationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


# ---------------------------------------------------
# Message Type Enumeration
# ---------------------------------------------------
class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
