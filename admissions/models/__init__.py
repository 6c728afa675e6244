# Database models

from admissions.models.journal import LifecycleEvent, LifecycleEventType

__all__ = [
    "LifecycleEvent",
    "LifecycleEventType",
]
