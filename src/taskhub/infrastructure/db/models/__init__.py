"""Import all models so Base.metadata sees every table."""
from taskhub.infrastructure.db.models.outbox import OutboxEventModel
from taskhub.infrastructure.db.models.processed_event import ProcessedEventModel
from taskhub.infrastructure.db.models.task import TaskModel
from taskhub.infrastructure.db.models.user import UserModel

__all__ = [
    "OutboxEventModel",
    "ProcessedEventModel",
    "TaskModel",
    "UserModel",
]
