# storefront/core/notifications.py
import logging
from enum import Enum
from typing import Callable

from sqlmodel import SQLModel

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class NoticeKind(str, Enum):
    ADD_SUCCESS = "add_success"
    ADD_DUPLICATE = "add_duplicate"
    ADD_FAILURE = "add_failure"
    REMOVE_SUCCESS = "remove_success"
    REMOVE_FAILURE = "remove_failure"
    CLEAR_FAILURE = "clear_failure"
    QUANTITY_UPDATE_FAILURE = "quantity_update_failure"
    LOAD_FAILURE = "load_failure"
    AUTH_REQUIRED = "auth_required"
    OWNERSHIP_VIOLATION = "ownership_violation"


class Notice(SQLModel):
    """
    Advisory, user-facing outcome of an engine operation.
    Nothing blocks on a notice being delivered.
    """

    kind: NoticeKind
    severity: Severity
    message: str
    collection: str | None = None
    product_ref: str | None = None


NotificationSink = Callable[[Notice], None]


_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class LoggingNotificationSink:
    """
    Default sink: writes every notice to the log.
    """

    def __init__(self, name: str = "storefront.notices"):
        self.logger = logging.getLogger(name)

    def __call__(self, notice: Notice) -> None:
        self.logger.log(
            _LEVELS[notice.severity],
            "[%s] %s: %s",
            notice.collection or "-",
            notice.kind.value,
            notice.message,
        )


class RecordingNotificationSink:
    """
    Keeps notices in memory, for UIs that render a notice feed.
    """

    def __init__(self):
        self.notices: list[Notice] = []

    def __call__(self, notice: Notice) -> None:
        self.notices.append(notice)

    def kinds(self) -> list[NoticeKind]:
        return [n.kind for n in self.notices]

    def clear(self) -> None:
        self.notices.clear()
