from .knowledge_base import KnowledgeBaseService, KnowledgeResolver, ResolverConfig
from .help_request import HelpRequestService, ResolutionResult
from .delivery import DeliveryNotifier
from .follow_up import FollowUpService
from .notification import (
    LoggingNotificationSink,
    NotificationSink,
    WebhookNotificationSink,
    create_notification_sink,
)
from .poller import ResolutionPoller
from .session_directory import LiveSession, SessionDirectory

__all__ = [
    "KnowledgeBaseService",
    "KnowledgeResolver",
    "ResolverConfig",
    "HelpRequestService",
    "ResolutionResult",
    "DeliveryNotifier",
    "FollowUpService",
    "NotificationSink",
    "LoggingNotificationSink",
    "WebhookNotificationSink",
    "create_notification_sink",
    "ResolutionPoller",
    "LiveSession",
    "SessionDirectory",
]
