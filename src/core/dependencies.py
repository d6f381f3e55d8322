from src.database.store import RecordStore
from src.services.delivery import DeliveryNotifier
from src.services.follow_up import FollowUpService
from src.services.help_request import HelpRequestService
from src.services.knowledge_base import KnowledgeBaseService, KnowledgeResolver, ResolverConfig
from src.services.notification import NotificationSink, create_notification_sink
from src.services.poller import ResolutionPoller
from src.services.session_directory import SessionDirectory
from .config import settings

# Singleton instances (initialized once per process)
_record_store = None
_kb_service = None
_help_request_service = None
_follow_up_service = None
_session_directory = None
_notification_sink = None
_delivery_notifier = None
_resolution_poller = None


def get_record_store() -> RecordStore:
    global _record_store
    if _record_store is None:
        _record_store = RecordStore(db_path=settings.database_path)
    return _record_store


def get_knowledge_base_service() -> KnowledgeBaseService:
    """
    Dependency for knowledge base service
    Returns singleton instance
    """
    global _kb_service
    if _kb_service is None:
        resolver = KnowledgeResolver(
            ResolverConfig(substring_match_enabled=settings.substring_match_enabled)
        )
        _kb_service = KnowledgeBaseService(get_record_store(), resolver)
    return _kb_service


def get_session_directory() -> SessionDirectory:
    """Live sessions of this process (the voice worker fills it)"""
    global _session_directory
    if _session_directory is None:
        _session_directory = SessionDirectory()
    return _session_directory


def get_notification_sink() -> NotificationSink:
    global _notification_sink
    if _notification_sink is None:
        _notification_sink = create_notification_sink(settings)
    return _notification_sink


def get_delivery_notifier() -> DeliveryNotifier:
    global _delivery_notifier
    if _delivery_notifier is None:
        _delivery_notifier = DeliveryNotifier(get_session_directory())
    return _delivery_notifier


def get_follow_up_service() -> FollowUpService:
    global _follow_up_service
    if _follow_up_service is None:
        _follow_up_service = FollowUpService(get_record_store())
    return _follow_up_service


def get_help_request_service() -> HelpRequestService:
    """
    Dependency for help request service
    Returns singleton instance
    """
    global _help_request_service
    if _help_request_service is None:
        _help_request_service = HelpRequestService(
            store=get_record_store(),
            knowledge_base=get_knowledge_base_service(),
            sink=get_notification_sink(),
            notifier=get_delivery_notifier(),
            timeout_hours=settings.help_request_timeout_hours,
            allow_resolve_non_pending=settings.allow_resolve_non_pending,
            learned_category=settings.learned_category,
            claim_timeout_seconds=settings.delivery_claim_timeout_seconds,
        )
    return _help_request_service


def get_resolution_poller() -> ResolutionPoller:
    global _resolution_poller
    if _resolution_poller is None:
        _resolution_poller = ResolutionPoller(
            help_requests=get_help_request_service(),
            notifier=get_delivery_notifier(),
            follow_ups=get_follow_up_service(),
            sink=get_notification_sink(),
            interval=settings.poll_interval_seconds,
        )
    return _resolution_poller
