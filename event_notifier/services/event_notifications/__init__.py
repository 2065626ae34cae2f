from .candidate_finder import CandidateFinder
from .composer import compose
from .config import EventNotificationConfig
from .dispatcher import BatchDispatcher
from .eligibility import EligibilityFilter, ExclusionReason, hour_in_window
from .history_recorder import HistoryRecorder
from .pipeline import EventNotificationPipeline
from .push_gateway import ExpoPushGateway, PushGateway
from .quota_tracker import QuotaTracker
from .trigger import TriggerAdapter, TriggerState

__all__ = [
    "CandidateFinder",
    "compose",
    "EventNotificationConfig",
    "BatchDispatcher",
    "EligibilityFilter",
    "ExclusionReason",
    "hour_in_window",
    "HistoryRecorder",
    "EventNotificationPipeline",
    "ExpoPushGateway",
    "PushGateway",
    "QuotaTracker",
    "TriggerAdapter",
    "TriggerState",
]
