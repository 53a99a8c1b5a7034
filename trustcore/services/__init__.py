"""
TrustCore - Services Package
============================

Trust-and-safety components and their storage layer.
"""

from trustcore.services.abuse_guard import AbuseGuard
from trustcore.services.classifier import (
    ClassificationResult,
    ContentClassifier,
    OpenAISemanticClassifier,
)
from trustcore.services.moderation_queue import ModerationQueue
from trustcore.services.notifications import NotificationSink
from trustcore.services.reputation import ReputationEngine
from trustcore.services.signals import SignalEscalation

__all__ = [
    "AbuseGuard",
    "ClassificationResult",
    "ContentClassifier",
    "OpenAISemanticClassifier",
    "ModerationQueue",
    "NotificationSink",
    "ReputationEngine",
    "SignalEscalation",
]
