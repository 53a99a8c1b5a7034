"""
TrustCore - Combined Database
=============================

SQLite database combining all mixins.
"""

from trustcore.services.db.core import DatabaseCore
from trustcore.services.db.actors import ActorsMixin
from trustcore.services.db.messages import MessagesMixin
from trustcore.services.db.content import ContentMixin
from trustcore.services.db.signals import SignalsMixin
from trustcore.services.db.queue import QueueMixin
from trustcore.services.db.blacklist import BlacklistMixin
from trustcore.services.db.audit import AuditMixin
from trustcore.services.db.notifications import NotificationsMixin
from trustcore.services.db.reputation import ReputationMixin


class TrustDatabase(
    ActorsMixin,
    MessagesMixin,
    ContentMixin,
    SignalsMixin,
    QueueMixin,
    BlacklistMixin,
    AuditMixin,
    NotificationsMixin,
    ReputationMixin,
    DatabaseCore
):
    """
    Complete TrustCore database.

    Inherits from:
    - DatabaseCore: Connection handling, schema, transactions
    - ActorsMixin: Actor directory
    - MessagesMixin: Direct messages and the abuse-rule snapshot
    - ContentMixin: Discussions, comments, reviews
    - SignalsMixin: Raise-hands, reactions, votes
    - QueueMixin: Moderation queue
    - BlacklistMixin: Keyword blacklist
    - AuditMixin: Admin action log
    - NotificationsMixin: Notification inbox
    - ReputationMixin: Reputation persistence
    """

    def __init__(self, db_path: str = "data/trustcore.db") -> None:
        """Initialize database with all mixins."""
        super().__init__(db_path)
