from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence, Tuple

from ..domain.entities import AudienceRule as DomainAudienceRule
from ..domain.entities import Notification as DomainNotification
from ..domain.entities import NotificationFilters
from ..domain.entities import Recipient as DomainRecipient
from ..domain.entities import RecipientStatus


class AudienceRuleRepository(ABC):
    """Abstract base class for audience rule storage.

    Pure data access: business validation (rule count, value shape) happens
    before these methods are called.
    """

    @abstractmethod
    async def replace(
        self, notification_id: int, rules: Sequence[DomainAudienceRule]
    ) -> List[DomainAudienceRule]:
        """Replace the full rule set of a notification.

        Runs inside the caller's transaction and does not commit.

        Parameters
        ----------
        notification_id : int
            Owning notification.
        rules : Sequence[DomainAudienceRule]
            New rule set; empty clears all rules.

        Returns
        -------
        List[DomainAudienceRule]
            Rules as stored (ids assigned after flush).
        """
        pass

    @abstractmethod
    async def list_for(self, notification_id: int) -> List[DomainAudienceRule]:
        """Return the rules of a notification ordered by id."""
        pass

    @abstractmethod
    async def list_for_many(
        self, notification_ids: Sequence[int], include_only: bool = True
    ) -> Dict[int, List[DomainAudienceRule]]:
        """Return rules of many notifications grouped by notification id.

        Parameters
        ----------
        notification_ids : Sequence[int]
            Notifications to load rules for.
        include_only : bool, default=True
            Only load INCLUDE rules.

        Returns
        -------
        Dict[int, List[DomainAudienceRule]]
            Rules keyed by notification id; notifications without rules are absent.
        """
        pass

    @abstractmethod
    async def get(self, notification_id: int, rule_id: int) -> DomainAudienceRule:
        """Return one rule of a notification; raises NotFoundError if absent."""
        pass

    @abstractmethod
    async def add(
        self, notification_id: int, rule: DomainAudienceRule
    ) -> DomainAudienceRule:
        """Attach a single rule to a notification and commit."""
        pass

    @abstractmethod
    async def update(
        self, notification_id: int, rule_id: int, changes: Dict[str, Any]
    ) -> DomainAudienceRule:
        """Apply field changes to one rule and commit."""
        pass

    @abstractmethod
    async def delete(self, notification_id: int, rule_id: int) -> None:
        """Delete one rule and commit; raises NotFoundError if absent."""
        pass


class NotificationRepository(ABC):
    """Abstract base class for notification header storage."""

    @abstractmethod
    async def create(
        self, notification: DomainNotification, rules: Sequence[DomainAudienceRule]
    ) -> DomainNotification:
        """Store a notification with status SENT and its rules in one transaction.

        Parameters
        ----------
        notification : DomainNotification
            Header to store.
        rules : Sequence[DomainAudienceRule]
            Audience rules to attach.

        Returns
        -------
        DomainNotification
            Created notification with ID and rules.
        """
        pass

    @abstractmethod
    async def update(
        self,
        notification_id: int,
        changes: Dict[str, Any],
        rules: Sequence[DomainAudienceRule] | None = None,
    ) -> DomainNotification:
        """Update header fields and optionally replace rules atomically.

        Parameters
        ----------
        notification_id : int
            Notification to update.
        changes : Dict[str, Any]
            Header fields to overwrite.
        rules : Sequence[DomainAudienceRule] | None
            None leaves rules untouched; an empty sequence clears them;
            otherwise the rule set is replaced.

        Returns
        -------
        DomainNotification
            Updated notification with its rules.
        """
        pass

    @abstractmethod
    async def get_by_id(
        self, notification_id: int, with_rules: bool = True
    ) -> DomainNotification:
        """Retrieve a notification; raises NotFoundError if absent."""
        pass

    @abstractmethod
    async def list(
        self, filters: NotificationFilters, limit: int = 10, offset: int = 0
    ) -> Tuple[List[DomainNotification], int]:
        """Admin listing: page of notifications with their rules, and the total."""
        pass

    @abstractmethod
    async def list_sent_ids(self, filters: NotificationFilters) -> List[int]:
        """Return ids of all SENT notifications matching header filters, newest first."""
        pass

    @abstractmethod
    async def get_many(
        self, notification_ids: Sequence[int]
    ) -> Dict[int, DomainNotification]:
        """Load headers (without rules) of the given notifications, keyed by id."""
        pass

    @abstractmethod
    async def delete(self, notification_id: int) -> None:
        """Delete a notification with its rules and recipient records."""
        pass


class NotificationRecipientRepository(ABC):
    """Abstract base class for sparse per-user delivery records."""

    @abstractmethod
    async def get(
        self, notification_id: int, user_id: int
    ) -> DomainRecipient | None:
        """Return the user's record for a notification, or None when absent."""
        pass

    @abstractmethod
    async def get_many(
        self, notification_ids: Sequence[int], user_id: int
    ) -> Dict[int, DomainRecipient]:
        """Return the user's records for many notifications, keyed by notification id."""
        pass

    @abstractmethod
    async def mark_read(
        self, notification: DomainNotification, user_id: int
    ) -> DomainRecipient:
        """Idempotently move the user's state to READ, creating the record if needed."""
        pass

    @abstractmethod
    async def set_status(
        self,
        notification: DomainNotification,
        user_id: int,
        status: RecipientStatus,
    ) -> DomainRecipient:
        """Move the user's state to DISMISSED or ARCHIVED_BY_USER."""
        pass

    @abstractmethod
    async def set_pinned(
        self, notification: DomainNotification, user_id: int, is_pinned: bool
    ) -> DomainRecipient:
        """Pin or unpin a notification for the user."""
        pass

    @abstractmethod
    async def list_for_notification(
        self, notification_id: int, limit: int = 10, offset: int = 0
    ) -> Tuple[List[DomainRecipient], int]:
        """Page of existing records of a notification, newest first, and the total."""
        pass
