import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from core.application.exceptions import (
    NotFoundError,
    StorageFailureError,
    ValidationFailedError,
)
from notifications.application.rules import (
    ArchiveNotificationRule,
    CreateNotificationRule,
    DismissNotificationRule,
    GetUnreadCountRule,
    GetUserNotificationRule,
    GetUserNotificationsRule,
    ListNotificationRecipientsRule,
    MarkNotificationReadRule,
    PinNotificationRule,
    UpdateNotificationRule,
)
from notifications.domain.entities import (
    AudienceRule,
    AudienceType,
    NotificationFilters,
    NotificationPriority,
    NotificationStatus,
    RecipientStatus,
)
from notifications.infrastructure.models import NotificationRecipient
from notifications.infrastructure.repositories import NotificationRecipientRepository


async def count_recipients(session) -> int:
    return await session.scalar(select(func.count()).select_from(NotificationRecipient))


async def publish(notification_repository, rules, title="Library closed on Friday", **fields):
    return await CreateNotificationRule(
        title=title,
        content="The main library will be closed for maintenance.",
        audience_rules=rules,
        notification_repository=notification_repository,
        **fields,
    ).execute()


def feed_rule(user, notification_repository, rule_repository, recipient_repository, **kwargs):
    return GetUserNotificationsRule(
        user=user,
        notification_repository=notification_repository,
        rule_repository=rule_repository,
        recipient_repository=recipient_repository,
        **kwargs,
    )


class TestMarkRead:
    async def test_first_read_creates_record(
        self, notification_repository, recipient_repository, everyone_rules, cs_student
    ):
        notification = await publish(notification_repository, everyone_rules)

        recipient = await MarkNotificationReadRule(
            notification_id=notification.id,
            user=cs_student,
            notification_repository=notification_repository,
            recipient_repository=recipient_repository,
        ).execute()

        assert recipient.id is not None
        assert recipient.status == RecipientStatus.READ
        assert recipient.read_at is not None
        assert recipient.recipient_user_id == cs_student.id
        assert recipient.is_pinned is False

    async def test_mark_read_is_idempotent(
        self,
        notification_repository,
        recipient_repository,
        everyone_rules,
        cs_student,
        db_session,
    ):
        notification = await publish(notification_repository, everyone_rules)

        first = await recipient_repository.mark_read(notification, cs_student.id)
        second = await recipient_repository.mark_read(notification, cs_student.id)

        assert second.id == first.id
        assert second.status == RecipientStatus.READ
        assert second.read_at == first.read_at
        assert await count_recipients(db_session) == 1

    async def test_reading_a_dismissed_notification_keeps_it_dismissed(
        self, notification_repository, recipient_repository, everyone_rules, cs_student
    ):
        notification = await publish(notification_repository, everyone_rules)
        await recipient_repository.set_status(
            notification, cs_student.id, RecipientStatus.DISMISSED
        )

        recipient = await recipient_repository.mark_read(notification, cs_student.id)

        assert recipient.status == RecipientStatus.DISMISSED
        assert recipient.read_at is None

    async def test_invisible_notification_cannot_be_read(
        self,
        notification_repository,
        recipient_repository,
        cs_student_rules,
        math_student,
        db_session,
    ):
        notification = await publish(notification_repository, cs_student_rules)

        with pytest.raises(NotFoundError):
            await MarkNotificationReadRule(
                notification_id=notification.id,
                user=math_student,
                notification_repository=notification_repository,
                recipient_repository=recipient_repository,
            ).execute()

        assert await count_recipients(db_session) == 0

    async def test_unsent_notification_cannot_be_read(
        self, notification_repository, recipient_repository, everyone_rules, cs_student
    ):
        notification = await publish(notification_repository, everyone_rules)
        await UpdateNotificationRule(
            notification_id=notification.id,
            changes={"status": NotificationStatus.DRAFT},
            notification_repository=notification_repository,
        ).execute()

        with pytest.raises(NotFoundError):
            await MarkNotificationReadRule(
                notification_id=notification.id,
                user=cs_student,
                notification_repository=notification_repository,
                recipient_repository=recipient_repository,
            ).execute()

    async def test_missing_notification_raises_not_found(
        self, notification_repository, recipient_repository, cs_student
    ):
        with pytest.raises(NotFoundError):
            await MarkNotificationReadRule(
                notification_id=999,
                user=cs_student,
                notification_repository=notification_repository,
                recipient_repository=recipient_repository,
            ).execute()


class TestConcurrentFirstAction:
    async def test_concurrent_first_reads_store_one_record(
        self, engine, notification_repository, everyone_rules, cs_student, db_session
    ):
        notification = await publish(notification_repository, everyone_rules)

        async with AsyncSession(bind=engine, expire_on_commit=False) as first_session:
            async with AsyncSession(
                bind=engine, expire_on_commit=False
            ) as second_session:
                first, second = await asyncio.gather(
                    NotificationRecipientRepository(first_session).mark_read(
                        notification, cs_student.id
                    ),
                    NotificationRecipientRepository(second_session).mark_read(
                        notification, cs_student.id
                    ),
                )

        assert first.id == second.id
        assert first.status == second.status == RecipientStatus.READ
        assert await count_recipients(db_session) == 1

    async def test_duplicate_insert_falls_back_to_stored_record(
        self, engine, notification_repository, everyone_rules, cs_student, db_session
    ):
        notification = await publish(notification_repository, everyone_rules)

        async with AsyncSession(bind=engine, expire_on_commit=False) as other_session:
            stored = await NotificationRecipientRepository(other_session).mark_read(
                notification, cs_student.id
            )

        late_repository = NotificationRecipientRepository(db_session)
        real_get_row = late_repository._get_row
        lookups = []

        async def stale_get_row(notification_id, user_id):
            lookups.append((notification_id, user_id))
            if len(lookups) == 1:
                return None
            return await real_get_row(notification_id, user_id)

        late_repository._get_row = stale_get_row

        recipient = await late_repository.set_pinned(notification, cs_student.id, True)

        assert len(lookups) == 2
        assert recipient.id == stored.id
        assert recipient.status == RecipientStatus.READ
        assert recipient.is_pinned is True
        assert await count_recipients(db_session) == 1

    async def test_storage_error_on_first_insert_is_wrapped_and_rolled_back(
        self,
        notification_repository,
        recipient_repository,
        everyone_rules,
        cs_student,
        db_session,
        monkeypatch,
    ):
        notification = await publish(notification_repository, everyone_rules)
        real_rollback = db_session.rollback
        rollbacks = []

        async def locked_commit():
            raise OperationalError(
                "INSERT INTO notification_recipient", {}, Exception("database is locked")
            )

        async def tracked_rollback():
            rollbacks.append(True)
            await real_rollback()

        monkeypatch.setattr(db_session, "commit", locked_commit)
        monkeypatch.setattr(db_session, "rollback", tracked_rollback)

        with pytest.raises(StorageFailureError) as exc_info:
            await recipient_repository.mark_read(notification, cs_student.id)

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert rollbacks == [True]

        monkeypatch.undo()
        assert await count_recipients(db_session) == 0


class TestUserActions:
    async def test_dismiss_sets_timestamp(
        self, notification_repository, recipient_repository, everyone_rules, cs_student
    ):
        notification = await publish(notification_repository, everyone_rules)

        recipient = await DismissNotificationRule(
            notification_id=notification.id,
            user=cs_student,
            notification_repository=notification_repository,
            recipient_repository=recipient_repository,
        ).execute()

        assert recipient.status == RecipientStatus.DISMISSED
        assert recipient.dismissed_at is not None

    async def test_archive_after_read_keeps_read_at(
        self, notification_repository, recipient_repository, everyone_rules, cs_student
    ):
        notification = await publish(notification_repository, everyone_rules)
        read = await recipient_repository.mark_read(notification, cs_student.id)

        recipient = await ArchiveNotificationRule(
            notification_id=notification.id,
            user=cs_student,
            notification_repository=notification_repository,
            recipient_repository=recipient_repository,
        ).execute()

        assert recipient.id == read.id
        assert recipient.status == RecipientStatus.ARCHIVED_BY_USER
        assert recipient.read_at == read.read_at

    async def test_pin_then_unpin(
        self, notification_repository, recipient_repository, everyone_rules, cs_student
    ):
        notification = await publish(notification_repository, everyone_rules)

        def pin(is_pinned):
            return PinNotificationRule(
                notification_id=notification.id,
                user=cs_student,
                is_pinned=is_pinned,
                notification_repository=notification_repository,
                recipient_repository=recipient_repository,
            ).execute()

        pinned = await pin(True)
        assert pinned.is_pinned is True
        assert pinned.status == RecipientStatus.UNREAD

        unpinned = await pin(False)
        assert unpinned.id == pinned.id
        assert unpinned.is_pinned is False

    async def test_unpin_without_record_stores_nothing(
        self,
        notification_repository,
        recipient_repository,
        everyone_rules,
        cs_student,
        db_session,
    ):
        notification = await publish(notification_repository, everyone_rules)

        recipient = await recipient_repository.set_pinned(
            notification, cs_student.id, False
        )

        assert recipient.id is None
        assert recipient.status == RecipientStatus.UNREAD
        assert await count_recipients(db_session) == 0

    async def test_set_status_rejects_non_terminal_states(
        self, notification_repository, recipient_repository, everyone_rules, cs_student
    ):
        notification = await publish(notification_repository, everyone_rules)

        with pytest.raises(ValidationFailedError):
            await recipient_repository.set_status(
                notification, cs_student.id, RecipientStatus.UNREAD
            )


class TestFeed:
    async def test_no_records_are_created_at_send_time(
        self,
        notification_repository,
        rule_repository,
        recipient_repository,
        everyone_rules,
        cs_student,
        db_session,
    ):
        await publish(notification_repository, everyone_rules)

        assert await count_recipients(db_session) == 0

        items, total = await feed_rule(
            cs_student, notification_repository, rule_repository, recipient_repository
        ).execute()

        assert total == 1
        assert items[0].recipient_status == RecipientStatus.UNREAD
        assert items[0].read_at is None
        assert items[0].is_pinned is False
        assert await count_recipients(db_session) == 0

    async def test_feed_only_holds_visible_sent_notifications(
        self,
        notification_repository,
        rule_repository,
        recipient_repository,
        everyone_rules,
        cs_student_rules,
        cs_student,
        math_student,
    ):
        for_everyone = await publish(notification_repository, everyone_rules, title="Everyone")
        for_cs = await publish(notification_repository, cs_student_rules, title="CS only")
        withdrawn = await publish(notification_repository, everyone_rules, title="Withdrawn")
        await UpdateNotificationRule(
            notification_id=withdrawn.id,
            changes={"status": NotificationStatus.ARCHIVED_BY_ADMIN},
            notification_repository=notification_repository,
        ).execute()

        cs_items, cs_total = await feed_rule(
            cs_student, notification_repository, rule_repository, recipient_repository
        ).execute()
        math_items, math_total = await feed_rule(
            math_student, notification_repository, rule_repository, recipient_repository
        ).execute()

        assert cs_total == 2
        assert [item.notification.id for item in cs_items] == [for_cs.id, for_everyone.id]
        assert math_total == 1
        assert [item.notification.id for item in math_items] == [for_everyone.id]

    async def test_recipient_status_filter_treats_missing_records_as_unread(
        self,
        notification_repository,
        rule_repository,
        recipient_repository,
        everyone_rules,
        cs_student,
    ):
        unread = await publish(notification_repository, everyone_rules, title="Unread")
        read = await publish(notification_repository, everyone_rules, title="Read")
        await recipient_repository.mark_read(read, cs_student.id)

        unread_items, unread_total = await feed_rule(
            cs_student,
            notification_repository,
            rule_repository,
            recipient_repository,
            recipient_status=RecipientStatus.UNREAD,
        ).execute()
        read_items, read_total = await feed_rule(
            cs_student,
            notification_repository,
            rule_repository,
            recipient_repository,
            recipient_status=RecipientStatus.READ,
        ).execute()

        assert unread_total == 1
        assert unread_items[0].notification.id == unread.id
        assert read_total == 1
        assert read_items[0].notification.id == read.id
        assert read_items[0].read_at is not None

    async def test_header_filters_apply_to_feed(
        self,
        notification_repository,
        rule_repository,
        recipient_repository,
        everyone_rules,
        cs_student,
    ):
        await publish(
            notification_repository,
            everyone_rules,
            title="Tuition deadline",
            priority=NotificationPriority.HIGH,
        )
        await publish(notification_repository, everyone_rules, title="Sports day")

        items, total = await feed_rule(
            cs_student,
            notification_repository,
            rule_repository,
            recipient_repository,
            filters=NotificationFilters(priority=NotificationPriority.HIGH),
        ).execute()
        assert total == 1
        assert items[0].notification.title == "Tuition deadline"

        items, total = await feed_rule(
            cs_student,
            notification_repository,
            rule_repository,
            recipient_repository,
            filters=NotificationFilters(search="sports"),
        ).execute()
        assert total == 1
        assert items[0].notification.title == "Sports day"

    async def test_search_matches_wildcards_literally(
        self,
        notification_repository,
        rule_repository,
        recipient_repository,
        everyone_rules,
        cs_student,
    ):
        await publish(notification_repository, everyone_rules, title="Fees due 100%")
        await publish(notification_repository, everyone_rules, title="Exam week")
        await publish(notification_repository, everyone_rules, title="Lab_2 moved")

        for term, expected in (("%", "Fees due 100%"), ("_", "Lab_2 moved")):
            items, total = await feed_rule(
                cs_student,
                notification_repository,
                rule_repository,
                recipient_repository,
                filters=NotificationFilters(search=term),
            ).execute()

            assert total == 1
            assert items[0].notification.title == expected

    async def test_pinned_notifications_come_first(
        self,
        notification_repository,
        rule_repository,
        recipient_repository,
        everyone_rules,
        cs_student,
    ):
        oldest = await publish(notification_repository, everyone_rules, title="Oldest")
        middle = await publish(notification_repository, everyone_rules, title="Middle")
        newest = await publish(notification_repository, everyone_rules, title="Newest")
        await recipient_repository.set_pinned(oldest, cs_student.id, True)

        items, total = await feed_rule(
            cs_student, notification_repository, rule_repository, recipient_repository
        ).execute()

        assert total == 3
        assert [item.notification.id for item in items] == [
            oldest.id,
            newest.id,
            middle.id,
        ]
        assert items[0].is_pinned is True

        first_page, _ = await feed_rule(
            cs_student,
            notification_repository,
            rule_repository,
            recipient_repository,
            limit=1,
        ).execute()
        assert [item.notification.id for item in first_page] == [oldest.id]

    async def test_is_pinned_filter(
        self,
        notification_repository,
        rule_repository,
        recipient_repository,
        everyone_rules,
        cs_student,
    ):
        pinned = await publish(notification_repository, everyone_rules, title="Pinned")
        unpinned = await publish(notification_repository, everyone_rules, title="Plain")
        await recipient_repository.set_pinned(pinned, cs_student.id, True)

        pinned_items, pinned_total = await feed_rule(
            cs_student,
            notification_repository,
            rule_repository,
            recipient_repository,
            is_pinned=True,
        ).execute()
        unpinned_items, unpinned_total = await feed_rule(
            cs_student,
            notification_repository,
            rule_repository,
            recipient_repository,
            is_pinned=False,
        ).execute()

        assert pinned_total == 1
        assert pinned_items[0].notification.id == pinned.id
        assert unpinned_total == 1
        assert unpinned_items[0].notification.id == unpinned.id

    async def test_pagination_counts_only_visible_items(
        self,
        notification_repository,
        rule_repository,
        recipient_repository,
        everyone_rules,
        cs_student_rules,
        math_student,
    ):
        for index in range(3):
            await publish(notification_repository, everyone_rules, title=f"Public {index}")
        for index in range(4):
            await publish(notification_repository, cs_student_rules, title=f"CS {index}")

        first_page, total = await feed_rule(
            math_student,
            notification_repository,
            rule_repository,
            recipient_repository,
            page=1,
            limit=2,
        ).execute()
        second_page, _ = await feed_rule(
            math_student,
            notification_repository,
            rule_repository,
            recipient_repository,
            page=2,
            limit=2,
        ).execute()

        assert total == 3
        assert len(first_page) == 2
        assert len(second_page) == 1
        assert all(item.notification.title.startswith("Public") for item in first_page + second_page)

    async def test_single_notification_view_carries_recipient_state(
        self, notification_repository, recipient_repository, everyone_rules, cs_student
    ):
        notification = await publish(notification_repository, everyone_rules)
        await recipient_repository.set_pinned(notification, cs_student.id, True)

        item = await GetUserNotificationRule(
            notification_id=notification.id,
            user=cs_student,
            notification_repository=notification_repository,
            recipient_repository=recipient_repository,
        ).execute()

        assert item.notification.id == notification.id
        assert item.is_pinned is True
        assert item.recipient_status == RecipientStatus.UNREAD


class TestUnreadCount:
    async def test_counts_visible_unread_notifications(
        self,
        notification_repository,
        rule_repository,
        recipient_repository,
        everyone_rules,
        cs_student_rules,
        cs_student,
        math_student,
    ):
        first = await publish(notification_repository, everyone_rules)
        await publish(notification_repository, everyone_rules)
        await publish(notification_repository, cs_student_rules)
        await recipient_repository.mark_read(first, cs_student.id)

        def unread_count(user):
            return GetUnreadCountRule(
                user=user,
                notification_repository=notification_repository,
                rule_repository=rule_repository,
                recipient_repository=recipient_repository,
            ).execute()

        assert await unread_count(cs_student) == 2
        assert await unread_count(math_student) == 2

    async def test_user_list_targets_only_listed_users(
        self,
        notification_repository,
        rule_repository,
        recipient_repository,
        cs_student,
        math_student,
    ):
        await publish(
            notification_repository,
            [
                AudienceRule(
                    audience_type=AudienceType.USER_LIST,
                    audience_value=f"{cs_student.id}, 9999",
                )
            ],
        )

        def unread_count(user):
            return GetUnreadCountRule(
                user=user,
                notification_repository=notification_repository,
                rule_repository=rule_repository,
                recipient_repository=recipient_repository,
            ).execute()

        assert await unread_count(cs_student) == 1
        assert await unread_count(math_student) == 0


class TestRecipientListing:
    async def test_lists_stored_records_only(
        self,
        notification_repository,
        recipient_repository,
        everyone_rules,
        cs_student,
        math_student,
        cs_lecturer,
    ):
        notification = await publish(notification_repository, everyone_rules)
        await recipient_repository.mark_read(notification, cs_student.id)
        await recipient_repository.set_status(
            notification, math_student.id, RecipientStatus.DISMISSED
        )

        recipients, total = await ListNotificationRecipientsRule(
            notification_id=notification.id,
            notification_repository=notification_repository,
            recipient_repository=recipient_repository,
        ).execute()

        assert total == 2
        assert {r.recipient_user_id for r in recipients} == {
            cs_student.id,
            math_student.id,
        }

    async def test_missing_notification_raises_not_found(
        self, notification_repository, recipient_repository
    ):
        with pytest.raises(NotFoundError):
            await ListNotificationRecipientsRule(
                notification_id=999,
                notification_repository=notification_repository,
                recipient_repository=recipient_repository,
            ).execute()
