import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from core.application.exceptions import (
    NotFoundError,
    StorageFailureError,
    ValidationFailedError,
)
from notifications.application.rules import (
    AddAudienceRuleRule,
    CreateNotificationRule,
    DeleteAudienceRuleRule,
    DeleteNotificationRule,
    GetUserNotificationRule,
    ListAudienceRulesRule,
    ListNotificationsRule,
    UpdateAudienceRuleRule,
    UpdateNotificationRule,
)
from notifications.domain.entities import (
    AudienceRule,
    AudienceType,
    ConditionLogic,
    NotificationFilters,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)
from notifications.infrastructure.models import (
    Notification,
    NotificationAudienceRule,
    NotificationRecipient,
)


async def count_rows(session, model) -> int:
    return await session.scalar(select(func.count()).select_from(model))


async def create_notification(repository, rules, **fields):
    return await CreateNotificationRule(
        title=fields.pop("title", "Exam schedule published"),
        content=fields.pop("content", "The final exam schedule is now available."),
        audience_rules=rules,
        notification_repository=repository,
        **fields,
    ).execute()


class TestCreateNotification:
    async def test_create_stores_header_and_rules_as_sent(
        self, notification_repository, cs_student_rules, admin_user
    ):
        notification = await create_notification(
            notification_repository,
            cs_student_rules,
            notification_type=NotificationType.EXAM,
            priority=NotificationPriority.HIGH,
            attachments=["https://files.campus.edu/exams.pdf"],
            created_by_user_id=admin_user.id,
        )

        assert notification.id is not None
        assert notification.status == NotificationStatus.SENT
        assert notification.notification_type == NotificationType.EXAM
        assert notification.attachments == ["https://files.campus.edu/exams.pdf"]
        assert notification.created_by_user_id == admin_user.id
        assert [(r.audience_type, r.audience_value) for r in notification.audience_rules] == [
            ("ROLE", "STUDENT"),
            ("MAJOR", "7"),
        ]
        assert all(r.notification_id == notification.id for r in notification.audience_rules)

    async def test_status_is_forced_to_sent(self, notification_repository, everyone_rules):
        notification = await CreateNotificationRule(
            title="Draft?",
            content="Published right away.",
            audience_rules=everyone_rules,
            notification_repository=notification_repository,
        ).execute()

        stored = await notification_repository.get_by_id(notification.id)
        assert stored.status == NotificationStatus.SENT

    async def test_empty_rules_are_rejected_before_any_write(
        self, notification_repository, db_session
    ):
        with pytest.raises(ValidationFailedError):
            await create_notification(notification_repository, [])

        assert await count_rows(db_session, Notification) == 0
        assert await count_rows(db_session, NotificationAudienceRule) == 0

    async def test_more_than_ten_rules_are_rejected(
        self, notification_repository, db_session
    ):
        rules = [
            AudienceRule(audience_type=AudienceType.USER_LIST, audience_value=str(i))
            for i in range(11)
        ]

        with pytest.raises(ValidationFailedError):
            await create_notification(notification_repository, rules)

        assert await count_rows(db_session, Notification) == 0

    @pytest.mark.parametrize(
        "bad_rule",
        [
            AudienceRule(audience_type="CLASS_GROUP", audience_value="1"),
            AudienceRule(audience_type=AudienceType.ROLE, audience_value="WIZARD"),
            AudienceRule(audience_type=AudienceType.ROLE),
            AudienceRule(audience_type=AudienceType.MAJOR, audience_value="seven"),
            AudienceRule(audience_type=AudienceType.USER_LIST, audience_value="1,abc"),
            AudienceRule(audience_type=AudienceType.USER_LIST, audience_value="1" * 501),
        ],
    )
    async def test_malformed_rules_are_rejected(self, notification_repository, bad_rule):
        with pytest.raises(ValidationFailedError):
            await create_notification(notification_repository, [bad_rule])

    async def test_blank_title_is_rejected(self, notification_repository, everyone_rules):
        with pytest.raises(ValidationFailedError):
            await create_notification(notification_repository, everyone_rules, title="  ")

    async def test_failed_rule_insert_rolls_back_header(
        self, notification_repository, everyone_rules, db_session, monkeypatch
    ):
        async def broken_replace(notification_id, rules):
            raise OperationalError(
                "INSERT INTO notification_audience_rule", {}, Exception("disk I/O error")
            )

        monkeypatch.setattr(
            notification_repository._rule_repository, "replace", broken_replace
        )

        with pytest.raises(StorageFailureError) as exc_info:
            await create_notification(notification_repository, everyone_rules)

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert await count_rows(db_session, Notification) == 0


class TestUpdateNotification:
    async def test_none_rules_leave_rules_untouched(
        self, notification_repository, cs_student_rules
    ):
        notification = await create_notification(notification_repository, cs_student_rules)

        updated = await UpdateNotificationRule(
            notification_id=notification.id,
            changes={"title": "Exam schedule updated"},
            audience_rules=None,
            notification_repository=notification_repository,
        ).execute()

        assert updated.title == "Exam schedule updated"
        assert [r.id for r in updated.audience_rules] == [
            r.id for r in notification.audience_rules
        ]

    async def test_non_empty_rules_replace_the_rule_set(
        self, notification_repository, cs_student_rules, db_session
    ):
        notification = await create_notification(notification_repository, cs_student_rules)

        updated = await UpdateNotificationRule(
            notification_id=notification.id,
            changes={},
            audience_rules=[
                AudienceRule(audience_type=AudienceType.ROLE, audience_value="LECTURER")
            ],
            notification_repository=notification_repository,
        ).execute()

        assert [(r.audience_type, r.audience_value) for r in updated.audience_rules] == [
            ("ROLE", "LECTURER")
        ]
        assert await count_rows(db_session, NotificationAudienceRule) == 1

    async def test_empty_rules_clear_all_rules_and_notification_becomes_visible_to_everyone(
        self,
        notification_repository,
        recipient_repository,
        cs_student_rules,
        cs_lecturer,
        db_session,
    ):
        notification = await create_notification(notification_repository, cs_student_rules)

        with pytest.raises(NotFoundError):
            await GetUserNotificationRule(
                notification_id=notification.id,
                user=cs_lecturer,
                notification_repository=notification_repository,
                recipient_repository=recipient_repository,
            ).execute()

        updated = await UpdateNotificationRule(
            notification_id=notification.id,
            changes={},
            audience_rules=[],
            notification_repository=notification_repository,
        ).execute()

        assert updated.audience_rules == []
        assert await count_rows(db_session, NotificationAudienceRule) == 0

        # An empty INCLUDE set is vacuously satisfied.
        item = await GetUserNotificationRule(
            notification_id=notification.id,
            user=cs_lecturer,
            notification_repository=notification_repository,
            recipient_repository=recipient_repository,
        ).execute()
        assert item.notification.id == notification.id

    async def test_header_fields_and_status_can_change(
        self, notification_repository, everyone_rules
    ):
        notification = await create_notification(notification_repository, everyone_rules)

        updated = await UpdateNotificationRule(
            notification_id=notification.id,
            changes={
                "priority": NotificationPriority.LOW,
                "status": NotificationStatus.ARCHIVED_BY_ADMIN,
                "semester_id": 20251,
            },
            notification_repository=notification_repository,
        ).execute()

        assert updated.priority == NotificationPriority.LOW
        assert updated.status == NotificationStatus.ARCHIVED_BY_ADMIN
        assert updated.semester_id == 20251

    async def test_update_of_missing_notification_raises_not_found(
        self, notification_repository
    ):
        with pytest.raises(NotFoundError):
            await UpdateNotificationRule(
                notification_id=404,
                changes={"title": "Nothing"},
                notification_repository=notification_repository,
            ).execute()

    async def test_too_many_rules_on_update_are_rejected_without_changes(
        self, notification_repository, cs_student_rules
    ):
        notification = await create_notification(notification_repository, cs_student_rules)
        rules = [AudienceRule(audience_type=AudienceType.ALL_USERS)] * 11

        with pytest.raises(ValidationFailedError):
            await UpdateNotificationRule(
                notification_id=notification.id,
                changes={"title": "Should not be stored"},
                audience_rules=rules,
                notification_repository=notification_repository,
            ).execute()

        stored = await notification_repository.get_by_id(notification.id)
        assert stored.title == notification.title
        assert len(stored.audience_rules) == 2


class TestListAndDeleteNotifications:
    async def test_admin_listing_filters_and_paginates(
        self, notification_repository, everyone_rules
    ):
        for index in range(3):
            await create_notification(
                notification_repository,
                everyone_rules,
                title=f"Fee reminder {index}",
                notification_type=NotificationType.FEE,
            )
        await create_notification(
            notification_repository,
            everyone_rules,
            title="Campus festival",
            notification_type=NotificationType.EVENT,
        )

        notifications, total = await ListNotificationsRule(
            filters=NotificationFilters(notification_type=NotificationType.FEE),
            notification_repository=notification_repository,
            page=1,
            limit=2,
        ).execute()

        assert total == 3
        assert len(notifications) == 2
        assert all(n.notification_type == NotificationType.FEE for n in notifications)
        assert all(n.audience_rules for n in notifications)

        searched, total = await ListNotificationsRule(
            filters=NotificationFilters(search="festival"),
            notification_repository=notification_repository,
        ).execute()
        assert total == 1
        assert searched[0].title == "Campus festival"

    async def test_delete_cascades_rules_and_recipients(
        self,
        notification_repository,
        recipient_repository,
        everyone_rules,
        cs_student,
        db_session,
    ):
        notification = await create_notification(notification_repository, everyone_rules)
        await recipient_repository.mark_read(notification, cs_student.id)

        await DeleteNotificationRule(
            notification_id=notification.id,
            notification_repository=notification_repository,
        ).execute()

        assert await count_rows(db_session, Notification) == 0
        assert await count_rows(db_session, NotificationAudienceRule) == 0
        assert await count_rows(db_session, NotificationRecipient) == 0

    async def test_delete_of_missing_notification_raises_not_found(
        self, notification_repository
    ):
        with pytest.raises(NotFoundError):
            await DeleteNotificationRule(
                notification_id=404, notification_repository=notification_repository
            ).execute()


class TestAudienceRuleMaintenance:
    async def test_exclude_rules_are_stored_and_listed(
        self, notification_repository, everyone_rules
    ):
        rules = everyone_rules + [
            AudienceRule(
                audience_type=AudienceType.ROLE,
                audience_value="GUEST",
                condition_logic=ConditionLogic.EXCLUDE,
            )
        ]
        notification = await create_notification(notification_repository, rules)

        listed = await ListAudienceRulesRule(
            notification_id=notification.id,
            notification_repository=notification_repository,
        ).execute()

        assert [r.condition_logic for r in listed] == [
            ConditionLogic.INCLUDE,
            ConditionLogic.EXCLUDE,
        ]

    async def test_stored_rule_with_unknown_condition_loads_as_exclude(
        self,
        notification_repository,
        recipient_repository,
        cs_student_rules,
        cs_student,
        db_session,
    ):
        notification = await create_notification(notification_repository, cs_student_rules)
        db_session.add(
            NotificationAudienceRule(
                notification_id=notification.id,
                audience_type="ROLE",
                audience_value="LECTURER",
                condition_logic="MAYBE",
            )
        )
        await db_session.commit()

        stored = await notification_repository.get_by_id(notification.id)
        item = await GetUserNotificationRule(
            notification_id=notification.id,
            user=cs_student,
            notification_repository=notification_repository,
            recipient_repository=recipient_repository,
        ).execute()

        assert stored.audience_rules[-1].condition_logic == ConditionLogic.EXCLUDE
        assert item.notification.id == notification.id

    async def test_add_update_and_delete_single_rule(
        self, notification_repository, rule_repository, everyone_rules
    ):
        notification = await create_notification(notification_repository, everyone_rules)

        added = await AddAudienceRuleRule(
            notification_id=notification.id,
            audience_rule=AudienceRule(
                audience_type=AudienceType.ROLE, audience_value="STUDENT"
            ),
            notification_repository=notification_repository,
            rule_repository=rule_repository,
        ).execute()
        assert added.id is not None

        updated = await UpdateAudienceRuleRule(
            notification_id=notification.id,
            rule_id=added.id,
            changes={"audience_value": "LECTURER"},
            notification_repository=notification_repository,
            rule_repository=rule_repository,
        ).execute()
        assert updated.audience_value == "LECTURER"

        await DeleteAudienceRuleRule(
            notification_id=notification.id,
            rule_id=added.id,
            notification_repository=notification_repository,
            rule_repository=rule_repository,
        ).execute()

        remaining = await rule_repository.list_for(notification.id)
        assert [r.audience_type for r in remaining] == ["ALL_USERS"]

    async def test_add_rule_beyond_limit_is_rejected(
        self, notification_repository, rule_repository
    ):
        rules = [
            AudienceRule(audience_type=AudienceType.USER_LIST, audience_value=str(i))
            for i in range(10)
        ]
        notification = await create_notification(notification_repository, rules)

        with pytest.raises(ValidationFailedError):
            await AddAudienceRuleRule(
                notification_id=notification.id,
                audience_rule=AudienceRule(audience_type=AudienceType.ALL_USERS),
                notification_repository=notification_repository,
                rule_repository=rule_repository,
            ).execute()

    async def test_invalid_rule_update_is_rejected(
        self, notification_repository, rule_repository, cs_student_rules
    ):
        notification = await create_notification(notification_repository, cs_student_rules)
        major_rule = notification.audience_rules[1]

        with pytest.raises(ValidationFailedError):
            await UpdateAudienceRuleRule(
                notification_id=notification.id,
                rule_id=major_rule.id,
                changes={"audience_value": "computer science"},
                notification_repository=notification_repository,
                rule_repository=rule_repository,
            ).execute()

    async def test_rule_of_another_notification_is_not_found(
        self, notification_repository, rule_repository, everyone_rules
    ):
        first = await create_notification(notification_repository, everyone_rules)
        second = await create_notification(notification_repository, everyone_rules)

        with pytest.raises(NotFoundError):
            await rule_repository.get(second.id, first.audience_rules[0].id)
