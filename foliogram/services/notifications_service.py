import queue
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..models.db_models import Notification
from .identity import canonical_identifier, resolve_user

NOTIFICATION_TYPES = (
    "like",
    "comment",
    "reply",
    "share",
    "subscription",
    "mention",
    "appointment",
)

LINK_FIELDS = (
    "post_id",
    "post_title",
    "comment_id",
    "appointment_id",
    "appointment_date",
    "appointment_time",
    "link",
)


def group_by_recency(notifications, now=None, tz=None):
    """Buckets notifications into today, yesterday and earlier.

    Day boundaries are local midnight in ``tz``. Timestamps without tzinfo
    are taken as UTC, which is how the database hands them back.
    """
    tz = tz or timezone.utc
    now = (now or datetime.now(timezone.utc)).astimezone(tz)
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    yesterday_start = today_start - timedelta(days=1)

    groups = {"today": [], "yesterday": [], "earlier": []}
    for notification in notifications:
        timestamp = notification.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        local_timestamp = timestamp.astimezone(tz)
        if local_timestamp >= today_start:
            groups["today"].append(notification)
        elif local_timestamp >= yesterday_start:
            groups["yesterday"].append(notification)
        else:
            groups["earlier"].append(notification)
    return groups


class NotificationFeed:
    def __init__(self, session, queues):
        self.session = session
        self.queues = queues

    def _scoped_query(self, identity):
        keys = list(identity.match_keys)
        return self.session.query(Notification).filter(
            func.lower(Notification.recipient).in_(keys)
        )

    def add_notification(self, data):
        """Stores a notification as given, with a fresh id, timestamp and unread flag."""
        fields = {
            key: value
            for key, value in data.items()
            if key not in ("id", "timestamp", "is_read")
        }
        notification = Notification(
            is_read=False, timestamp=datetime.now(timezone.utc), **fields
        )
        self.session.add(notification)
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(f"Error saving notification {data.get('type')}: {e}")
            return None
        return notification

    def notify(self, actor, notification_type, recipient, message, **links):
        """Sends a notification unless the recipient is blank or is the actor."""
        if notification_type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {notification_type}")
        recipient_key = canonical_identifier(recipient)
        if not recipient_key:
            current_app.logger.debug(
                f"Dropping {notification_type} notification without recipient."
            )
            return None
        if actor is not None and (actor.owns(recipient_key) or actor.owns(recipient)):
            current_app.logger.debug(
                f"Suppressed {notification_type} notification from {actor.username} to self."
            )
            return None

        data = {
            "type": notification_type,
            "recipient": recipient_key,
            "actor": actor.username if actor else None,
            "actor_name": actor.display_name if actor else None,
            "message": message,
        }
        for field in LINK_FIELDS:
            if links.get(field) is not None:
                data[field] = links[field]

        notification = self.add_notification(data)
        if notification is not None:
            current_app.logger.info(
                f"Notification {notification.id} ({notification_type}) sent to {recipient_key}."
            )
            self._dispatch(notification)
        return notification

    def _dispatch(self, notification):
        user = resolve_user(notification.recipient)
        if user is None or user.id not in self.queues:
            current_app.logger.debug(
                f"No active notification streams for {notification.recipient}."
            )
            return
        sse_event_data = {"type": "notification", "payload": notification.to_dict()}
        for q_item in self.queues[user.id]:
            try:
                q_item.put_nowait(sse_event_data)
            except queue.Full:
                current_app.logger.warning(
                    f"SSE queue full for user {user.id}, dropping notification {notification.id}."
                )

    def for_recipient(self, identity):
        return (
            self._scoped_query(identity)
            .order_by(Notification.timestamp.desc(), Notification.id.desc())
            .all()
        )

    def get(self, identity, notification_id):
        notification = self.session.get(Notification, notification_id)
        if notification is None or not identity.owns(notification.recipient):
            return None
        return notification

    def mark_as_read(self, identity, notification_id):
        notification = self.get(identity, notification_id)
        if notification is None:
            return None
        notification.is_read = True
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(f"Error marking notification {notification_id} read: {e}")
            return None
        return notification

    def mark_all_as_read(self, identity):
        notifications = (
            self._scoped_query(identity).filter(Notification.is_read.is_(False)).all()
        )
        for notification in notifications:
            notification.is_read = True
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(
                f"Error marking notifications read for {identity.username}: {e}"
            )
            return 0
        return len(notifications)

    def delete_notification(self, identity, notification_id):
        notification = self.get(identity, notification_id)
        if notification is None:
            return False
        self.session.delete(notification)
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(f"Error deleting notification {notification_id}: {e}")
            return False
        return True

    def clear_all(self, identity):
        notifications = self._scoped_query(identity).all()
        for notification in notifications:
            self.session.delete(notification)
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(
                f"Error clearing notifications for {identity.username}: {e}"
            )
            return 0
        current_app.logger.info(
            f"Cleared {len(notifications)} notifications for {identity.username}."
        )
        return len(notifications)

    def unread_notifications(self, identity):
        return (
            self._scoped_query(identity)
            .filter(Notification.is_read.is_(False))
            .order_by(Notification.timestamp.desc(), Notification.id.desc())
            .all()
        )

    def unread_count(self, identity):
        return (
            self._scoped_query(identity).filter(Notification.is_read.is_(False)).count()
        )

    def grouped_by_recency(self, identity, now=None):
        tz = ZoneInfo(current_app.config.get("NOTIFICATION_TIMEZONE", "UTC"))
        return group_by_recency(self.for_recipient(identity), now=now, tz=tz)
