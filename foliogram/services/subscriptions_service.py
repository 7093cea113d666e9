from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..models.db_models import Subscription, User
from .identity import resolve_user


class SubscriptionGraph:
    def __init__(self, session, notifications):
        self.session = session
        self.notifications = notifications

    def _edge(self, subscriber_id, subscribed_to_id):
        return (
            self.session.query(Subscription)
            .filter_by(subscriber_id=subscriber_id, subscribed_to_id=subscribed_to_id)
            .first()
        )

    def subscribe(self, actor, target):
        """Adds actor -> target. Returns the edge, or None for self and unknown targets."""
        if actor is None:
            return None
        target_user = resolve_user(target)
        if target_user is None or target_user.id == actor.user_id:
            current_app.logger.debug(f"Ignoring subscription from {actor.username} to {target}.")
            return None

        existing = self._edge(actor.user_id, target_user.id)
        if existing is not None:
            return existing

        subscription = Subscription(
            subscriber_id=actor.user_id, subscribed_to_id=target_user.id
        )
        self.session.add(subscription)
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(
                f"Error subscribing {actor.username} to {target_user.username}: {e}"
            )
            return None
        current_app.logger.info(f"{actor.username} subscribed to {target_user.username}.")

        self.notifications.notify(
            actor,
            "subscription",
            target_user.username,
            f"{actor.display_name} subscribed to you",
            link=f"/profile/{actor.username}",
        )
        return subscription

    def unsubscribe(self, actor, target):
        if actor is None:
            return False
        target_user = resolve_user(target)
        if target_user is None:
            return False
        existing = self._edge(actor.user_id, target_user.id)
        if existing is None:
            return False
        self.session.delete(existing)
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(
                f"Error unsubscribing {actor.username} from {target_user.username}: {e}"
            )
            return False
        current_app.logger.info(f"{actor.username} unsubscribed from {target_user.username}.")
        return True

    def is_subscribed(self, actor, target):
        if actor is None:
            return False
        target_user = resolve_user(target)
        if target_user is None:
            return False
        return self._edge(actor.user_id, target_user.id) is not None

    def subscribers_of(self, target):
        target_user = resolve_user(target)
        if target_user is None:
            return set()
        rows = (
            self.session.query(User.username)
            .join(Subscription, Subscription.subscriber_id == User.id)
            .filter(Subscription.subscribed_to_id == target_user.id)
            .all()
        )
        return {username for (username,) in rows}

    def subscribed_to_by(self, actor):
        if actor is None:
            return set()
        rows = (
            self.session.query(User.username)
            .join(Subscription, Subscription.subscribed_to_id == User.id)
            .filter(Subscription.subscriber_id == actor.user_id)
            .all()
        )
        return {username for (username,) in rows}
