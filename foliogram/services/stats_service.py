from sqlalchemy import func

from .. import db
from ..models.db_models import Comment, Like, Portfolio, Post, Subscription


def get_user_stats(identity, services):
    """Dashboard numbers for one user."""
    session = db.session
    likes_received = (
        session.query(func.count(Like.id))
        .join(Post, Like.post_id == Post.id)
        .filter(Post.user_id == identity.user_id, Like.user_id != identity.user_id)
        .scalar()
    )
    comments_received = (
        session.query(func.count(Comment.id))
        .join(Post, Comment.post_id == Post.id)
        .filter(Post.user_id == identity.user_id, Comment.user_id != identity.user_id)
        .scalar()
    )
    shares_received = (
        session.query(func.coalesce(func.sum(Post.share_count), 0))
        .filter(Post.user_id == identity.user_id)
        .scalar()
    )
    portfolio_views = (
        session.query(func.coalesce(func.sum(Portfolio.view_count), 0))
        .filter(Portfolio.user_id == identity.user_id)
        .scalar()
    )
    pending_appointments = [
        record
        for record in services.appointments.received_for(identity)
        if record["status"] == "pending"
    ]

    return {
        "posts_count": Post.query.filter_by(user_id=identity.user_id).count(),
        "likes_received_count": likes_received or 0,
        "comments_received_count": comments_received or 0,
        "shares_received_count": int(shares_received or 0),
        "subscribers_count": Subscription.query.filter_by(
            subscribed_to_id=identity.user_id
        ).count(),
        "subscriptions_count": Subscription.query.filter_by(
            subscriber_id=identity.user_id
        ).count(),
        "unread_notifications_count": services.notifications.unread_count(identity),
        "portfolios_count": Portfolio.query.filter_by(user_id=identity.user_id).count(),
        "portfolio_views_count": int(portfolio_views or 0),
        "pending_appointments_count": len(pending_appointments),
    }
