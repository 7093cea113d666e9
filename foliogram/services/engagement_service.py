from datetime import datetime, timezone

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..models.db_models import Comment, Like, Post, Reply
from .identity import canonical_identifier


def _clean_list(values):
    return [value for value in (values or []) if value]


class EngagementLedger:
    """Posts and everything users do to them.

    Each operation takes the acting ``Identity`` (``None`` when anonymous).
    Unknown ids are ignored: the operation returns ``None`` or ``False``.
    """

    def __init__(self, session, notifications):
        self.session = session
        self.notifications = notifications

    def _commit(self, action):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(f"Error while trying to {action}: {e}")
            return False
        return True

    def get_post(self, post_id):
        return self.session.get(Post, post_id)

    def list_posts(self, author=None):
        query = self.session.query(Post)
        if author is not None:
            query = query.filter(Post.user_id == author.user_id)
        return query.order_by(Post.timestamp.desc(), Post.id.desc()).all()

    def create_post(
        self, actor, title, content, tagged_users=None, images=None, videos=None
    ):
        if actor is None:
            current_app.logger.debug("Ignoring post creation without a user.")
            return None

        tagged = []
        for identifier in _clean_list(tagged_users):
            key = canonical_identifier(identifier)
            if key and key not in tagged:
                tagged.append(key)

        post = Post(
            title=title,
            content=content,
            user_id=actor.user_id,
            tagged_users=tagged,
            images=_clean_list(images),
            videos=_clean_list(videos),
        )
        self.session.add(post)
        if not self._commit(f"create post for {actor.username}"):
            return None
        current_app.logger.info(f"Post {post.id} created by {actor.username}.")

        for identifier in tagged:
            self.notifications.notify(
                actor,
                "mention",
                identifier,
                f"{actor.display_name} mentioned you in a post",
                post_id=post.id,
                post_title=post.title,
                link=f"/blog/{post.id}",
            )
        return post.id

    def edit_post(self, actor, post_id, title=None, content=None):
        post = self.get_post(post_id)
        if post is None or actor is None or post.user_id != actor.user_id:
            return None
        if title:
            post.title = title
        if content:
            post.content = content
        post.last_edited = datetime.now(timezone.utc)
        if not self._commit(f"edit post {post_id}"):
            return None
        return post

    def like_post(self, actor, post_id):
        """Toggles the actor's like. Returns the new liked state."""
        post = self.get_post(post_id)
        if post is None or actor is None:
            return None

        existing = (
            self.session.query(Like)
            .filter_by(user_id=actor.user_id, post_id=post.id)
            .first()
        )
        if existing is not None:
            self.session.delete(existing)
            if not self._commit(f"unlike post {post_id}"):
                return None
            current_app.logger.info(f"{actor.username} unliked post {post_id}.")
            return False

        self.session.add(Like(user_id=actor.user_id, post_id=post.id))
        if not self._commit(f"like post {post_id}"):
            return None
        current_app.logger.info(f"{actor.username} liked post {post_id}.")
        self.notifications.notify(
            actor,
            "like",
            post.author.username,
            f"{actor.display_name} liked your post",
            post_id=post.id,
            post_title=post.title,
            link=f"/blog/{post.id}",
        )
        return True

    def share_post(self, actor, post_id):
        post = self.get_post(post_id)
        if post is None:
            return None
        post.share_count = (post.share_count or 0) + 1
        if not self._commit(f"share post {post_id}"):
            return None
        if actor is not None:
            self.notifications.notify(
                actor,
                "share",
                post.author.username,
                f"{actor.display_name} shared your post",
                post_id=post.id,
                post_title=post.title,
                link=f"/blog/{post.id}",
            )
        return post.share_count

    def add_comment(self, actor, post_id, content):
        post = self.get_post(post_id)
        if post is None or actor is None or not (content or "").strip():
            return None
        comment = Comment(
            post_id=post.id, user_id=actor.user_id, content=content.strip()
        )
        self.session.add(comment)
        if not self._commit(f"comment on post {post_id}"):
            return None
        self.notifications.notify(
            actor,
            "comment",
            post.author.username,
            f"{actor.display_name} commented on your post",
            post_id=post.id,
            post_title=post.title,
            comment_id=comment.id,
            link=f"/blog/{post.id}",
        )
        return comment

    def add_reply(self, actor, post_id, comment_id, content):
        comment = self.session.get(Comment, comment_id)
        if comment is None or comment.post_id != post_id:
            return None
        if actor is None or not (content or "").strip():
            return None
        reply = Reply(
            comment_id=comment.id, user_id=actor.user_id, content=content.strip()
        )
        self.session.add(reply)
        if not self._commit(f"reply to comment {comment_id}"):
            return None
        self.notifications.notify(
            actor,
            "reply",
            comment.author.username,
            f"{actor.display_name} replied to your comment",
            post_id=post_id,
            post_title=comment.post.title,
            comment_id=comment.id,
            link=f"/blog/{post_id}",
        )
        return reply

    def _can_moderate(self, actor, post, author_id=None):
        if actor is None:
            return False
        if actor.is_admin or post.user_id == actor.user_id:
            return True
        return author_id is not None and author_id == actor.user_id

    def delete_post(self, actor, post_id):
        post = self.get_post(post_id)
        if post is None or not self._can_moderate(actor, post):
            return False
        self.session.delete(post)
        if not self._commit(f"delete post {post_id}"):
            return False
        current_app.logger.info(f"Post {post_id} deleted by {actor.username}.")
        return True

    def delete_comment(self, actor, post_id, comment_id):
        comment = self.session.get(Comment, comment_id)
        if comment is None or comment.post_id != post_id:
            return False
        if not self._can_moderate(actor, comment.post, comment.user_id):
            return False
        self.session.delete(comment)
        return self._commit(f"delete comment {comment_id}")

    def delete_reply(self, actor, post_id, comment_id, reply_id):
        reply = self.session.get(Reply, reply_id)
        if reply is None or reply.comment_id != comment_id:
            return False
        if reply.comment.post_id != post_id:
            return False
        if not self._can_moderate(actor, reply.comment.post, reply.user_id):
            return False
        self.session.delete(reply)
        return self._commit(f"delete reply {reply_id}")
