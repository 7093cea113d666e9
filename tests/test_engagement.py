import unittest

from foliogram.models.db_models import Comment, Like, Notification, Post, Reply
from tests.test_base import AppTestCase


class TestPostCreation(AppTestCase):
    def test_create_post_with_mentions_notifies_each_tagged_user_once(self):
        with self.app.app_context():
            actor = self._identity(self.user1_id)
            post_id = self.services.engagement.create_post(
                actor,
                "Launch",
                "We shipped it",
                tagged_users=["TestUser2", "test2@example.com", "testuser3", "", "guest@x.io"],
            )
            self.assertIsNotNone(post_id)

            post = self.db.session.get(Post, post_id)
            self.assertEqual(post.tagged_users, ["testuser2", "testuser3", "guest@x.io"])

            mentions = Notification.query.filter_by(type="mention").all()
            recipients = sorted(n.recipient for n in mentions)
            self.assertEqual(recipients, ["guest@x.io", "testuser2", "testuser3"])
            for notification in mentions:
                self.assertEqual(notification.post_id, post_id)
                self.assertEqual(notification.link, f"/blog/{post_id}")
                self.assertEqual(notification.actor, "testuser1")

    def test_self_mention_is_not_notified(self):
        with self.app.app_context():
            actor = self._identity(self.user1_id)
            self.services.engagement.create_post(
                actor, "Me", "About me", tagged_users=["testuser1"]
            )
            self.assertEqual(Notification.query.count(), 0)

    def test_create_post_without_actor_returns_none(self):
        with self.app.app_context():
            self.assertIsNone(self.services.engagement.create_post(None, "T", "C"))
            self.assertEqual(Post.query.count(), 0)

    def test_edit_post_only_by_author(self):
        with self.app.app_context():
            post = self._create_db_post(self.user1_id, title="Draft")
            intruder = self._identity(self.user2_id)
            self.assertIsNone(
                self.services.engagement.edit_post(intruder, post.id, title="Hacked")
            )

            author = self._identity(self.user1_id)
            edited = self.services.engagement.edit_post(author, post.id, title="Final")
            self.assertEqual(edited.title, "Final")
            self.assertIsNotNone(edited.last_edited)


class TestLikesAndShares(AppTestCase):
    def test_like_toggles_and_notifies_author_once(self):
        with self.app.app_context():
            post = self._create_db_post(self.user1_id)
            liker = self._identity(self.user2_id)
            engagement = self.services.engagement

            self.assertTrue(engagement.like_post(liker, post.id))
            self.assertEqual(Like.query.filter_by(post_id=post.id).count(), 1)
            self.assertFalse(engagement.like_post(liker, post.id))
            self.assertEqual(Like.query.filter_by(post_id=post.id).count(), 0)

            notifications = Notification.query.filter_by(type="like").all()
            self.assertEqual(len(notifications), 1)
            self.assertEqual(notifications[0].recipient, "testuser1")
            self.assertEqual(notifications[0].post_title, "Test Post")

    def test_liking_own_post_sends_no_notification(self):
        with self.app.app_context():
            post = self._create_db_post(self.user1_id)
            author = self._identity(self.user1_id)
            self.assertTrue(self.services.engagement.like_post(author, post.id))
            self.assertEqual(Notification.query.count(), 0)

    def test_like_unknown_post(self):
        with self.app.app_context():
            liker = self._identity(self.user2_id)
            self.assertIsNone(self.services.engagement.like_post(liker, 9999))

    def test_share_counts_anonymous_and_notifies_only_known_actor(self):
        with self.app.app_context():
            post = self._create_db_post(self.user1_id)
            engagement = self.services.engagement

            self.assertEqual(engagement.share_post(None, post.id), 1)
            self.assertEqual(Notification.query.count(), 0)

            sharer = self._identity(self.user3_id)
            self.assertEqual(engagement.share_post(sharer, post.id), 2)
            notification = Notification.query.filter_by(type="share").one()
            self.assertEqual(notification.recipient, "testuser1")
            self.assertEqual(notification.actor, "testuser3")

    def test_like_dispatches_to_open_stream(self):
        with self.app.app_context():
            from unittest.mock import MagicMock

            author_queue = MagicMock()
            self.app.user_notification_queues[self.user1_id] = [author_queue]
            post = self._create_db_post(self.user1_id)
            self.services.engagement.like_post(self._identity(self.user2_id), post.id)

            author_queue.put_nowait.assert_called_once()
            event = author_queue.put_nowait.call_args[0][0]
            self.assertEqual(event["type"], "notification")
            self.assertEqual(event["payload"]["type"], "like")
            self.assertEqual(event["payload"]["recipient"], "testuser1")


class TestCommentsAndReplies(AppTestCase):
    def test_comment_and_reply_notify_their_authors(self):
        with self.app.app_context():
            engagement = self.services.engagement
            post = self._create_db_post(self.user1_id, title="Thread")

            comment = engagement.add_comment(
                self._identity(self.user2_id), post.id, "  Nice work  "
            )
            self.assertEqual(comment.content, "Nice work")
            reply = engagement.add_reply(
                self._identity(self.user3_id), post.id, comment.id, "Agreed"
            )
            self.assertIsNotNone(reply)

            comment_note = Notification.query.filter_by(type="comment").one()
            self.assertEqual(comment_note.recipient, "testuser1")
            self.assertEqual(comment_note.comment_id, comment.id)
            reply_note = Notification.query.filter_by(type="reply").one()
            self.assertEqual(reply_note.recipient, "testuser2")
            self.assertEqual(reply_note.post_title, "Thread")

    def test_own_comment_reply_and_share_send_no_notification(self):
        with self.app.app_context():
            engagement = self.services.engagement
            author = self._identity(self.user1_id)
            post = self._create_db_post(self.user1_id)
            comment = self._create_db_comment(self.user1_id, post.id)

            actions = {
                "comment": lambda: engagement.add_comment(author, post.id, "My own note"),
                "reply": lambda: engagement.add_reply(author, post.id, comment.id, "Me again"),
                "share": lambda: engagement.share_post(author, post.id),
            }
            for event_type, action in actions.items():
                with self.subTest(event_type=event_type):
                    self.assertIsNotNone(action())
                    self.assertEqual(Notification.query.filter_by(type=event_type).count(), 0)
            self.assertEqual(Notification.query.count(), 0)

    def test_blank_comment_rejected(self):
        with self.app.app_context():
            post = self._create_db_post(self.user1_id)
            self.assertIsNone(
                self.services.engagement.add_comment(
                    self._identity(self.user2_id), post.id, "   "
                )
            )
            self.assertEqual(Comment.query.count(), 0)

    def test_reply_to_comment_on_other_post_rejected(self):
        with self.app.app_context():
            post_a = self._create_db_post(self.user1_id, title="A")
            post_b = self._create_db_post(self.user1_id, title="B")
            comment = self._create_db_comment(self.user2_id, post_a.id)
            self.assertIsNone(
                self.services.engagement.add_reply(
                    self._identity(self.user3_id), post_b.id, comment.id, "Wrong post"
                )
            )

    def test_delete_permissions(self):
        """Comments can be removed by their author, the post author or an admin."""
        with self.app.app_context():
            engagement = self.services.engagement
            post = self._create_db_post(self.user1_id)
            comment = self._create_db_comment(self.user2_id, post.id)
            comment_id = comment.id

            self.assertFalse(
                engagement.delete_comment(self._identity(self.user3_id), post.id, comment_id)
            )
            self.assertTrue(
                engagement.delete_comment(self._identity(self.user1_id), post.id, comment_id)
            )
            self.assertIsNone(self.db.session.get(Comment, comment_id))

            comment = self._create_db_comment(self.user2_id, post.id)
            admin = self._create_db_user("moderator", role="admin")
            self.assertTrue(
                engagement.delete_comment(self._identity(admin.id), post.id, comment.id)
            )

    def test_delete_reply_checks_path(self):
        with self.app.app_context():
            engagement = self.services.engagement
            post = self._create_db_post(self.user1_id)
            comment = self._create_db_comment(self.user2_id, post.id)
            reply = engagement.add_reply(
                self._identity(self.user3_id), post.id, comment.id, "Hi"
            )
            replier = self._identity(self.user3_id)
            self.assertFalse(
                engagement.delete_reply(replier, post.id, comment.id + 1, reply.id)
            )
            self.assertTrue(engagement.delete_reply(replier, post.id, comment.id, reply.id))
            self.assertEqual(Reply.query.count(), 0)

    def test_delete_post_cascades(self):
        with self.app.app_context():
            engagement = self.services.engagement
            post = self._create_db_post(self.user1_id)
            self._create_db_comment(self.user2_id, post.id)
            self._create_db_like(self.user2_id, post.id)

            self.assertFalse(engagement.delete_post(self._identity(self.user2_id), post.id))
            self.assertTrue(engagement.delete_post(self._identity(self.user1_id), post.id))
            self.assertEqual(Post.query.count(), 0)
            self.assertEqual(Comment.query.count(), 0)
            self.assertEqual(Like.query.count(), 0)


if __name__ == "__main__":
    unittest.main()
