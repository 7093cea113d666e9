from flask import request, current_app
from flask_restful import Resource, reqparse
from flask_jwt_extended import create_access_token

from ..core.utils import (
    current_identity,
    error,
    get_services,
    identity_required,
    success,
)
from ..services.appointments_service import AppointmentError
from ..services.identity import resolve_user
from ..services.repositories import AppointmentStoreError
from ..services.sections import SectionError, section_to_dict
from ..services.stats_service import get_user_stats


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _bool_arg(name):
    value = request.args.get(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def _write_result(result, code=200):
    body, status = success(result.record, code)
    body["stored_in"] = result.stored_in
    if result.degraded:
        body["message"] = "Saved locally; the database is currently unavailable."
    return body, status


class ApiLoginResource(Resource):
    def post(self):
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not username or not password:
            return {"message": "Username and password are required"}, 400

        user = resolve_user(username)

        if user and user.check_password(password):
            access_token = create_access_token(identity=str(user.id))
            return {"access_token": access_token, "user": user.to_dict()}, 200
        else:
            return {"message": "Invalid credentials"}, 401


class MeResource(Resource):
    @identity_required
    def get(self, identity):
        return success(
            {
                "username": identity.username,
                "email": identity.email,
                "role": identity.role,
                "display_name": identity.display_name,
            }
        )


class UserStatsResource(Resource):
    @identity_required
    def get(self, identity):
        return success(get_user_stats(identity, get_services()))


# Blog


class PostListResource(Resource):
    def get(self):
        author = request.args.get("author")
        engagement = get_services().engagement
        if author:
            user = resolve_user(author)
            if user is None:
                return success([])
            posts = [p for p in engagement.list_posts() if p.user_id == user.id]
        else:
            posts = engagement.list_posts()
        return success([post.to_dict() for post in posts if post.published])

    @identity_required
    def post(self, identity):
        parser = reqparse.RequestParser()
        parser.add_argument("title", required=True, help="Title cannot be blank")
        parser.add_argument("content", required=True, help="Content cannot be blank")
        parser.add_argument("tagged_users", type=list, location="json", default=[])
        parser.add_argument("images", type=list, location="json", default=[])
        parser.add_argument("videos", type=list, location="json", default=[])
        data = parser.parse_args()

        engagement = get_services().engagement
        post_id = engagement.create_post(
            identity,
            data["title"],
            data["content"],
            tagged_users=data["tagged_users"],
            images=data["images"],
            videos=data["videos"],
        )
        if post_id is None:
            return error("Post could not be created", 500)
        return success(engagement.get_post(post_id).to_dict(), 201)


class PostResource(Resource):
    def get(self, post_id):
        post = get_services().engagement.get_post(post_id)
        if post is None:
            return error("Post not found", 404)
        return success(post.to_dict())

    @identity_required
    def put(self, post_id, identity):
        data = _json_body()
        post = get_services().engagement.edit_post(
            identity, post_id, title=data.get("title"), content=data.get("content")
        )
        if post is None:
            return error("Post not found or you are not its author", 404)
        return success(post.to_dict())

    @identity_required
    def delete(self, post_id, identity):
        if not get_services().engagement.delete_post(identity, post_id):
            return error("Post not found or you cannot delete it", 404)
        return success(None, message="Post deleted")


class PostLikeResource(Resource):
    @identity_required
    def post(self, post_id, identity):
        engagement = get_services().engagement
        liked = engagement.like_post(identity, post_id)
        if liked is None:
            return error("Post not found", 404)
        post = engagement.get_post(post_id)
        return success({"liked": liked, "like_count": len(post.likes)})


class PostShareResource(Resource):
    def post(self, post_id):
        shares = get_services().engagement.share_post(current_identity(), post_id)
        if shares is None:
            return error("Post not found", 404)
        return success({"shares": shares})


class CommentListResource(Resource):
    def get(self, post_id):
        post = get_services().engagement.get_post(post_id)
        if post is None:
            return error("Post not found", 404)
        return success([comment.to_dict() for comment in post.comments])

    @identity_required
    def post(self, post_id, identity):
        content = _json_body().get("content")
        if not (content or "").strip():
            return error("Comment content cannot be empty", 400)
        comment = get_services().engagement.add_comment(identity, post_id, content)
        if comment is None:
            return error("Post not found", 404)
        return success(comment.to_dict(), 201)


class CommentResource(Resource):
    @identity_required
    def delete(self, post_id, comment_id, identity):
        if not get_services().engagement.delete_comment(identity, post_id, comment_id):
            return error("Comment not found or you cannot delete it", 404)
        return success(None, message="Comment deleted")


class ReplyListResource(Resource):
    @identity_required
    def post(self, post_id, comment_id, identity):
        content = _json_body().get("content")
        if not (content or "").strip():
            return error("Reply content cannot be empty", 400)
        reply = get_services().engagement.add_reply(
            identity, post_id, comment_id, content
        )
        if reply is None:
            return error("Comment not found", 404)
        return success(reply.to_dict(), 201)


class ReplyResource(Resource):
    @identity_required
    def delete(self, post_id, comment_id, reply_id, identity):
        deleted = get_services().engagement.delete_reply(
            identity, post_id, comment_id, reply_id
        )
        if not deleted:
            return error("Reply not found or you cannot delete it", 404)
        return success(None, message="Reply deleted")


# Subscriptions


class SubscriptionResource(Resource):
    @identity_required
    def get(self, identifier, identity):
        subscribed = get_services().subscriptions.is_subscribed(identity, identifier)
        return success({"subscribed": subscribed})

    @identity_required
    def post(self, identifier, identity):
        target = resolve_user(identifier)
        if target is None:
            return error("User not found", 404)
        if target.id == identity.user_id:
            return error("You cannot subscribe to yourself", 400)
        get_services().subscriptions.subscribe(identity, identifier)
        return success({"subscribed": True})

    @identity_required
    def delete(self, identifier, identity):
        get_services().subscriptions.unsubscribe(identity, identifier)
        return success({"subscribed": False})


class SubscriberListResource(Resource):
    def get(self, identifier):
        if resolve_user(identifier) is None:
            return error("User not found", 404)
        subscribers = get_services().subscriptions.subscribers_of(identifier)
        return success(sorted(subscribers))


class MySubscriptionsResource(Resource):
    @identity_required
    def get(self, identity):
        return success(sorted(get_services().subscriptions.subscribed_to_by(identity)))


# Notifications


class NotificationListResource(Resource):
    @identity_required
    def get(self, identity):
        feed = get_services().notifications
        if _bool_arg("grouped"):
            groups = feed.grouped_by_recency(identity)
            return success(
                {
                    name: [n.to_dict() for n in notifications]
                    for name, notifications in groups.items()
                }
            )
        if _bool_arg("unread"):
            notifications = feed.unread_notifications(identity)
        else:
            notifications = feed.for_recipient(identity)
        return success([n.to_dict() for n in notifications])

    @identity_required
    def delete(self, identity):
        cleared = get_services().notifications.clear_all(identity)
        return success({"deleted": cleared})


class NotificationUnreadCountResource(Resource):
    @identity_required
    def get(self, identity):
        return success({"unread": get_services().notifications.unread_count(identity)})


class NotificationMarkAllReadResource(Resource):
    @identity_required
    def post(self, identity):
        updated = get_services().notifications.mark_all_as_read(identity)
        return success({"updated": updated})


class NotificationReadResource(Resource):
    @identity_required
    def post(self, notification_id, identity):
        notification = get_services().notifications.mark_as_read(
            identity, notification_id
        )
        if notification is None:
            return error("Notification not found", 404)
        return success(notification.to_dict())


class NotificationResource(Resource):
    @identity_required
    def delete(self, notification_id, identity):
        if not get_services().notifications.delete_notification(
            identity, notification_id
        ):
            return error("Notification not found", 404)
        return success(None, message="Notification deleted")


# Appointments


class AppointmentListResource(Resource):
    @identity_required
    def get(self, identity):
        workflow = get_services().appointments
        view = request.args.get("view", "received")
        if view == "received":
            records = workflow.received_for(identity)
        elif view == "booked":
            records = workflow.booked_by(identity)
        else:
            return error("view must be 'received' or 'booked'", 400)
        records.sort(key=lambda r: (r["date"], r["time"]))
        return success(records)

    def post(self):
        try:
            result = get_services().appointments.book(_json_body(), current_identity())
        except AppointmentStoreError as e:
            current_app.logger.error(f"Booking could not be stored: {e}")
            return error("Appointment could not be saved, please try again later", 503)
        except AppointmentError as e:
            return error(str(e), 400)
        return _write_result(result, 201)


class AppointmentApproveResource(Resource):
    @identity_required
    def post(self, appointment_id, identity):
        try:
            result = get_services().appointments.approve(appointment_id, identity)
        except AppointmentStoreError as e:
            current_app.logger.error(f"Approval could not be stored: {e}")
            return error("Appointment could not be saved, please try again later", 503)
        except AppointmentError as e:
            return error(str(e), 409)
        if result is None:
            return error("Appointment not found", 404)
        return _write_result(result)


class AppointmentCancelResource(Resource):
    @identity_required
    def post(self, appointment_id, identity):
        by_owner = bool(_json_body().get("by_owner", False))
        try:
            result = get_services().appointments.cancel(
                appointment_id, identity, by_owner
            )
        except AppointmentStoreError as e:
            current_app.logger.error(f"Cancellation could not be stored: {e}")
            return error("Appointment could not be saved, please try again later", 503)
        except AppointmentError as e:
            return error(str(e), 409)
        if result is None:
            return error("Appointment not found", 404)
        return _write_result(result)


# Templates and portfolios


class TemplateListResource(Resource):
    def get(self):
        store = get_services().portfolios
        templates = store.list_templates(
            category=request.args.get("category"), premium=_bool_arg("premium")
        )
        return success(
            {
                "templates": [template.to_dict() for template in templates],
                "categories": store.list_categories(),
            }
        )


class PortfolioListResource(Resource):
    @identity_required
    def get(self, identity):
        portfolios = get_services().portfolios.list_for_owner(identity)
        return success([portfolio.to_dict() for portfolio in portfolios])

    @identity_required
    def post(self, identity):
        parser = reqparse.RequestParser()
        parser.add_argument("template_id", required=True, help="Template is required")
        parser.add_argument("title", required=True, help="Title cannot be blank")
        parser.add_argument("description")
        data = parser.parse_args()

        portfolio = get_services().portfolios.create_portfolio(
            identity, data["template_id"], data["title"], data["description"]
        )
        if portfolio is None:
            return error("Template not found or title missing", 400)
        return success(portfolio.to_dict(), 201)


class PortfolioResource(Resource):
    @identity_required
    def get(self, portfolio_id, identity):
        portfolio = get_services().portfolios.get_owned(identity, portfolio_id)
        if portfolio is None:
            return error("Portfolio not found", 404)
        return success(portfolio.to_dict(include_content=True))

    @identity_required
    def put(self, portfolio_id, identity):
        portfolio = get_services().portfolios.update_portfolio(
            identity, portfolio_id, _json_body()
        )
        if portfolio is None:
            return error("Portfolio not found", 404)
        return success(portfolio.to_dict())

    @identity_required
    def delete(self, portfolio_id, identity):
        if not get_services().portfolios.delete_portfolio(identity, portfolio_id):
            return error("Portfolio not found", 404)
        return success(None, message="Portfolio deleted")


class PortfolioItemListResource(Resource):
    def get(self, portfolio_id, kind):
        items = get_services().portfolios.list_items(portfolio_id, kind)
        if items is None:
            return error(f"Unknown portfolio item type: {kind}", 404)
        return success([item.to_dict() for item in items])

    @identity_required
    def post(self, portfolio_id, kind, identity):
        try:
            item = get_services().portfolios.add_item(
                identity, portfolio_id, kind, _json_body()
            )
        except (TypeError, ValueError) as e:
            return error(f"Invalid {kind} item: {e}", 400)
        if item is None:
            return error("Portfolio not found", 404)
        return success(item.to_dict(), 201)


class PortfolioItemResource(Resource):
    @identity_required
    def put(self, portfolio_id, kind, item_id, identity):
        try:
            item = get_services().portfolios.update_item(
                identity, portfolio_id, kind, item_id, _json_body()
            )
        except (TypeError, ValueError) as e:
            return error(f"Invalid {kind} item: {e}", 400)
        if item is None:
            return error("Item not found", 404)
        return success(item.to_dict())

    @identity_required
    def delete(self, portfolio_id, kind, item_id, identity):
        if not get_services().portfolios.delete_item(
            identity, portfolio_id, kind, item_id
        ):
            return error("Item not found", 404)
        return success(None, message="Item deleted")


def _section_body(row, section):
    body = section_to_dict(section)
    body.update({"id": row.id, "title": row.title, "sort_order": row.sort_order})
    return body


class PortfolioSectionListResource(Resource):
    def get(self, portfolio_id):
        sections = get_services().portfolios.list_sections(portfolio_id)
        return success([_section_body(row, section) for row, section in sections])

    @identity_required
    def post(self, portfolio_id, identity):
        data = _json_body()
        if not data.get("kind"):
            return error("Section kind is required", 400)
        try:
            sort_order = int(data.get("sort_order") or 0)
        except (TypeError, ValueError):
            return error("sort_order must be an integer", 400)
        try:
            created = get_services().portfolios.add_section(
                identity,
                portfolio_id,
                data["kind"],
                data.get("data") or {},
                title=data.get("title"),
                sort_order=sort_order,
            )
        except SectionError as e:
            return error(str(e), 400)
        if created is None:
            return error("Portfolio not found", 404)
        return success(_section_body(*created), 201)


class PortfolioSectionResource(Resource):
    @identity_required
    def put(self, portfolio_id, section_id, identity):
        data = _json_body()
        try:
            updated = get_services().portfolios.update_section(
                identity,
                portfolio_id,
                section_id,
                data.get("data") or {},
                title=data.get("title"),
            )
        except SectionError as e:
            return error(str(e), 400)
        if updated is None:
            return error("Section not found", 404)
        return success(_section_body(*updated))

    @identity_required
    def delete(self, portfolio_id, section_id, identity):
        if not get_services().portfolios.delete_section(
            identity, portfolio_id, section_id
        ):
            return error("Section not found", 404)
        return success(None, message="Section deleted")


class PublicPortfolioListResource(Resource):
    def get(self):
        page = request.args.get("page", 1, type=int)
        limit = request.args.get("limit", None, type=int)
        items, pagination = get_services().portfolios.list_public(
            page=page,
            limit=limit,
            category=request.args.get("category"),
            search=request.args.get("search"),
        )
        return success(
            {
                "portfolios": [portfolio.to_dict() for portfolio in items],
                "pagination": pagination,
            }
        )


class PublicPortfolioResource(Resource):
    def get(self, slug):
        portfolio = get_services().portfolios.public_view(slug)
        if portfolio is None:
            return error("Portfolio not found", 404)
        return success(portfolio)
