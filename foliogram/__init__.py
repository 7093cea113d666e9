from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_restful import Api as FlaskRestfulApi
from flask_jwt_extended import JWTManager
from flask_login import LoginManager
from apscheduler.schedulers.background import BackgroundScheduler

from config import DefaultConfig, TestingConfig

db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
login_manager = LoginManager()
scheduler = BackgroundScheduler()

CONFIGS = {"default": DefaultConfig, "testing": TestingConfig}


def create_app(config_class=None):
    """Creates and configures the Flask application."""
    app = Flask(__name__)

    if isinstance(config_class, str):
        if config_class not in CONFIGS:
            raise ValueError(f"Unknown configuration name: {config_class}")
        app.config.from_object(CONFIGS[config_class])
    elif config_class is not None:
        app.config.from_object(config_class)
    else:
        app.config.from_object(DefaultConfig)

    db.init_app(app)
    migrate.init_app(app, db)
    fr_api = FlaskRestfulApi(app)
    jwt.init_app(app)
    login_manager.init_app(app)

    app.user_notification_queues = {}

    from .services.local_store import LocalStore
    from .services import build_services

    app.local_store = LocalStore(app.config["LOCAL_STORE_PATH"])
    app.extensions["foliogram"] = build_services(app)

    from .core import views as core_views
    from .api.routes import (
        ApiLoginResource,
        MeResource,
        UserStatsResource,
        PostListResource,
        PostResource,
        PostLikeResource,
        PostShareResource,
        CommentListResource,
        CommentResource,
        ReplyListResource,
        ReplyResource,
        SubscriptionResource,
        SubscriberListResource,
        MySubscriptionsResource,
        NotificationListResource,
        NotificationUnreadCountResource,
        NotificationMarkAllReadResource,
        NotificationReadResource,
        NotificationResource,
        AppointmentListResource,
        AppointmentApproveResource,
        AppointmentCancelResource,
        TemplateListResource,
        PortfolioListResource,
        PortfolioResource,
        PortfolioItemListResource,
        PortfolioItemResource,
        PortfolioSectionListResource,
        PortfolioSectionResource,
        PublicPortfolioListResource,
        PublicPortfolioResource,
    )

    app.register_blueprint(core_views.core_bp)

    fr_api.add_resource(ApiLoginResource, "/api/login")
    fr_api.add_resource(MeResource, "/api/me")
    fr_api.add_resource(UserStatsResource, "/api/me/stats")
    fr_api.add_resource(PostListResource, "/api/posts")
    fr_api.add_resource(PostResource, "/api/posts/<int:post_id>")
    fr_api.add_resource(PostLikeResource, "/api/posts/<int:post_id>/like")
    fr_api.add_resource(PostShareResource, "/api/posts/<int:post_id>/share")
    fr_api.add_resource(CommentListResource, "/api/posts/<int:post_id>/comments")
    fr_api.add_resource(
        CommentResource, "/api/posts/<int:post_id>/comments/<int:comment_id>"
    )
    fr_api.add_resource(
        ReplyListResource,
        "/api/posts/<int:post_id>/comments/<int:comment_id>/replies",
    )
    fr_api.add_resource(
        ReplyResource,
        "/api/posts/<int:post_id>/comments/<int:comment_id>/replies/<int:reply_id>",
    )
    fr_api.add_resource(
        SubscriptionResource, "/api/users/<string:identifier>/subscription"
    )
    fr_api.add_resource(
        SubscriberListResource, "/api/users/<string:identifier>/subscribers"
    )
    fr_api.add_resource(MySubscriptionsResource, "/api/me/subscriptions")
    fr_api.add_resource(NotificationListResource, "/api/notifications")
    fr_api.add_resource(
        NotificationUnreadCountResource, "/api/notifications/unread-count"
    )
    fr_api.add_resource(
        NotificationMarkAllReadResource, "/api/notifications/mark-all-read"
    )
    fr_api.add_resource(
        NotificationReadResource, "/api/notifications/<int:notification_id>/read"
    )
    fr_api.add_resource(
        NotificationResource, "/api/notifications/<int:notification_id>"
    )
    fr_api.add_resource(AppointmentListResource, "/api/appointments")
    fr_api.add_resource(
        AppointmentApproveResource,
        "/api/appointments/<string:appointment_id>/approve",
    )
    fr_api.add_resource(
        AppointmentCancelResource,
        "/api/appointments/<string:appointment_id>/cancel",
    )
    fr_api.add_resource(TemplateListResource, "/api/templates")
    fr_api.add_resource(PortfolioListResource, "/api/portfolios")
    fr_api.add_resource(PortfolioResource, "/api/portfolios/<int:portfolio_id>")
    fr_api.add_resource(
        PortfolioSectionListResource, "/api/portfolios/<int:portfolio_id>/sections"
    )
    fr_api.add_resource(
        PortfolioSectionResource,
        "/api/portfolios/<int:portfolio_id>/sections/<int:section_id>",
    )
    fr_api.add_resource(
        PortfolioItemListResource, "/api/portfolios/<int:portfolio_id>/<string:kind>"
    )
    fr_api.add_resource(
        PortfolioItemResource,
        "/api/portfolios/<int:portfolio_id>/<string:kind>/<int:item_id>",
    )
    fr_api.add_resource(PublicPortfolioListResource, "/api/public/portfolios")
    fr_api.add_resource(PublicPortfolioResource, "/api/public/portfolios/<string:slug>")

    from .models.db_models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    return app
