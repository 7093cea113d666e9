from dataclasses import dataclass

from .. import db
from .appointments_service import AppointmentWorkflow
from .engagement_service import EngagementLedger
from .notifications_service import NotificationFeed
from .portfolio_service import PortfolioStore
from .repositories import (
    LocalAppointmentRepository,
    SqlAppointmentRepository,
    WriteThroughRepository,
)
from .subscriptions_service import SubscriptionGraph


@dataclass
class Services:
    notifications: NotificationFeed
    engagement: EngagementLedger
    subscriptions: SubscriptionGraph
    appointments: AppointmentWorkflow
    portfolios: PortfolioStore


def build_services(app):
    """Wires the services for one application instance."""
    notifications = NotificationFeed(db.session, app.user_notification_queues)
    repository = WriteThroughRepository(
        SqlAppointmentRepository(db.session),
        LocalAppointmentRepository(app.local_store),
    )
    return Services(
        notifications=notifications,
        engagement=EngagementLedger(db.session, notifications),
        subscriptions=SubscriptionGraph(db.session, notifications),
        appointments=AppointmentWorkflow(
            repository,
            notifications,
            app.config["MEETING_LINK_BASE_URL"],
            app.config["OWNER_ID_PLACEHOLDERS"],
        ),
        portfolios=PortfolioStore(db.session, app.local_store),
    )
