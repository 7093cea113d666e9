import unittest

from foliogram import create_app
from foliogram.services import Services
from foliogram.services.local_store import LocalStore
from tests.test_base import AppTestCase


class TestAppFactory(AppTestCase):
    def test_testing_config_loaded(self):
        self.assertTrue(self.app.config["TESTING"])
        self.assertEqual(self.app.config["SQLALCHEMY_DATABASE_URI"], "sqlite:///:memory:")

    def test_services_registered(self):
        services = self.app.extensions["foliogram"]
        self.assertIsInstance(services, Services)
        self.assertIs(services.appointments.notifications, services.notifications)
        self.assertIs(services.engagement.notifications, services.notifications)
        self.assertIs(services.notifications.queues, self.app.user_notification_queues)

    def test_local_store_configured(self):
        self.assertIsInstance(self.app.local_store, LocalStore)
        self.assertEqual(self.app.local_store.path, self.app.config["LOCAL_STORE_PATH"])

    def test_unknown_config_name(self):
        with self.assertRaises(ValueError):
            create_app("staging")

    def test_routes_registered(self):
        rules = {rule.rule for rule in self.app.url_map.iter_rules()}
        for expected in (
            "/api/login",
            "/api/posts/<int:post_id>/like",
            "/api/notifications/unread-count",
            "/api/appointments/<string:appointment_id>/approve",
            "/api/portfolios/<int:portfolio_id>/sections",
            "/api/public/portfolios/<string:slug>",
            "/notifications/stream",
        ):
            self.assertIn(expected, rules)


if __name__ == "__main__":
    unittest.main()
