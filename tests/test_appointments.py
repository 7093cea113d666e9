import unittest
from datetime import date, time

from foliogram.models.db_models import Appointment, Notification
from foliogram.services.appointments_service import (
    AppointmentError,
    AppointmentStatus,
    InvalidTransition,
    check_transition,
    format_slot,
)
from foliogram.services.repositories import PRIMARY
from tests.test_base import AppTestCase


class TestStatusTransitions(unittest.TestCase):
    def test_allowed(self):
        self.assertEqual(check_transition("pending", "approved"), AppointmentStatus.APPROVED)
        self.assertEqual(check_transition("pending", "cancelled"), AppointmentStatus.CANCELLED)
        self.assertEqual(check_transition("approved", "cancelled"), AppointmentStatus.CANCELLED)

    def test_rejected(self):
        for current, requested in (
            ("approved", "approved"),
            ("approved", "pending"),
            ("cancelled", "approved"),
            ("cancelled", "cancelled"),
            ("completed", "cancelled"),
            ("pending", "completed"),
        ):
            with self.subTest(current=current, requested=requested):
                with self.assertRaises(InvalidTransition) as ctx:
                    check_transition(current, requested)
                self.assertEqual(ctx.exception.current, current)
                self.assertEqual(ctx.exception.requested, requested)

    def test_unknown_status_is_an_error(self):
        with self.assertRaises(ValueError):
            check_transition("archived", "approved")

    def test_format_slot(self):
        record = {"date": "2025-09-22", "time": "14:30"}
        self.assertEqual(format_slot(record), "September 22, 2025 at 02:30 PM")


class TestAppointmentWorkflow(AppTestCase):
    def setUp(self):
        super().setUp()
        with self.app.app_context():
            self.portfolio_id = self._create_db_portfolio(self.user1_id).id

    def test_guest_booking_then_owner_approval(self):
        with self.app.app_context():
            workflow = self.services.appointments
            result = workflow.book(self._booking_data(self.portfolio_id))
            record = result.record

            self.assertEqual(result.stored_in, PRIMARY)
            self.assertFalse(result.degraded)
            self.assertEqual(record["status"], "pending")
            self.assertEqual(record["portfolio_owner_id"], "testuser1")
            self.assertEqual(record["booker_email"], "grace@example.com")
            self.assertIsNone(record["booked_by"])
            self.assertEqual(record["duration"], 45)

            owner_note = Notification.query.filter_by(recipient="testuser1").one()
            self.assertEqual(owner_note.type, "appointment")
            self.assertEqual(
                owner_note.message,
                "Grace Hopper requested an appointment on September 22, 2025 at 02:30 PM",
            )
            self.assertEqual(owner_note.appointment_id, record["id"])
            self.assertEqual(owner_note.link, "/appointments")

            approved = workflow.approve(record["id"], self._identity(self.user1_id))
            self.assertEqual(approved.record["status"], "approved")
            self.assertTrue(approved.record["meeting_link"].startswith("https://meet.test/"))

            booker_note = Notification.query.filter_by(recipient="grace@example.com").one()
            self.assertEqual(
                booker_note.message,
                "Your appointment on September 22, 2025 at 02:30 PM was approved",
            )
            self.assertEqual(booker_note.appointment_date, "2025-09-22")
            self.assertEqual(booker_note.appointment_time, "14:30")

    def test_booking_validation(self):
        with self.app.app_context():
            workflow = self.services.appointments
            with self.assertRaises(AppointmentError):
                workflow.book(self._booking_data(self.portfolio_id, booker_email=""))
            with self.assertRaises(AppointmentError):
                workflow.book(self._booking_data(self.portfolio_id, date="22/09/2025"))
            with self.assertRaises(AppointmentError):
                workflow.book(self._booking_data(9999))
            self.assertEqual(Appointment.query.count(), 0)

    def test_default_duration(self):
        with self.app.app_context():
            data = self._booking_data(self.portfolio_id)
            del data["duration"]
            record = self.services.appointments.book(data).record
            self.assertEqual(record["duration"], 30)

    def test_only_owner_or_admin_approves(self):
        with self.app.app_context():
            workflow = self.services.appointments
            record = workflow.book(self._booking_data(self.portfolio_id)).record

            self.assertIsNone(workflow.approve(record["id"], self._identity(self.user2_id)))
            self.assertIsNone(workflow.approve(record["id"], None))
            self.assertEqual(workflow.get(record["id"])["status"], "pending")

            admin = self._create_db_user("admin", role="admin")
            approved = workflow.approve(record["id"], self._identity(admin.id))
            self.assertEqual(approved.record["status"], "approved")

    def test_double_approval_rejected(self):
        with self.app.app_context():
            workflow = self.services.appointments
            owner = self._identity(self.user1_id)
            record = workflow.book(self._booking_data(self.portfolio_id)).record
            workflow.approve(record["id"], owner)
            with self.assertRaises(InvalidTransition):
                workflow.approve(record["id"], owner)

    def test_booker_cancels_and_owner_is_told(self):
        with self.app.app_context():
            workflow = self.services.appointments
            booker = self._identity(self.user3_id)
            record = workflow.book(
                self._booking_data(self.portfolio_id, booker_email="test3@example.com"),
                booker,
            ).record
            self.assertEqual(record["booked_by"], "testuser3")

            cancelled = workflow.cancel(record["id"], booker, by_owner=False)
            self.assertEqual(cancelled.record["status"], "cancelled")
            self.assertEqual(cancelled.record["cancelled_by"], "booker")

            owner_notes = Notification.query.filter_by(recipient="testuser1").all()
            self.assertEqual(len(owner_notes), 2)
            self.assertTrue(
                any("cancelled the appointment" in n.message for n in owner_notes)
            )
            with self.assertRaises(InvalidTransition):
                workflow.cancel(record["id"], booker, by_owner=False)

    def test_owner_cancels_approved_appointment(self):
        with self.app.app_context():
            workflow = self.services.appointments
            owner = self._identity(self.user1_id)
            record = workflow.book(self._booking_data(self.portfolio_id)).record
            workflow.approve(record["id"], owner)

            cancelled = workflow.cancel(record["id"], owner, by_owner=True)
            self.assertEqual(cancelled.record["cancelled_by"], "owner")
            messages = [
                n.message
                for n in Notification.query.filter_by(recipient="grace@example.com").all()
            ]
            self.assertIn(
                "Your appointment on September 22, 2025 at 02:30 PM was cancelled", messages
            )

    def test_cancel_requires_matching_party(self):
        with self.app.app_context():
            workflow = self.services.appointments
            record = workflow.book(self._booking_data(self.portfolio_id)).record
            stranger = self._identity(self.user2_id)
            self.assertIsNone(workflow.cancel(record["id"], stranger, by_owner=True))
            self.assertIsNone(workflow.cancel(record["id"], stranger, by_owner=False))
            self.assertIsNone(workflow.cancel(record["id"], None, by_owner=False))
            self.assertIsNone(workflow.cancel("missing-id", stranger, by_owner=True))

    def test_received_and_booked_views(self):
        with self.app.app_context():
            workflow = self.services.appointments
            booker = self._identity(self.user3_id)
            workflow.book(self._booking_data(self.portfolio_id, booker_email="x@y.io"), booker)
            workflow.book(self._booking_data(self.portfolio_id, booker_email="test3@example.com"))

            received = workflow.received_for(self._identity(self.user1_id))
            self.assertEqual(len(received), 2)
            booked = workflow.booked_by(booker)
            self.assertEqual(len(booked), 2)
            self.assertEqual(workflow.received_for(booker), [])


class TestOwnerReconciliation(AppTestCase):
    def _legacy_appointment(self, portfolio_id, owner_id):
        appointment = Appointment(
            portfolio_id=portfolio_id,
            portfolio_owner_id=owner_id,
            booker_name="Legacy Booker",
            booker_email="legacy@example.com",
            date=date(2025, 1, 6),
            time=time(9, 15),
        )
        self.db.session.add(appointment)
        self.db.session.commit()
        return appointment.id

    def test_blank_and_placeholder_owners_are_repaired_once(self):
        with self.app.app_context():
            portfolio_id = self._create_db_portfolio(self.user2_id).id
            blank_id = self._legacy_appointment(portfolio_id, "")
            undefined_id = self._legacy_appointment(portfolio_id, "undefined")
            workflow = self.services.appointments

            self.assertEqual(workflow.reconcile_owners(), 2)
            self.assertEqual(workflow.reconcile_owners(), 0)
            self.assertEqual(workflow.get(blank_id)["portfolio_owner_id"], "testuser2")
            self.assertEqual(workflow.get(undefined_id)["portfolio_owner_id"], "testuser2")

    def test_received_view_repairs_before_filtering(self):
        with self.app.app_context():
            portfolio_id = self._create_db_portfolio(self.user2_id).id
            self._legacy_appointment(portfolio_id, "null")
            received = self.services.appointments.received_for(self._identity(self.user2_id))
            self.assertEqual(len(received), 1)
            self.assertEqual(received[0]["portfolio_owner_id"], "testuser2")

    def test_approve_repairs_owner_first(self):
        with self.app.app_context():
            portfolio_id = self._create_db_portfolio(self.user2_id).id
            appointment_id = self._legacy_appointment(portfolio_id, "")
            result = self.services.appointments.approve(
                appointment_id, self._identity(self.user2_id)
            )
            self.assertEqual(result.record["status"], "approved")
            self.assertEqual(result.record["portfolio_owner_id"], "testuser2")

    def test_missing_portfolio_leaves_record_alone(self):
        with self.app.app_context():
            self._legacy_appointment(4242, "")
            self.assertEqual(self.services.appointments.reconcile_owners(), 0)


if __name__ == "__main__":
    unittest.main()
