"""Appointment booking workflow.

Status flow:
    pending -> approved   (owner approves, a meeting link is issued)
    pending -> cancelled  (either party)
    approved -> cancelled (either party)

``completed`` is a recognised status but nothing transitions into it yet.
"""
import secrets
import uuid
from datetime import date, datetime, time, timezone
from enum import Enum

from flask import current_app

from .. import db
from ..models.db_models import Portfolio
from .identity import normalize_identifier


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: {AppointmentStatus.APPROVED, AppointmentStatus.CANCELLED},
    AppointmentStatus.APPROVED: {AppointmentStatus.CANCELLED},
    AppointmentStatus.CANCELLED: set(),
    AppointmentStatus.COMPLETED: set(),
}

REQUIRED_BOOKING_FIELDS = ("portfolio_id", "booker_name", "booker_email", "date", "time")
TEXT_BOOKING_FIELDS = (
    "booker_name",
    "booker_email",
    "booker_phone",
    "booker_company",
    "booker_role",
    "reason",
    "meeting_platform",
)


class AppointmentError(ValueError):
    pass


class InvalidTransition(AppointmentError):
    def __init__(self, current, requested):
        super().__init__(f"Cannot move appointment from {current} to {requested}")
        self.current = current
        self.requested = requested


def check_transition(current, requested):
    current = AppointmentStatus(current)
    requested = AppointmentStatus(requested)
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current.value, requested.value)
    return requested


def format_slot(record):
    """Renders a record's slot as e.g. 'September 22, 2025 at 02:30 PM'."""
    slot_date = date.fromisoformat(record["date"])
    slot_time = time.fromisoformat(record["time"])
    return f"{slot_date.strftime('%B %d, %Y')} at {slot_time.strftime('%I:%M %p')}"


def _parse_duration(value, default):
    if value is None or value == "":
        return int(default)
    if isinstance(value, bool):
        raise AppointmentError(f"Invalid appointment duration: {value!r}")
    try:
        duration = int(value)
    except (TypeError, ValueError) as e:
        raise AppointmentError(f"Invalid appointment duration: {value!r}") from e
    if duration <= 0:
        raise AppointmentError("Appointment duration must be a positive number of minutes")
    return duration


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


class AppointmentWorkflow:
    def __init__(
        self, repository, notifications, meeting_link_base, owner_placeholders
    ):
        self.repository = repository
        self.notifications = notifications
        self.meeting_link_base = meeting_link_base.rstrip("/")
        self.owner_placeholders = {normalize_identifier(p) for p in owner_placeholders}

    def _owner_for_portfolio(self, portfolio_id):
        try:
            portfolio = db.session.get(Portfolio, int(portfolio_id))
        except (TypeError, ValueError):
            return None
        if portfolio is None or portfolio.owner is None:
            return None
        return portfolio.owner.username

    def _is_placeholder(self, owner_id):
        return normalize_identifier(owner_id) in self.owner_placeholders

    def _booker_identifier(self, record):
        return record.get("booked_by") or record.get("booker_email")

    def _can_act_as_owner(self, actor, record):
        if actor is None:
            return False
        return actor.is_admin or actor.owns(record["portfolio_owner_id"])

    def _can_act_as_booker(self, actor, record):
        if actor is None:
            return False
        return (
            actor.is_admin
            or actor.owns(record.get("booked_by"))
            or actor.owns(record.get("booker_email"))
        )

    def _repair_owner(self, record):
        """Returns the record with its owner filled in, saving it if it changed."""
        if not self._is_placeholder(record.get("portfolio_owner_id")):
            return record
        owner_id = self._owner_for_portfolio(record.get("portfolio_id"))
        if owner_id is None:
            current_app.logger.warning(
                f"Appointment {record['id']} has no owner and portfolio {record.get('portfolio_id')} cannot supply one."
            )
            return record
        repaired = dict(record, portfolio_owner_id=normalize_identifier(owner_id))
        return self.repository.save(repaired).record

    def _load(self, appointment_id):
        record = self.repository.get(appointment_id)
        if record is None:
            return None
        return self._repair_owner(record)

    def generate_meeting_link(self):
        return f"{self.meeting_link_base}/{secrets.token_urlsafe(12)}"

    def get(self, appointment_id):
        return self.repository.get(appointment_id)

    def book(self, data, actor=None):
        """Creates a pending appointment and tells the portfolio owner."""
        missing = [field for field in REQUIRED_BOOKING_FIELDS if not data.get(field)]
        if missing:
            raise AppointmentError(f"Missing required fields: {', '.join(missing)}")
        wrong_type = [
            field
            for field in TEXT_BOOKING_FIELDS
            if data.get(field) is not None and not isinstance(data[field], str)
        ]
        if wrong_type:
            raise AppointmentError(f"Fields must be text: {', '.join(wrong_type)}")
        duration = _parse_duration(
            data.get("duration"),
            current_app.config.get("DEFAULT_APPOINTMENT_DURATION", 30),
        )
        try:
            slot_date = date.fromisoformat(str(data["date"]))
            slot_time = time.fromisoformat(str(data["time"]))
        except ValueError as e:
            raise AppointmentError(f"Invalid appointment date or time: {e}") from e

        owner_id = self._owner_for_portfolio(data["portfolio_id"])
        if owner_id is None:
            raise AppointmentError(
                f"Could not resolve the owner of portfolio {data['portfolio_id']}"
            )

        now = _now_iso()
        record = {
            "id": str(uuid.uuid4()),
            "portfolio_id": int(data["portfolio_id"]),
            "portfolio_owner_id": normalize_identifier(owner_id),
            "booked_by": actor.username if actor else None,
            "booker_name": data["booker_name"].strip(),
            "booker_email": normalize_identifier(data["booker_email"]),
            "booker_phone": data.get("booker_phone"),
            "booker_company": data.get("booker_company"),
            "booker_role": data.get("booker_role"),
            "date": slot_date.isoformat(),
            "time": slot_time.strftime("%H:%M"),
            "duration": duration,
            "reason": data.get("reason"),
            "meeting_platform": data.get("meeting_platform"),
            "status": AppointmentStatus.PENDING.value,
            "meeting_link": None,
            "cancelled_by": None,
            "created_at": now,
            "updated_at": now,
        }
        result = self.repository.save(record)
        current_app.logger.info(
            f"Appointment {record['id']} booked for {owner_id} by {record['booker_email']} ({result.stored_in})."
        )
        self.notifications.notify(
            actor,
            "appointment",
            owner_id,
            f"{record['booker_name']} requested an appointment on {format_slot(record)}",
            appointment_id=record["id"],
            appointment_date=record["date"],
            appointment_time=record["time"],
            link="/appointments",
        )
        return result

    def _transition(self, record, requested, **changes):
        check_transition(record["status"], requested)
        updated = dict(record, status=requested.value, updated_at=_now_iso(), **changes)
        return self.repository.save(updated)

    def approve(self, appointment_id, actor):
        record = self._load(appointment_id)
        if record is None or not self._can_act_as_owner(actor, record):
            return None
        result = self._transition(
            record,
            AppointmentStatus.APPROVED,
            meeting_link=self.generate_meeting_link(),
        )
        current_app.logger.info(f"Appointment {appointment_id} approved by {actor.username}.")
        self.notifications.notify(
            actor,
            "appointment",
            self._booker_identifier(record),
            f"Your appointment on {format_slot(record)} was approved",
            appointment_id=record["id"],
            appointment_date=record["date"],
            appointment_time=record["time"],
            link="/appointments",
        )
        return result

    def cancel(self, appointment_id, actor, by_owner):
        record = self._load(appointment_id)
        if record is None:
            return None
        if by_owner and not self._can_act_as_owner(actor, record):
            return None
        if not by_owner and not self._can_act_as_booker(actor, record):
            return None

        result = self._transition(
            record,
            AppointmentStatus.CANCELLED,
            cancelled_by="owner" if by_owner else "booker",
        )
        current_app.logger.info(
            f"Appointment {appointment_id} cancelled by {'owner' if by_owner else 'booker'}."
        )
        if by_owner:
            recipient = self._booker_identifier(record)
            message = f"Your appointment on {format_slot(record)} was cancelled"
        else:
            recipient = record["portfolio_owner_id"]
            message = f"{record['booker_name']} cancelled the appointment on {format_slot(record)}"
        self.notifications.notify(
            actor,
            "appointment",
            recipient,
            message,
            appointment_id=record["id"],
            appointment_date=record["date"],
            appointment_time=record["time"],
            link="/appointments",
        )
        return result

    def reconcile_owners(self):
        """Fills in blank or placeholder owner ids from the portfolio record.

        Safe to run repeatedly: records that already carry an owner are skipped.
        """
        repaired = 0
        for record in self.repository.list_all():
            if self._repair_owner(record) is not record:
                repaired += 1
        if repaired:
            current_app.logger.info(f"Reconciled owner on {repaired} appointments.")
        return repaired

    def received_for(self, identity):
        self.reconcile_owners()
        return [
            record
            for record in self.repository.list_all()
            if identity.owns(record.get("portfolio_owner_id"))
        ]

    def booked_by(self, identity):
        self.reconcile_owners()
        return [
            record
            for record in self.repository.list_all()
            if identity.owns(record.get("booked_by"))
            or identity.owns(record.get("booker_email"))
        ]
