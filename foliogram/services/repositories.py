"""Appointment storage.

Appointments are handled as JSON-shaped records (``Appointment.to_dict()``)
so that the same record can live in the database or in the local store.
``WriteThroughRepository`` tries the database first and falls back to the
local store, reporting where each write landed.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..models.db_models import Appointment
from .local_store import LocalStoreError, newest

PRIMARY = "primary"
FALLBACK = "fallback"


class AppointmentStoreError(Exception):
    """Raised when neither the database nor the local store accepted a write."""


@dataclass
class WriteResult:
    record: dict
    stored_in: str
    error: Optional[str] = None

    @property
    def degraded(self):
        return self.stored_in == FALLBACK


class AppointmentRepository(ABC):
    @abstractmethod
    def get(self, appointment_id):
        pass

    @abstractmethod
    def list_all(self):
        pass

    @abstractmethod
    def save(self, record):
        pass


class SqlAppointmentRepository(AppointmentRepository):
    def __init__(self, session):
        self.session = session

    def get(self, appointment_id):
        appointment = self.session.get(Appointment, appointment_id)
        return appointment.to_dict() if appointment else None

    def list_all(self):
        query = self.session.query(Appointment).order_by(Appointment.created_at)
        return [appointment.to_dict() for appointment in query.all()]

    def save(self, record):
        appointment = self.session.get(Appointment, record["id"])
        if appointment is None:
            appointment = Appointment(id=record["id"])
            self.session.add(appointment)
        appointment.update_from_dict(record)
        self.session.commit()
        return appointment.to_dict()

    def rollback(self):
        self.session.rollback()


class LocalAppointmentRepository(AppointmentRepository):
    collection = "appointments"

    def __init__(self, store):
        self.store = store

    def get(self, appointment_id):
        for record in self.store.read_collection(self.collection):
            if record.get("id") == appointment_id:
                return dict(record)
        return None

    def list_all(self):
        return [dict(record) for record in self.store.read_collection(self.collection)]

    def save(self, record):
        records = [
            existing
            for existing in self.store.read_collection(self.collection)
            if existing.get("id") != record["id"]
        ]
        records.append(dict(record))
        self.store.write_collection(self.collection, records)
        return dict(record)


class WriteThroughRepository(AppointmentRepository):
    """Database first, local store second.

    Reads merge both stores: records that only exist locally are added, and
    when both hold a copy the one with the later ``updated_at`` wins. Writes
    that the database rejects are written locally and reported as
    ``stored_in="fallback"``. Local records are not copied back to the
    database automatically.
    """

    def __init__(self, primary, fallback):
        self.primary = primary
        self.fallback = fallback

    def get(self, appointment_id):
        try:
            record = self.primary.get(appointment_id)
        except SQLAlchemyError as e:
            self.primary.rollback()
            current_app.logger.warning(
                f"Appointment {appointment_id} lookup failed in database, using local store: {e}"
            )
            record = None
        return newest(record, self.fallback.get(appointment_id))

    def list_all(self):
        try:
            records = self.primary.list_all()
        except SQLAlchemyError as e:
            self.primary.rollback()
            current_app.logger.warning(
                f"Listing appointments failed in database, serving local store only: {e}"
            )
            return self.fallback.list_all()
        local = {record.get("id"): record for record in self.fallback.list_all()}
        merged = [newest(record, local.pop(record["id"], None)) for record in records]
        return merged + list(local.values())

    def save(self, record):
        snapshot = dict(record)
        try:
            return WriteResult(record=self.primary.save(snapshot), stored_in=PRIMARY)
        except SQLAlchemyError as e:
            self.primary.rollback()
            current_app.logger.error(
                f"Database write failed for appointment {snapshot['id']}, writing to local store: {e}"
            )
            primary_error = str(e)

        try:
            saved = self.fallback.save(snapshot)
        except LocalStoreError as e:
            current_app.logger.error(
                f"Local store write also failed for appointment {snapshot['id']}: {e}"
            )
            raise AppointmentStoreError(
                f"Appointment {snapshot['id']} could not be saved: {primary_error}; {e}"
            ) from e
        return WriteResult(record=saved, stored_in=FALLBACK, error=primary_error)
