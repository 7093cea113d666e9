"""Local fallback persistence.

A flat JSON key-value file used when the database is unavailable and for
periodic snapshots. Last writer wins: every write replaces the whole file.
"""
import json
import os
import tempfile
from datetime import datetime, timezone

from flask import current_app

from ..models.db_models import Appointment, Notification, Portfolio, Post, Subscription

SNAPSHOT_COLLECTIONS = (
    "posts",
    "notifications",
    "subscriptions",
    "appointments",
    "portfolios",
)


class LocalStoreError(Exception):
    pass


class LocalStore:
    def __init__(self, path):
        self.path = path

    def _load(self):
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            current_app.logger.warning(
                f"Local store at {self.path} is unreadable, treating as empty: {e}"
            )
            return {}
        if not isinstance(data, dict):
            current_app.logger.warning(
                f"Local store at {self.path} does not hold an object, treating as empty."
            )
            return {}
        return data

    def _dump(self, data):
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, default=str)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise LocalStoreError(f"Could not write local store {self.path}: {e}") from e

    def get(self, key, default=None):
        return self._load().get(key, default)

    def set(self, key, value):
        data = self._load()
        data[key] = value
        self._dump(data)

    def delete(self, key):
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)

    def keys(self, prefix=""):
        return sorted(key for key in self._load() if key.startswith(prefix))

    def update(self, values):
        data = self._load()
        data.update(values)
        self._dump(data)

    def clear(self):
        self._dump({})

    def read_collection(self, name):
        value = self.get(name, [])
        return value if isinstance(value, list) else []

    def write_collection(self, name, records):
        self.set(name, list(records))


def record_timestamp(record):
    """Parses a record's ``updated_at``; naive values are taken as UTC."""
    value = record.get("updated_at") if record else None
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        stamp = datetime.fromisoformat(str(value))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


def newest(primary_record, local_record):
    """Returns whichever copy was updated last, the database copy on ties."""
    if local_record is None:
        return primary_record


def portfolio_key(slug):
    return f"portfolio:{slug}"


def snapshot_collections(store):
    """Writes JSON snapshots of the main collections into the local store."""
    snapshots = {
        "posts": [post.to_dict() for post in Post.query.all()],
        "notifications": [n.to_dict() for n in Notification.query.all()],
        "subscriptions": [s.to_dict() for s in Subscription.query.all()],
        "portfolios": [p.to_dict(include_content=True) for p in Portfolio.query.all()],
    }
    # Appointments written to the fallback while the database was down stay in
    # place, and a local copy newer than the database row is kept
    merged = {a.id: a.to_dict() for a in Appointment.query.all()}
    for record in store.read_collection("appointments"):
        record_id = record.get("id")
        merged[record_id] = newest(merged.get(record_id), record)
    snapshots["appointments"] = list(merged.values())

    values = dict(snapshots)
    for portfolio in snapshots["portfolios"]:
        values[portfolio_key(portfolio["slug"])] = portfolio
    store.update(values)

    counts = {name: len(snapshots[name]) for name in SNAPSHOT_COLLECTIONS}
    current_app.logger.info(f"Local snapshot written to {store.path}: {counts}")
    return counts
