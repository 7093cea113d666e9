import os
import sys
from dotenv import load_dotenv

load_dotenv()

project_root = os.path.abspath(os.path.dirname(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import alembic.command
import alembic.config
import click
from foliogram import create_app, db, scheduler, migrate
from foliogram.services.local_store import LocalStoreError, snapshot_collections

app = create_app(os.getenv("FLASK_CONFIG") or "default")


@app.cli.command("seed-templates")
def seed_templates_cli():
    """CLI command to seed the portfolio templates."""
    with app.app_context():
        added = app.extensions["foliogram"].portfolios.seed_templates()
        print(f"Added {added} templates.")


@app.cli.command("reconcile-appointments")
def reconcile_appointments_cli():
    """Fills in missing appointment owners from their portfolios."""
    with app.app_context():
        repaired = app.extensions["foliogram"].appointments.reconcile_owners()
        print(f"Reconciled {repaired} appointments.")


@app.cli.command("snapshot")
def snapshot_cli():
    """Writes a local JSON snapshot of posts, notifications, subscriptions, appointments and portfolios."""
    with app.app_context():
        counts = snapshot_collections(app.local_store)
        for name, count in counts.items():
            print(f"{name}: {count}")


@app.cli.command("create-admin")
@click.argument("username")
@click.argument("email")
@click.password_option()
def create_admin_cli(username, email, password):
    """Creates an admin account."""
    from foliogram.models.db_models import User

    with app.app_context():
        user = User(username=username, email=email.strip().lower(), role="admin")
        user.set_password(password)
        db.session.add(user)
        try:
            db.session.commit()
            print(f"Admin {username} created.")
        except Exception as e:
            db.session.rollback()
            print(f"Error creating admin {username}: {e}")


def apply_migrations(app_instance):
    """Applies Alembic migrations at startup."""
    with app_instance.app_context():
        try:
            app_instance.logger.info("Configuring Alembic for database migrations...")
            alembic_cfg = alembic.config.Config(os.path.join(migrate.directory, "alembic.ini"))
            alembic_cfg.set_main_option("script_location", migrate.directory)
            alembic_cfg.set_main_option(
                "sqlalchemy.url", app_instance.config["SQLALCHEMY_DATABASE_URI"]
            )

            app_instance.logger.info("Attempting to apply database migrations...")
            alembic.command.upgrade(alembic_cfg, "head")
            app_instance.logger.info(
                "Database migrations applied successfully (or already up to date)."
            )
        except Exception as e:
            app_instance.logger.error(f"Error applying database migrations: {e}")


def run_reconcile_appointments():
    with app.app_context():
        app.extensions["foliogram"].appointments.reconcile_owners()


def run_snapshot():
    with app.app_context():
        try:
            snapshot_collections(app.local_store)
        except LocalStoreError as e:
            app.logger.error(f"Scheduled snapshot failed: {e}")


if __name__ == "__main__":
    if not app.config.get("TESTING", False):
        if not app.debug or os.environ.get("WERKZEUG_RUN_MAIN") == "true":
            apply_migrations(app)
            if not scheduler.running:
                scheduler.add_job(
                    func=run_reconcile_appointments,
                    trigger="interval",
                    minutes=app.config["RECONCILE_INTERVAL_MINUTES"],
                    id="reconcile_appointments_job",
                )
                scheduler.add_job(
                    func=run_snapshot,
                    trigger="interval",
                    minutes=app.config["SNAPSHOT_INTERVAL_MINUTES"],
                    id="local_snapshot_job",
                )

                try:
                    scheduler.start()
                    app.logger.info("Scheduler started with jobs.")
                except Exception as e:
                    app.logger.error(f"Error starting scheduler: {e}")

                import atexit

                atexit.register(
                    lambda: scheduler.shutdown() if scheduler.running else None
                )
                app.logger.info("Scheduler shutdown registered via atexit.")
            else:
                app.logger.info("Scheduler already running.")
        else:
            app.logger.info(
                "Scheduler not started (Werkzeug reloader process or debug mode without WERKZEUG_RUN_MAIN)."
            )
    else:
        app.logger.info("Scheduler not started (app is in TESTING mode).")

    app_port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=app_port, debug=app.debug)
