import click
from flask import current_app
from flask.cli import AppGroup

from conference_abstracts.services import notification_service
from conference_abstracts.utils.model_utils import notification_utils

notifications_cli = AppGroup("notifications", help="Submitter notification outbox.")


@notifications_cli.command("dispatch")
@click.option("--limit", type=int, default=None, help="Maximum events to process (defaults to NOTIFICATIONS_BATCH_SIZE)")
def dispatch_command(limit):
    """Send queued notifications and retry failed ones with attempts left."""
    summary = notification_service.dispatch_pending(limit=limit)
    click.echo(f"✔ processed={summary['processed']} sent={summary['sent']} failed={summary['failed']}")


@notifications_cli.command("pending")
def pending_command():
    """Show how many notifications are waiting to be sent."""
    events = notification_utils.list_dispatchable(current_app.config.get("NOTIFICATIONS_MAX_ATTEMPTS", 3))
    click.echo(f"{len(events)} notification(s) waiting")
