import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import inspect as sa_inspect

from conference_abstracts.extensions import db


@click.command("setup")
@click.option("--drop/--no-drop", default=False, help="Drop all tables before creating them (destroys data)")
@with_appcontext
def setup_command(drop: bool):
    """One-shot project setup for fresh systems.

    - Creates any missing tables
    - Reports whether admin credentials are configured

    Safe to run multiple times unless --drop is given.
    """
    engine = db.engine
    current_app.logger.info("setup: starting (engine=%s)", getattr(engine, "name", ""))

    if drop:
        click.confirm("This drops every table. Continue?", abort=True)
        db.drop_all()
        click.echo("✔ Tables dropped")

    try:
        db.create_all()
    except Exception as e:
        current_app.logger.exception("setup: create_all failed: %s", e)
        raise click.ClickException(f"Table creation failed: {e}")

    tables = sorted(sa_inspect(engine).get_table_names())
    click.echo(f"✔ Tables present: {', '.join(tables)}")

    if not current_app.config.get("ADMIN_PASSWORD_HASH"):
        click.echo("ℹ ADMIN_PASSWORD_HASH not set; run 'flask hash-admin-password' and export the result")
    else:
        click.echo(f"✔ Admin login configured for {current_app.config.get('ADMIN_EMAIL')}")

    click.echo("✅ Setup complete")
