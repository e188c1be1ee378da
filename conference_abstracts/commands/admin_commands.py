import bcrypt
import click


@click.command("hash-admin-password")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
def hash_admin_password(password: str):
    """Print a bcrypt hash suitable for ADMIN_PASSWORD_HASH."""
    if len(password) < 8:
        raise click.BadParameter("password must be at least 8 characters", param_hint="--password")
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
    click.echo(hashed)
