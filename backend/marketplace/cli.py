# Overview: Flask CLI command groups for bootstrap, scheduled jobs and local tooling.

# backend/marketplace/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create-admin --email admin@example.com --password "Password123"
#   Create an admin account (prompts if options are omitted).
#
# Scheduled jobs:
# - python -m flask jobs run-once
#   Offer every job to the lease table once and run the ones that are due.
# - python -m flask jobs scheduler
#   Run the ticker until SIGINT/SIGTERM.
#
# Keys and webhooks:
# - python -m flask keys generate --out-dir ./keys
#   Write a fresh RSA key pair for access tokens.
# - python -m flask stripe sign event.json
#   Print a Stripe-Signature header for a local webhook payload.

import os
import signal
import threading

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import MarketplaceError
from .extensions import db
from .models.auth import ROLE_ADMIN
from .services import auth_service, schedule_service, token_service
from .services.payment_service import signature_header


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate every table."""
    if current_app.config.get("ENVIRONMENT") == "production":
        raise click.ClickException("reset-db is disabled in production")
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create-admin')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_admin(email, password):
    """Create an admin account."""
    try:
        user = auth_service.create_user(email, password, role=ROLE_ADMIN)
    except MarketplaceError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created admin {user.email} (ID: {user.id})")


@click.group('jobs')
def jobs_group():
    """Scheduled maintenance jobs."""


@jobs_group.command('run-once')
@with_appcontext
def run_jobs_once():
    """Run every job whose lease is free right now."""
    results = schedule_service.run_due_jobs(current_app._get_current_object())
    if not results:
        click.echo("No jobs were due")
    for name, result in results.items():
        click.echo(f"{name}: {result}")


@jobs_group.command('scheduler')
@click.option('--tick', type=float, default=None, help='Seconds between ticks (default SCHEDULER_TICK_SECONDS)')
@with_appcontext
def run_scheduler(tick):
    """Run the job ticker in the foreground until interrupted."""
    app = current_app._get_current_object()
    stop = threading.Event()

    def _stop(signum, frame):
        click.echo(f"Received signal {signum}, stopping scheduler")
        stop.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    schedule_service.run_scheduler(app, stop, tick_seconds=tick)


@click.group('keys')
def keys_group():
    """Access-token signing keys."""


@keys_group.command('generate')
@click.option('--out-dir', type=click.Path(file_okay=False), default='.', show_default=True)
@click.option('--bits', type=int, default=2048, show_default=True)
def generate_keys(out_dir, bits):
    """Write jwt_private.pem and jwt_public.pem."""
    private_pem, public_pem = token_service.generate_key_pair(bits)
    os.makedirs(out_dir, exist_ok=True)
    private_path = os.path.join(out_dir, "jwt_private.pem")
    public_path = os.path.join(out_dir, "jwt_public.pem")
    with open(private_path, "w", encoding="utf-8") as fh:
        fh.write(private_pem)
    os.chmod(private_path, 0o600)
    with open(public_path, "w", encoding="utf-8") as fh:
        fh.write(public_pem)
    click.echo(f"PASS Wrote {private_path} and {public_path}")


@click.group('stripe')
def stripe_group():
    """Local payment provider helpers."""


@stripe_group.command('sign')
@click.argument('payload_file', type=click.File('rb'))
@with_appcontext
def sign_payload(payload_file):
    """Print a signature header for PAYLOAD_FILE using the webhook secret."""
    secret = current_app.config["STRIPE_WEBHOOK_SIGNING_SECRET"]
    if not secret:
        raise click.ClickException("STRIPE_WEBHOOK_SIGNING_SECRET is not set")
    click.echo(signature_header(payload_file.read(), secret))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(jobs_group)
    app.cli.add_command(keys_group)
    app.cli.add_command(stripe_group)
