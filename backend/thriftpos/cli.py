# Overview: Flask CLI command groups for bootstrap and setup.

# backend/thriftpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users / terminals:
# - python -m flask users create --username cashier1 --display-name "Front Cashier"
# - python -m flask terminals create --number 1 --name "Front Counter" --location "Main Floor"
#
# Gift cards:
# - python -m flask gift-cards issue --amount 25.00 --recipient "Jane Doe"

import click
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .models import User, Terminal


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that don't exist yet."""
    db.create_all()
    click.echo("PASS Database initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """Staff user commands."""


@users_group.command('create')
@click.option('--username', required=True, help='Unique username')
@click.option('--display-name', help='Name shown on receipts')
@with_appcontext
def create_user_cli(username, display_name):
    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"FAIL User {username} already exists")
        return

    user = User(username=username, display_name=display_name, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user: {user.username} (ID {user.id})")


@click.group('terminals')
def terminals_group():
    """POS terminal commands."""


@terminals_group.command('create')
@click.option('--number', type=int, required=True, help='Terminal number (used in transaction numbers)')
@click.option('--name', required=True, help='Terminal name')
@click.option('--location', help='Location in store')
@with_appcontext
def create_terminal_cli(number, name, location):
    """
    Create a new POS terminal.

    Example:
        flask terminals create --number 1 --name "Front Counter" --location "Main Floor"
    """
    existing = db.session.query(Terminal).filter(
        (Terminal.terminal_number == number) | (Terminal.terminal_name == name)
    ).first()
    if existing:
        click.echo(f"FAIL Terminal number {number} or name {name!r} already in use")
        return

    terminal = Terminal(terminal_number=number, terminal_name=name, location=location, is_active=True)
    db.session.add(terminal)
    db.session.commit()

    click.echo(f"PASS Created terminal: T{terminal.terminal_number:03d} - {terminal.terminal_name}")
    click.echo(f"   Location: {terminal.location or 'Not specified'}")
    click.echo(f"   Terminal ID: {terminal.id}")


@click.group('gift-cards')
def gift_cards_group():
    """Gift card commands."""


@gift_cards_group.command('issue')
@click.option('--amount', required=True, help='Initial balance, e.g. 25.00')
@click.option('--recipient', help='Recipient name')
@click.option('--email', help='Recipient email')
@with_appcontext
def issue_gift_card_cli(amount, recipient, email):
    from .services import gift_card_service

    try:
        card = gift_card_service.create_gift_card(
            initial_balance=amount,
            recipient_name=recipient,
            recipient_email=email,
        )
    except PosError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Issued gift card {card.gift_card_number} with balance ${card.current_balance}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(terminals_group)
    app.cli.add_command(gift_cards_group)
