# Overview: Flask CLI command group for bootstrap, seeding and inspection.

# backend/armory/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask armory <command> [options]
#
# Bootstrap:
# - python -m flask armory init-db [--drop --yes]
#   Create all tables (DEV/TEST; use `flask db upgrade` for migrations).
#
# Seeding:
# - python -m flask armory create-officer --service-no PN-1001 --rank Sergeant --name "A. Officer"
#   Register an officer in the directory.
# - python -m flask armory create-armory --reference-id ARM-01 --name "North" --code NS1 \
#       --location "Block C" --unit "Rapid Response" [--stock stock.json]
#   Create an armory; stock.json holds {"weapons": [...], "ammunition": [...], "equipment": [...]}.
#
# Inspection:
# - python -m flask armory renewals [--armory-id 1] [--as-of 2026-11-01] [--state overdue]
#   Renewal schedule of open distributions.
# - python -m flask armory audit [--armory-id 1]
#   Conservation check of every stock line; exits 1 when any line is off.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Armory
from .services import directory_service, inventory_service, renewal_service
from .services.errors import UnknownArmoryError
from .validation import ValidationError, parse_datetime


@click.group('armory')
def armory_group():
    """Armory bootstrap, seeding and inspection commands."""


@armory_group.command('init-db')
@click.option('--drop', is_flag=True, help='Drop all tables first (deletes all data)')
@click.option('--yes', is_flag=True, help='Confirm --drop')
@with_appcontext
def init_db(drop, yes):
    """Create all tables."""
    if drop:
        if not yes:
            raise click.UsageError("--drop requires --yes")
        db.drop_all()
        click.echo("WARN  Dropped all tables")
    db.create_all()
    click.echo("PASS Tables created")


@armory_group.command('create-officer')
@click.option('--service-no', required=True)
@click.option('--rank', required=True)
@click.option('--name', required=True)
@click.option('--status', default='active', show_default=True)
@with_appcontext
def create_officer(service_no, rank, name, status):
    """Register an officer in the directory."""
    try:
        officer = directory_service.create_officer(service_no=service_no, rank=rank, name=name, status=status)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created officer {officer.rank} {officer.name} (ID: {officer.id}, Service No: {officer.service_no})")


@armory_group.command('create-armory')
@click.option('--reference-id', required=True)
@click.option('--name', required=True)
@click.option('--code', required=True)
@click.option('--location', required=True)
@click.option('--unit', required=True)
@click.option('--stock', 'stock_file', type=click.File('r'), default=None, help='JSON file with initial stock lines')
@click.option('--actor', default='cli', show_default=True, help='Actor id recorded on the armory')
@with_appcontext
def create_armory(reference_id, name, code, location, unit, stock_file, actor):
    """Create an armory, optionally with initial stock."""
    stock = {}
    if stock_file is not None:
        try:
            stock = json.load(stock_file)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"Invalid stock file: {e}")

    try:
        armory = inventory_service.create_armory(
            reference_id=reference_id,
            name=name,
            code=code,
            location=location,
            unit=unit,
            actor_id=actor,
            weapons=stock.get("weapons"),
            ammunition=stock.get("ammunition"),
            equipment=stock.get("equipment"),
        )
    except ValidationError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created armory {armory.name} (ID: {armory.id}, Ref: {armory.reference_id})")
    for line in armory.lines:
        click.echo(f"  {line.item_type:<11} {line.item_key:<30} qty={line.quantity}")


@armory_group.command('renewals')
@click.option('--armory-id', type=int, default=None)
@click.option('--as-of', default=None, help='ISO-8601 instant to classify against (default: now)')
@click.option('--state', type=click.Choice(['overdue', 'due', 'pending']), default=None)
@with_appcontext
def renewals(armory_id, as_of, state):
    """Show the renewal schedule of open distributions."""
    try:
        schedule = renewal_service.get_renewal_schedule(
            now=parse_datetime(as_of, "as_of"),
            armory_id=armory_id,
        )
    except ValidationError as e:
        raise click.ClickException(str(e))
    except UnknownArmoryError as e:
        raise click.ClickException(e.message)

    summary = schedule["summary"]
    click.echo(
        f"As of {schedule['as_of']}: {summary['overdue']} overdue, {summary['due']} due, "
        f"{summary['pending']} pending ({summary['total']} open)"
    )
    for item in schedule["items"]:
        if state and item["renewal_state"] != state:
            continue
        click.echo(
            f"  {item['distribution_no']:<16} {item['renewal_state']:<8} due {item['renewal_due']} "
            f"squad={item['squad_name']} stored={item['stored_renewal_status']}"
        )


@armory_group.command('audit')
@click.option('--armory-id', type=int, default=None, help='Audit one armory (default: all)')
@with_appcontext
def audit(armory_id):
    """Check stock conservation: total == on shelf + outstanding on open distributions."""
    if armory_id is not None:
        armory_ids = [armory_id]
    else:
        armory_ids = [row.id for row in db.session.query(Armory.id).order_by(Armory.id).all()]

    failures = 0
    for aid in armory_ids:
        try:
            issues = inventory_service.audit_conservation(aid)
        except UnknownArmoryError as e:
            raise click.ClickException(e.message)

        if not issues:
            click.echo(f"PASS Armory {aid}: conservation holds")
            continue

        failures += len(issues)
        click.echo(f"FAIL Armory {aid}: {len(issues)} line(s) out of balance")
        for issue in issues:
            click.echo(
                f"  {issue.item_type} {issue.item_key}: total={issue.total_quantity} "
                f"on_shelf={issue.quantity} outstanding={issue.outstanding}"
            )

    if failures:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(armory_group)
