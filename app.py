#!/usr/bin/env python3
"""
RosterPro on-call scheduling service.

Exposes the schedule engine over a small JSON API: bulk schedule import
(JSON rows or an uploaded spreadsheet), pattern repetition, fixed-pair range
fill and the auto-completion sweep.  The sweep is meant to be triggered by a
scheduler (cron hitting the route, or ``flask --app app sweep``).
"""

import io
import logging
import os
from datetime import datetime

import click
from flask import Flask, jsonify, request

from database import db, init_db
from events import EventBus
from exceptions import NotFoundError, RosterError, ValidationError
from importer import BulkImporter, read_schedule_file
from repositories import NotificationSink, ShiftRepository, UserRepository
from scheduling_engine import PatternRepeater
from sweeper import AutoCompletionSweeper

# Configure logging
logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Configuration
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///rosterpro.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'rosterpro-secret-key-change-in-production')

db.init_app(app)

change_events = EventBus()
app.extensions['change_events'] = change_events


def _log_change(event):
    logger.debug(f"{event.entity} {event.payload.id} {event.kind.value}")


change_events.subscribe(_log_change)


def _repositories():
    """Build request-scoped repositories over the current session"""
    events = app.extensions['change_events']
    return (
        ShiftRepository(db.session, events),
        UserRepository(db.session, events),
        NotificationSink(db.session, events)
    )


def _param(data, *names):
    """First non-empty value among snake_case / camelCase spellings"""
    for name in names:
        value = data.get(name)
        if value is not None and value != '':
            return value
    return None


def _error(message, status):
    return jsonify({'success': False, 'error': message}), status


# API Routes
@app.route('/api/users', methods=['GET'])
def api_users():
    """List the user directory"""
    try:
        _, users, _ = _repositories()
        active_only = request.args.get('active') in ('1', 'true', 'yes')
        result = [user.to_dict() for user in users.list(active_only=active_only)]
        return jsonify({'success': True, 'users': result, 'count': len(result)})
    except Exception as e:
        logger.error(f"Error fetching users: {str(e)}")
        return _error(str(e), 500)


@app.route('/api/shifts', methods=['GET'])
def api_shifts():
    """List shifts with optional date range, status and assignee filters"""
    try:
        shifts, _, _ = _repositories()
        start_date = request.args.get('start_date')
        end_date = request.args.get('end_date')
        start = datetime.strptime(start_date, '%Y-%m-%d').date() if start_date else None
        end = datetime.strptime(end_date, '%Y-%m-%d').date() if end_date else None
        assignee_id = request.args.get('assignee_id', type=int)
        status = request.args.get('status')
    except ValueError as e:
        return _error(f"Invalid filter: {e}", 400)

    try:
        result = [s.to_dict() for s in shifts.list(start=start, end=end, status=status, assignee_id=assignee_id)]
        return jsonify({'success': True, 'shifts': result, 'count': len(result)})
    except Exception as e:
        logger.error(f"Error fetching shifts: {str(e)}")
        return _error(str(e), 500)


@app.route('/api/schedule/import', methods=['POST'])
def import_schedule():
    """Import a batch of {date, primary, backup} rows"""
    data = request.get_json(silent=True) or {}
    rows = data.get('shifts')
    if not isinstance(rows, list):
        return _error('Invalid data format. Expected array of shifts.', 400)

    existing = _param(data, 'existing_shifts', 'existingShifts') or []
    try:
        shifts, users, notifications = _repositories()
        report = BulkImporter(shifts, users, notifications).import_batch(rows, existing)
        return jsonify(report.to_dict())
    except ValidationError as e:
        return _error(str(e), 400)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error importing schedule: {str(e)}")
        return _error('Failed to import shifts', 500)


@app.route('/api/schedule/import-file', methods=['POST'])
def import_schedule_file():
    """Import an uploaded .xlsx or .csv schedule"""
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return _error('No schedule file uploaded', 400)

    try:
        rows = read_schedule_file(io.BytesIO(upload.read()), filename=upload.filename)
    except ValidationError as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.error(f"Error reading schedule file {upload.filename}: {str(e)}")
        return _error(f"Could not read schedule file: {e}", 400)

    try:
        shifts, users, notifications = _repositories()
        report = BulkImporter(shifts, users, notifications).import_batch(rows)
        return jsonify(report.to_dict())
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error importing schedule file: {str(e)}")
        return _error('Failed to import shifts', 500)


@app.route('/api/schedule/repeat-shifts', methods=['POST'])
def repeat_shifts():
    """Repeat the pattern of a source range across a target range"""
    data = request.get_json(silent=True) or {}
    try:
        shifts, _, notifications = _repositories()
        report = PatternRepeater(shifts, notifications).repeat(
            source_start=_param(data, 'source_start_date', 'sourceStartDate'),
            source_end=_param(data, 'source_end_date', 'sourceEndDate'),
            target_start=_param(data, 'target_start_date', 'targetStartDate'),
            target_end=_param(data, 'target_end_date', 'targetEndDate'),
            duration=_param(data, 'repeat_duration', 'repeatDuration'),
            unit=_param(data, 'repeat_unit', 'repeatUnit')
        )
        return jsonify(report.to_dict())
    except ValidationError as e:
        return _error(str(e), 400)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error in repeat shifts: {str(e)}")
        return _error(str(e) or 'Failed to repeat shifts', 500)


@app.route('/api/schedule/fill', methods=['POST'])
def fill_schedule():
    """Assign one primary/backup pair to every free slot in a range"""
    data = request.get_json(silent=True) or {}
    try:
        shifts, users, notifications = _repositories()
        primary_id = _param(data, 'primary_user_id', 'primaryUserId')
        backup_id = _param(data, 'backup_user_id', 'backupUserId')
        for user_id in (primary_id, backup_id):
            if user_id is not None:
                users.get(int(user_id))

        report = PatternRepeater(shifts, notifications).fill(
            _param(data, 'start_date', 'startDate'),
            _param(data, 'end_date', 'endDate'),
            int(primary_id) if primary_id is not None else None,
            int(backup_id) if backup_id is not None else None
        )
        return jsonify(report.to_dict())
    except (ValidationError, NotFoundError) as e:
        return _error(str(e), 400)
    except (TypeError, ValueError) as e:
        return _error(f"Invalid user id: {e}", 400)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error filling schedule: {str(e)}")
        return _error(str(e), 500)


@app.route('/api/schedule/auto-complete', methods=['GET', 'POST'])
def auto_complete():
    """Run the completion sweep (POST) or report how many shifts are waiting (GET)"""
    shifts, users, _ = _repositories()
    sweeper = AutoCompletionSweeper(shifts, users)

    if request.method == 'GET':
        try:
            return jsonify({
                'pending_completion': sweeper.pending_count(),
                'last_checked': datetime.utcnow().isoformat()
            })
        except Exception as e:
            logger.error(f"Status check error: {str(e)}")
            return _error('Failed to check completion status', 500)

    try:
        return jsonify(sweeper.sweep().to_dict())
    except Exception as e:
        db.session.rollback()
        logger.error(f"Auto-completion error: {str(e)}")
        return _error('Failed to auto-complete shifts', 500)


@app.route('/api/notifications', methods=['GET'])
def api_notifications():
    """Recent notifications for one user"""
    assignee_id = request.args.get('assignee_id', type=int)
    if assignee_id is None:
        return _error('assignee_id is required', 400)
    try:
        _, _, notifications = _repositories()
        result = [n.to_dict() for n in notifications.list_for(assignee_id)]
        return jsonify({'success': True, 'notifications': result, 'count': len(result)})
    except Exception as e:
        logger.error(f"Error fetching notifications: {str(e)}")
        return _error(str(e), 500)


_db_init_done = False

# Database initialization
@app.before_request
def _init_db_once():
    global _db_init_done
    if _db_init_done or app.config.get('TESTING'):
        return
    db.create_all()
    _db_init_done = True


# CLI commands
@app.cli.command('init-db')
@click.option('--seed', is_flag=True, help='Add sample users to an empty database.')
def init_db_command(seed):
    """Create tables (and sample users with --seed)."""
    added = init_db(seed=seed)
    click.echo(f"Database ready ({added} sample users added)")


@app.cli.command('sweep')
def sweep_command():
    """Complete elapsed shifts and grant weekend comp-offs."""
    shifts, users, _ = _repositories()
    report = AutoCompletionSweeper(shifts, users).sweep()
    click.echo(report.to_dict()['message'])
    for grant in report.comp_off_grants:
        click.echo(f"  comp-off: {grant['username']} -> {grant['new_balance']}")
    for error in report.errors:
        click.echo(f"  error: {error}", err=True)


@app.cli.command('import-schedule')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
def import_schedule_command(path):
    """Import a .xlsx or .csv schedule file."""
    try:
        rows = read_schedule_file(path)
    except RosterError as e:
        raise click.ClickException(str(e))
    shifts, users, notifications = _repositories()
    report = BulkImporter(shifts, users, notifications).import_batch(rows)
    click.echo(report.to_dict()['message'])
    for error in report.errors:
        click.echo(f"  error: {error}", err=True)


# Error handlers
@app.errorhandler(404)
def not_found(error):
    return jsonify({'success': False, 'error': 'Resource not found'}), 404


@app.errorhandler(500)
def internal_error(error):
    logger.error(f"Internal server error: {str(error)}")
    return jsonify({'success': False, 'error': 'Internal server error'}), 500


if __name__ == '__main__':
    is_production = os.environ.get('FLASK_ENV') == 'production'

    with app.app_context():
        init_db()

    if is_production:
        app.run(host='0.0.0.0', port=5005, debug=False)
    else:
        app.run(host='127.0.0.1', port=5005, debug=True)
