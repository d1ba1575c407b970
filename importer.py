"""
Bulk schedule import.

A batch is a list of rows, each naming a date plus the usernames of the
primary and backup on-call people for that day.  Rows come from the JSON
import route or from an uploaded spreadsheet (see ``read_schedule_file``).
Bad rows are reported and skipped; only failing to read the user directory
aborts a batch.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from constants import IMPORT_NOTIFICATION_TITLE, NotificationType, OnCallRole, ShiftStatus
from dates import is_weekend, normalize, to_date
from exceptions import DateError, DuplicateShiftError, ValidationError

logger = logging.getLogger(__name__)

DATE_KEYS = ('date', 'Date')
PRIMARY_KEYS = ('primary', 'Primary', 'primaryUsername', 'primary_username')
BACKUP_KEYS = ('backup', 'Backup', 'backupUsername', 'backup_username')


def _first(record: Mapping, keys):
    for key in keys:
        value = record.get(key)
        if value is not None and value != '':
            return value
    return None


def _field(item, *names):
    for name in names:
        if isinstance(item, Mapping):
            if item.get(name) is not None:
                return item[name]
        elif getattr(item, name, None) is not None:
            return getattr(item, name)
    return None


def _snapshot_key(item):
    raw_date = _field(item, 'date')
    if isinstance(raw_date, str):
        # Stored documents may carry a time component
        raw_date = raw_date[:10]
    role = _field(item, 'role', 'onCallRole', 'on_call_role')
    assignee = _field(item, 'assignee_id', 'assigneeId', 'userId', 'user_id')
    if raw_date is None or role is None or assignee is None:
        return None
    try:
        shift_date = to_date(raw_date)
    except DateError:
        return None
    return shift_date, getattr(role, 'value', role), str(assignee)


@dataclass
class ImportReport:
    created_shifts: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    success: bool = True

    @property
    def created_count(self):
        return sum(1 for s in self.created_shifts if s['action'] == 'created')

    @property
    def updated_count(self):
        return sum(1 for s in self.created_shifts if s['action'] == 'updated')

    def to_dict(self):
        return {
            'success': self.success,
            'message': f"Import completed. Created {self.created_count} shifts, updated {self.updated_count}.",
            'created_shifts': self.created_shifts,
            'created_count': self.created_count,
            'updated_count': self.updated_count,
            'skipped': self.skipped,
            'errors': self.errors
        }


class BulkImporter:
    def __init__(self, shifts, users, notifications=None, today=None):
        self.shifts = shifts
        self.users = users
        self.notifications = notifications
        self.today = today or date.today

    def import_batch(self, records, existing_shifts=None) -> ImportReport:
        """Apply a batch of (date, primary, backup) rows"""
        if not isinstance(records, (list, tuple)):
            raise ValidationError('Invalid data format. Expected array of shifts.')

        # Failing to list users is fatal for the whole batch
        directory = {user.username: user for user in self.users.list()}
        snapshot = {key for key in map(_snapshot_key, existing_shifts or []) if key}

        report = ImportReport()
        created_per_user = Counter()
        today = self.today()

        logger.info(f"Importing {len(records)} schedule rows against {len(snapshot)} known shifts")
        for record in records:
            self._import_record(record, directory, snapshot, today, report, created_per_user)

        self._notify_assignees(created_per_user)
        logger.info(
            f"Import finished: {report.created_count} created, {report.updated_count} updated, "
            f"{len(report.skipped)} skipped, {len(report.errors)} errors"
        )
        return report

    def _import_record(self, record, directory, snapshot, today, report, created_per_user):
        if not isinstance(record, Mapping):
            report.errors.append(f"Skipping row with invalid format: {record!r}")
            return

        raw_date = _first(record, DATE_KEYS)
        if raw_date is None:
            report.errors.append('Skipping row with missing date')
            return
        try:
            day = normalize(raw_date)
        except DateError as e:
            report.errors.append(e.describe())
            return

        for role, keys in ((OnCallRole.PRIMARY, PRIMARY_KEYS), (OnCallRole.BACKUP, BACKUP_KEYS)):
            username = _first(record, keys)
            if username is None:
                continue
            username = str(username).strip()
            user = directory.get(username)
            if user is None:
                report.errors.append(f"User not found: {username}")
                continue

            # Settle each slot on its own so one failure keeps its sibling's work
            try:
                self._apply_slot(day, role, user, snapshot, today, report, created_per_user)
            except Exception as e:
                logger.error(f"Failed to process {role.value} shift for {username} on {day.iso}: {e}")
                report.errors.append(f"Failed to process {role.value} shift for {username} on {day.iso}: {e}")

    def _apply_slot(self, day, role, user, snapshot, today, report, created_per_user):
        label = f"{role.value} shift for {user.username} on {day.iso}"
        if (day.value, role.value, str(user.id)) in snapshot:
            report.skipped.append(f"{label} already exists")
            return

        # Re-check the store right before writing; the snapshot may be stale
        current = self.shifts.find_slot(day.value, role)
        if current is not None and current.assignee_id == user.id:
            report.skipped.append(f"{label} already exists")
            return

        is_past = day.value < today
        if current is None:
            status = ShiftStatus.COMPLETED if is_past else ShiftStatus.SCHEDULED
            try:
                shift = self.shifts.create(day.value, user.id, role, status)
                action = 'created'
            except DuplicateShiftError:
                # Another writer filled the slot in between; fall back to reassignment
                current = self.shifts.find_slot(day.value, role)
                if current is None:
                    raise
                if current.assignee_id == user.id:
                    report.skipped.append(f"{label} already exists")
                    return
                shift = self.shifts.update(current.id, assignee_id=user.id)
                action = 'updated'
        else:
            shift = self.shifts.update(current.id, assignee_id=user.id)
            action = 'updated'

        report.created_shifts.append({
            'id': shift.id,
            'username': user.username,
            'role': role.value,
            'date': day.iso,
            'action': action
        })
        if action == 'created':
            created_per_user[user.id] += 1

        if is_past and is_weekend(day.value):
            self._grant_comp_off(user, day)

    def _grant_comp_off(self, user, day):
        try:
            updated = self.users.increment_comp_offs(user.id)
            logger.info(f"Granted comp-off to {user.username} for weekend shift on {day.iso} (balance {updated.comp_offs})")
        except Exception as e:
            logger.warning(f"Failed to grant comp-off to {user.username} for {day.iso}: {e}")

    def _notify_assignees(self, created_per_user):
        if self.notifications is None:
            return
        for user_id, count in created_per_user.items():
            try:
                self.notifications.enqueue(
                    assignee_id=user_id,
                    type=NotificationType.SHIFT_ASSIGNED,
                    title=IMPORT_NOTIFICATION_TITLE,
                    message=f"{count} new shifts have been assigned to you via schedule import"
                )
            except Exception as e:
                logger.warning(f"Failed to create bulk import notification for user {user_id}: {e}")


def _cell(value):
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    # NaT is a datetime subclass, so check for blanks first
    if pd.isna(value):
        return None
    if isinstance(value, (datetime, date)):
        return value.date().isoformat() if isinstance(value, datetime) else value.isoformat()
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def read_schedule_file(source, filename: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Read a schedule spreadsheet (.xlsx or .csv) into import rows.

    The sheet needs a ``Date`` column and may have ``Primary`` and ``Backup``
    columns; header case does not matter and other columns are ignored.
    """
    name = filename or getattr(source, 'name', None) or (source if isinstance(source, str) else '')
    if str(name).lower().endswith('.csv'):
        frame = pd.read_csv(source)
    else:
        frame = pd.read_excel(source, engine='openpyxl')

    columns = {str(column).strip().lower(): column for column in frame.columns}
    if 'date' not in columns:
        raise ValidationError("Schedule file must have a 'Date' column")

    records = []
    for row in frame.to_dict('records'):
        records.append({
            'date': _cell(row.get(columns['date'])),
            'primary': _cell(row.get(columns.get('primary'))),
            'backup': _cell(row.get(columns.get('backup')))
        })
    logger.info(f"Read {len(records)} rows from schedule file {name or '<stream>'}")
    return records
