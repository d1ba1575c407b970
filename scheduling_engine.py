import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List

from dateutil.relativedelta import relativedelta

from constants import REPEAT_ASSIGNER, NotificationType, OnCallRole, RepeatUnit, ShiftStatus
from dates import date_range, to_date
from exceptions import DateError, DuplicateShiftError, SourceRangeEmptyError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class RepeatReport:
    created_shifts: int
    skipped_duplicates: int
    total_attempted: int
    failed: int
    source_pattern: List[Dict[str, int]]
    target_start: date
    target_end: date

    def to_dict(self):
        return {
            'success': True,
            'created_shifts': self.created_shifts,
            'skipped_duplicates': self.skipped_duplicates,
            'total_attempted': self.total_attempted,
            'failed': self.failed,
            'source_pattern': self.source_pattern,
            'target_date_range': {
                'start': self.target_start.isoformat(),
                'end': self.target_end.isoformat()
            }
        }


@dataclass
class FillReport:
    start: date
    end: date
    created: List[Dict[str, Any]] = field(default_factory=list)
    skipped: int = 0
    failed: int = 0

    def to_dict(self):
        return {
            'success': True,
            'created_shifts': len(self.created),
            'shifts': self.created,
            'skipped_existing': self.skipped,
            'failed': self.failed,
            'message': f"Successfully created {len(self.created)} shifts from {self.start.isoformat()} to {self.end.isoformat()}"
        }


def _required_date(value, label):
    if value is None or value == '':
        raise ValidationError(f"{label} is required")
    try:
        return to_date(value)
    except DateError as e:
        raise ValidationError(f"{label}: {e.describe()}")


def resolve_target_end(target_start, duration, unit):
    """Work out the last target day from a repeat duration and unit"""
    if duration is None or unit is None or duration == '' or unit == '':
        raise ValidationError('Either target end date or repeat duration with unit must be provided')
    try:
        count = int(duration)
    except (TypeError, ValueError):
        raise ValidationError(f"Repeat duration must be a positive integer, got {duration!r}")
    if isinstance(duration, bool) or count <= 0 or (isinstance(duration, float) and not duration.is_integer()):
        raise ValidationError(f"Repeat duration must be a positive integer, got {duration!r}")

    try:
        unit = RepeatUnit(getattr(unit, 'value', unit))
    except ValueError:
        raise ValidationError('Invalid repeat unit. Must be days, weeks, or months')

    try:
        if unit == RepeatUnit.DAYS:
            return target_start + timedelta(days=count - 1)
        if unit == RepeatUnit.WEEKS:
            return target_start + timedelta(days=count * 7 - 1)
        return add_months(target_start, count) - timedelta(days=1)
    except (OverflowError, ValueError):
        raise ValidationError('Repeat duration is out of range')


def add_months(start, months):
    """
    Move a date forward by whole months, letting a day past the end of the
    target month spill into the next one (Jan 31 + 1 month is Mar 3 in 2025).
    """
    first_of_month = start.replace(day=1) + relativedelta(months=months)
    return first_of_month + timedelta(days=start.day - 1)


class PatternRepeater:
    """Copies the on-call pattern of one date range onto another"""

    def __init__(self, shifts, notifications=None, today=None):
        self.shifts = shifts
        self.notifications = notifications
        self.today = today or date.today

    def repeat(self, source_start, source_end, target_start, target_end=None, duration=None, unit=None):
        # Validate everything before touching the repository
        source_start = _required_date(source_start, 'Source start date')
        source_end = _required_date(source_end, 'Source end date')
        target_start = _required_date(target_start, 'Target start date')
        if source_start >= source_end:
            raise ValidationError('Source start date must be before source end date')

        if target_end is not None and target_end != '':
            target_end = _required_date(target_end, 'Target end date')
            if target_start >= target_end:
                raise ValidationError('Target start date must be before target end date')
        else:
            target_end = resolve_target_end(target_start, duration, unit)

        source_shifts = self.shifts.list(start=source_start, end=source_end)
        if not source_shifts:
            raise SourceRangeEmptyError('No shifts found in the source date range')

        pattern = self.build_pattern(source_shifts, source_start)
        source_days = (source_end - source_start).days + 1
        logger.info(
            f"Repeating {len(source_shifts)} shifts from {source_start} to {source_end} "
            f"({source_days} day cycle) across {target_start} to {target_end}"
        )

        candidates = self._stage(pattern, source_days, target_start, target_end)
        existing_keys = {
            (shift.date, getattr(shift.role, 'value', shift.role))
            for shift in self.shifts.list(start=target_start, end=target_end)
        }

        created = 0
        skipped = 0
        failed = 0
        for shift_date, assignee_id, role, status in candidates:
            key = (shift_date, role.value)
            if key in existing_keys:
                skipped += 1
                continue
            try:
                shift = self.shifts.create(shift_date, assignee_id, role, status)
            except DuplicateShiftError:
                skipped += 1
                existing_keys.add(key)
                continue
            except Exception as e:
                logger.error(f"Error creating {role.value} shift on {shift_date}: {e}")
                failed += 1
                continue
            existing_keys.add(key)
            created += 1
            self._notify_assignment(shift)

        logger.info(f"Repeat finished: {created} created, {skipped} duplicates skipped, {failed} failed")
        return RepeatReport(
            created_shifts=created,
            skipped_duplicates=skipped,
            total_attempted=len(candidates),
            failed=failed,
            source_pattern=[{'day': day, 'shifts': len(pattern[day])} for day in sorted(pattern)],
            target_start=target_start,
            target_end=target_end
        )

    @staticmethod
    def build_pattern(source_shifts, source_start):
        """Map day offset from the source start to the (assignee, role) pairs seen that day"""
        pattern = defaultdict(list)
        for shift in source_shifts:
            offset = (to_date(shift.date) - source_start).days
            pattern[offset].append((shift.assignee_id, OnCallRole(getattr(shift.role, 'value', shift.role))))
        return dict(pattern)

    def _stage(self, pattern, source_days, target_start, target_end):
        today = self.today()
        candidates = []
        for index, day in enumerate(date_range(target_start, target_end)):
            status = ShiftStatus.COMPLETED if day < today else ShiftStatus.SCHEDULED
            for assignee_id, role in pattern.get(index % source_days, []):
                candidates.append((day, assignee_id, role, status))
        return candidates

    def fill(self, start, end, primary_id, backup_id=None):
        """Assign one primary (and optional backup) to every free slot in a range"""
        start = _required_date(start, 'Start date')
        end = _required_date(end, 'End date')
        if start > end:
            raise ValidationError('Start date must not be after end date')
        if primary_id is None or primary_id == '':
            raise ValidationError('Primary user is required')

        assignments = [(OnCallRole.PRIMARY, primary_id)]
        if backup_id is not None and backup_id != '':
            assignments.append((OnCallRole.BACKUP, backup_id))

        today = self.today()
        report = FillReport(start=start, end=end)
        for day in date_range(start, end):
            taken = {getattr(s.role, 'value', s.role) for s in self.shifts.list(start=day, end=day)}
            status = ShiftStatus.COMPLETED if day < today else ShiftStatus.SCHEDULED
            for role, assignee_id in assignments:
                if role.value in taken:
                    report.skipped += 1
                    continue
                try:
                    shift = self.shifts.create(day, assignee_id, role, status)
                except DuplicateShiftError:
                    report.skipped += 1
                    continue
                except Exception as e:
                    logger.error(f"Error creating {role.value} shift on {day}: {e}")
                    report.failed += 1
                    continue
                report.created.append(shift.to_dict())
                self._notify_assignment(shift)

        logger.info(f"Filled {start} to {end}: {len(report.created)} created, {report.skipped} already assigned")
        return report

    def _notify_assignment(self, shift):
        """Tell the assignee about a new shift dated today or later"""
        if self.notifications is None:
            return
        shift_date = to_date(shift.date)
        if shift_date < self.today():
            return
        role = getattr(shift.role, 'value', shift.role)
        role_text = 'primary on-call' if role == OnCallRole.PRIMARY.value else 'backup on-call'
        formatted = f"{shift_date.strftime('%b')} {shift_date.day}, {shift_date.year}"
        try:
            self.notifications.enqueue(
                assignee_id=shift.assignee_id,
                type=NotificationType.SHIFT_ASSIGNED,
                title='New Shift Assignment',
                message=f"You have been assigned as {role_text} for {formatted} by {REPEAT_ASSIGNER}",
                related_id=shift.id
            )
        except Exception as e:
            logger.warning(f"Failed to create shift assignment notification: {e}")
