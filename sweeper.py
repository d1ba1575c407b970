import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List

from constants import ShiftStatus
from dates import is_weekend, to_date

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    updated_count: int = 0
    comp_off_grants: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'success': True,
            'message': f"Auto-completion completed. Updated {self.updated_count} shifts.",
            'updated_shifts': self.updated_count,
            'comp_off_updates': self.comp_off_grants,
            'errors': self.errors
        }


class AutoCompletionSweeper:
    """Marks elapsed SCHEDULED shifts COMPLETED and credits weekend comp-offs"""

    def __init__(self, shifts, users, today=None):
        self.shifts = shifts
        self.users = users
        self.today = today or date.today

    def cutoff(self):
        """Last day eligible for completion: yesterday"""
        return self.today() - timedelta(days=1)

    def pending_count(self):
        return self.shifts.count(end=self.cutoff(), status=ShiftStatus.SCHEDULED)

    def sweep(self):
        cutoff = self.cutoff()
        # A failed listing aborts the sweep; per-shift failures do not
        pending = self.shifts.list(status=ShiftStatus.SCHEDULED, end=cutoff)
        logger.info(f"Auto-completing {len(pending)} shifts dated on or before {cutoff}")

        report = SweepReport()
        for shift in pending:
            shift_id = shift.id
            try:
                self.shifts.update(shift_id, status=ShiftStatus.COMPLETED)
            except Exception as e:
                logger.error(f"Failed to update shift {shift_id}: {e}")
                report.errors.append(f"Failed to update shift {shift_id}: {e}")
                continue
            report.updated_count += 1

            if is_weekend(to_date(shift.date)):
                self._grant_comp_off(shift, report)

        logger.info(f"Auto-completion updated {report.updated_count} shifts, granted {len(report.comp_off_grants)} comp-offs")
        return report

    def _grant_comp_off(self, shift, report):
        try:
            user = self.users.increment_comp_offs(shift.assignee_id)
        except Exception as e:
            logger.error(f"Failed to grant comp-off for shift {shift.id} to user {shift.assignee_id}: {e}")
            report.errors.append(f"Failed to grant comp-off for shift {shift.id}: {e}")
            return
        report.comp_off_grants.append({
            'assignee_id': shift.assignee_id,
            'username': user.username,
            'new_balance': user.comp_offs
        })
