"""
SQL-backed repositories used by the schedule engine.

Each repository wraps a SQLAlchemy session handed in by the caller and,
when given an ``EventBus``, announces its writes as change events.  The
engine components only rely on the method names here, so tests swap these
classes for in-memory fakes.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from constants import ShiftStatus
from database import Notification, Shift, User
from events import ChangeKind
from exceptions import DuplicateShiftError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _value(item):
    return getattr(item, 'value', item)


class ShiftRepository:
    UPDATABLE_FIELDS = ('assignee_id', 'status', 'date', 'role')

    def __init__(self, session, events=None):
        self.session = session
        self.events = events

    def _publish(self, kind, shift):
        if self.events is not None:
            self.events.emit('shift', kind, shift.to_dict())

    def _query(self, start=None, end=None, status=None, assignee_id=None, role=None):
        query = self.session.query(Shift)
        if start is not None:
            query = query.filter(Shift.date >= start)
        if end is not None:
            query = query.filter(Shift.date <= end)
        if status is not None:
            query = query.filter(Shift.status == _value(status))
        if assignee_id is not None:
            query = query.filter(Shift.assignee_id == assignee_id)
        if role is not None:
            query = query.filter(Shift.role == _value(role))
        return query

    def list(self, start=None, end=None, status=None, assignee_id=None, role=None):
        """List shifts in an inclusive date range, ordered by date"""
        query = self._query(start, end, status, assignee_id, role)
        return query.order_by(Shift.date, Shift.role).all()

    def count(self, start=None, end=None, status=None):
        return self._query(start, end, status).count()

    def get(self, shift_id):
        shift = self.session.get(Shift, shift_id)
        if shift is None:
            raise NotFoundError(f"Shift {shift_id} not found")
        return shift

    def find_slot(self, shift_date, role):
        return self.session.query(Shift).filter(
            Shift.date == shift_date,
            Shift.role == _value(role)
        ).first()

    def create(self, shift_date, assignee_id, role, status=ShiftStatus.SCHEDULED):
        now = datetime.utcnow()
        shift = Shift(
            date=shift_date,
            assignee_id=assignee_id,
            role=_value(role),
            status=_value(status),
            created_at=now,
            updated_at=now
        )
        try:
            self.session.add(shift)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateShiftError(shift_date, role)
        except Exception:
            self.session.rollback()
            raise

        self._publish(ChangeKind.CREATED, shift)
        return shift

    def update(self, shift_id, **patch):
        unknown = set(patch) - set(self.UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update shift fields: {', '.join(sorted(unknown))}")

        shift = self.get(shift_id)
        try:
            for field, value in patch.items():
                setattr(shift, field, _value(value))
            shift.updated_at = datetime.utcnow()
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateShiftError(patch.get('date', shift.date), patch.get('role', shift.role))
        except Exception:
            self.session.rollback()
            raise

        self._publish(ChangeKind.UPDATED, shift)
        return shift


class UserRepository:
    UPDATABLE_FIELDS = ('first_name', 'last_name', 'email', 'role', 'comp_offs', 'active')

    def __init__(self, session, events=None):
        self.session = session
        self.events = events

    def _publish(self, kind, user):
        if self.events is not None:
            self.events.emit('user', kind, user.to_dict())

    def list(self, active_only=False):
        query = self.session.query(User)
        if active_only:
            query = query.filter(User.active == True)
        return query.order_by(User.username).all()

    def get(self, user_id):
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def get_by_username(self, username):
        return self.session.query(User).filter(User.username == username).first()

    def update(self, user_id, **patch):
        unknown = set(patch) - set(self.UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update user fields: {', '.join(sorted(unknown))}")
        if 'comp_offs' in patch and patch['comp_offs'] < 0:
            raise ValidationError("comp_offs cannot be negative")

        user = self.get(user_id)
        try:
            for field, value in patch.items():
                setattr(user, field, value)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self._publish(ChangeKind.UPDATED, user)
        return user

    def increment_comp_offs(self, user_id, by=1):
        """Add comp-off days with a single UPDATE so concurrent grants don't clobber each other"""
        try:
            updated = self.session.query(User).filter(User.id == user_id).update(
                {User.comp_offs: User.comp_offs + by},
                synchronize_session=False
            )
            if not updated:
                raise NotFoundError(f"User {user_id} not found")
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        user = self.get(user_id)
        self.session.refresh(user)
        self._publish(ChangeKind.UPDATED, user)
        return user


class NotificationSink:
    """Stores notification records; delivery happens elsewhere."""

    def __init__(self, session, events=None):
        self.session = session
        self.events = events

    def enqueue(self, assignee_id, type, title, message, related_id=None):
        try:
            notification = Notification(
                assignee_id=assignee_id,
                type=_value(type),
                title=title,
                message=message,
                related_id=str(related_id) if related_id is not None else None
            )
            self.session.add(notification)
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.warning(f"Failed to enqueue notification for user {assignee_id}: {e}")
            return None

        if self.events is not None:
            try:
                self.events.emit('notification', ChangeKind.CREATED, notification.to_dict())
            except Exception as e:
                logger.warning(f"Failed to publish notification event: {e}")
        return notification

    def list_for(self, assignee_id, limit=50):
        return self.session.query(Notification).filter(
            Notification.assignee_id == assignee_id
        ).order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
