from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

from constants import ShiftStatus, UserRole

db = SQLAlchemy()


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False)
    first_name = db.Column(db.String(100), nullable=False, default='')
    last_name = db.Column(db.String(100), nullable=False, default='')
    email = db.Column(db.String(120), nullable=True)
    role = db.Column(db.String(10), nullable=False, default=UserRole.EMPLOYEE.value)  # ADMIN, MANAGER, EMPLOYEE
    comp_offs = db.Column(db.Integer, nullable=False, default=0)
    active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    shifts = db.relationship('Shift', backref='assignee', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email,
            'role': self.role,
            'comp_offs': self.comp_offs,
            'active': self.active,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }


class Shift(db.Model):
    __tablename__ = 'shifts'
    # One assignment per on-call slot per day
    __table_args__ = (
        db.UniqueConstraint('date', 'role', name='uq_shift_date_role'),
    )

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)
    assignee_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    role = db.Column(db.String(10), nullable=False)  # PRIMARY, BACKUP
    status = db.Column(db.String(10), nullable=False, default=ShiftStatus.SCHEDULED.value)  # SCHEDULED, COMPLETED, SWAPPED
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'date': self.date.isoformat(),
            'assignee_id': self.assignee_id,
            'role': self.role,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    assignee_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    read = db.Column(db.Boolean, default=False)
    related_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'assignee_id': self.assignee_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'read': self.read,
            'related_id': self.related_id,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }


SAMPLE_USERS = [
    # username, first, last, email, role
    ('asmith', 'Alice', 'Smith', 'alice@rosterpro.local', UserRole.MANAGER.value),
    ('bjones', 'Bob', 'Jones', 'bob@rosterpro.local', UserRole.EMPLOYEE.value),
    ('cnguyen', 'Chi', 'Nguyen', 'chi@rosterpro.local', UserRole.EMPLOYEE.value),
    ('dpatel', 'Dev', 'Patel', 'dev@rosterpro.local', UserRole.EMPLOYEE.value),
    ('egarcia', 'Elena', 'Garcia', 'elena@rosterpro.local', UserRole.EMPLOYEE.value),
]


def init_db(seed=False):
    """Create tables and optionally add sample users to an empty database"""
    db.create_all()

    if not seed or User.query.count() > 0:
        return 0

    for username, first_name, last_name, email, role in SAMPLE_USERS:
        db.session.add(User(
            username=username,
            first_name=first_name,
            last_name=last_name,
            email=email,
            role=role
        ))
    db.session.commit()
    return len(SAMPLE_USERS)
