from datetime import date
from enum import Enum


class OnCallRole(str, Enum):
    PRIMARY = 'PRIMARY'
    BACKUP = 'BACKUP'


class ShiftStatus(str, Enum):
    SCHEDULED = 'SCHEDULED'
    COMPLETED = 'COMPLETED'
    SWAPPED = 'SWAPPED'


class UserRole(str, Enum):
    ADMIN = 'ADMIN'
    MANAGER = 'MANAGER'
    EMPLOYEE = 'EMPLOYEE'


class NotificationType(str, Enum):
    SHIFT_ASSIGNED = 'SHIFT_ASSIGNED'
    SHIFT_SWAPPED = 'SHIFT_SWAPPED'
    GENERAL = 'general'


class RepeatUnit(str, Enum):
    DAYS = 'days'
    WEEKS = 'weeks'
    MONTHS = 'months'


# Spreadsheet serial dates count days from 1899-12-30 (1900 date system).
# 25569 is the serial number of 1970-01-01.
EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_UNIX_EPOCH_OFFSET = 25569

# Three-letter month table used by DD-MMM-YY import dates. Case sensitive.
MONTH_ABBREVIATIONS = {
    'Jan': 1, 'Feb': 2, 'Mar': 3, 'Apr': 4,
    'May': 5, 'Jun': 6, 'Jul': 7, 'Aug': 8,
    'Sep': 9, 'Oct': 10, 'Nov': 11, 'Dec': 12,
}

# Two-digit years below this pivot are 20YY, the rest 19YY
TWO_DIGIT_YEAR_PIVOT = 50

WEEKEND_DAYS = (5, 6)  # Saturday, Sunday

REPEAT_ASSIGNER = 'System (Repeat Schedule)'
IMPORT_NOTIFICATION_TITLE = 'Schedule Import Complete'
