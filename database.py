import logging
import sqlite3

from flask import current_app, g
from werkzeug.security import generate_password_hash

from models import ScheduleEntry

logger = logging.getLogger(__name__)


# --- DATABASE HELPERS ---
def connect(path):
    db = sqlite3.connect(path)
    db.row_factory = sqlite3.Row
    return db


def get_db():
    db = getattr(g, '_database', None)
    if db is None:
        db = connect(current_app.config['DB_PATH'])
        g._database = db
    return db


def close_connection(exception):
    db = getattr(g, '_database', None)
    if db is not None:
        db.close()


def init_db(db, admin_username, admin_password):
    cur = db.cursor()
    cur.executescript('''
        CREATE TABLE IF NOT EXISTS student_groups (
            name TEXT PRIMARY KEY,
            position INTEGER NOT NULL DEFAULT 0
        );
        CREATE TABLE IF NOT EXISTS schedule_entries (
            group_name TEXT NOT NULL,
            day TEXT NOT NULL,
            time TEXT NOT NULL,
            course TEXT NOT NULL,
            teacher TEXT NOT NULL DEFAULT '',
            room TEXT NOT NULL DEFAULT '',
            subject_type TEXT NOT NULL DEFAULT 'lecture',
            duration INTEGER NOT NULL DEFAULT 1,
            PRIMARY KEY (group_name, day, time)
        );
        CREATE TABLE IF NOT EXISTS admins (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL
        );
    ''')

    cur.execute("SELECT * FROM admins")
    if cur.fetchone() is None:
        cur.execute("INSERT INTO admins (username, password_hash) VALUES (?, ?)",
                    (admin_username, generate_password_hash(admin_password)))
        logger.info("Seeded default admin account '%s'", admin_username)

    db.commit()


def load_timetable(db):
    """Return (groups, entries) as stored."""
    groups = [row['name'] for row in db.execute('SELECT name FROM student_groups ORDER BY position, rowid')]
    entries = [
        ScheduleEntry(
            group=row['group_name'], day=row['day'], time=row['time'], course=row['course'],
            teacher=row['teacher'], room=row['room'], subject_type=row['subject_type'],
            duration=row['duration'],
        )
        for row in db.execute('SELECT * FROM schedule_entries')
    ]
    return groups, entries


def _write_entry(db, entry):
    db.execute('''
        INSERT OR REPLACE INTO schedule_entries
            (group_name, day, time, course, teacher, room, subject_type, duration)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    ''', (entry.group, entry.day, entry.time, entry.course, entry.teacher, entry.room,
          entry.subject_type, entry.duration))


def _write_group(db, name):
    db.execute('''
        INSERT OR IGNORE INTO student_groups (name, position)
        VALUES (?, (SELECT COALESCE(MAX(position), -1) + 1 FROM student_groups))
    ''', (name,))


def save_entries(db, entries):
    for entry in entries:
        _write_entry(db, entry)
    db.commit()


def delete_entry(db, group, day, time):
    db.execute('DELETE FROM schedule_entries WHERE group_name = ? AND day = ? AND time = ?',
               (group, day, time))
    db.commit()


def save_move(db, source, moved, swapped):
    """Persist a move: the destination row is written and the source row rewritten or removed."""
    if swapped is None:
        db.execute('DELETE FROM schedule_entries WHERE group_name = ? AND day = ? AND time = ?',
                   (source.group, source.day, source.time))
    _write_entry(db, moved)
    if swapped is not None:
        _write_entry(db, swapped)
    db.commit()


def save_group(db, name):
    _write_group(db, name)
    db.commit()


def delete_group(db, name):
    db.execute('DELETE FROM schedule_entries WHERE group_name = ?', (name,))
    db.execute('DELETE FROM student_groups WHERE name = ?', (name,))
    db.commit()


def save_bulk(db, groups, entries):
    try:
        for name in groups:
            _write_group(db, name)
        for entry in entries:
            _write_group(db, entry.group)
            _write_entry(db, entry)
        db.commit()
    except sqlite3.Error:
        db.rollback()
        raise


def clear_entries(db):
    db.execute('DELETE FROM schedule_entries')
    db.commit()


# --- APP STATE ---
def get_store():
    return current_app.extensions['schedule_store']


def get_aliases():
    return current_app.config['TEACHER_ALIASES']


def reload_store():
    """Re-read the timetable after a failed write so memory matches the database again."""
    groups, entries = load_timetable(get_db())
    get_store().replace_all(groups, entries)
    logger.warning("Timetable reloaded from %s", current_app.config['DB_PATH'])
