import os

# --- CONFIG ---
DB_PATH = os.getenv('TIMETABLE_DB', 'timetable.db')
SECRET_KEY = os.getenv('SECRET_KEY', 'your_very_secret_key_for_sessions')
ADMIN_USERNAME = os.getenv('ADMIN_USERNAME', 'admin')
ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD', 'admin123')
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
TEACHER_ALIASES_FILE = os.getenv('TEACHER_ALIASES_FILE')

DAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']

# Lesson start times; the grid columns of every day
TIME_SLOTS = [
    '08:00', '08:45', '09:30', '10:15', '11:00', '11:45', '12:30',
    '13:10', '14:00', '14:45', '15:30', '16:15', '17:00', '17:45',
]

DEFAULT_GROUPS = []
