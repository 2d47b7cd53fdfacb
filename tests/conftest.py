import pytest

from app import create_app
from models import ScheduleEntry


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'DB_PATH': str(tmp_path / 'timetable.db'),
        'SECRET_KEY': 'test-secret',
        'ADMIN_USERNAME': 'admin',
        'ADMIN_PASSWORD': 'secret',
        'LOG_LEVEL': 'WARNING',
    })
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    resp = client.post('/api/auth/login', json={'username': 'admin', 'password': 'secret'})
    assert resp.status_code == 200
    return client


@pytest.fixture
def make_entry():
    def _make(group='COMSE-21', day='Monday', time='08:00', course='Algorithms',
              teacher='', room='', subject_type='lecture', duration=1):
        return ScheduleEntry(group=group, day=day, time=time, course=course, teacher=teacher,
                             room=room, subject_type=subject_type, duration=duration)
    return _make
