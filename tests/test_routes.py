import io
import json
import sqlite3

import pytest
from openpyxl import load_workbook

import database
from app import create_app


def post_class(client, **fields):
    body = {'group': 'G1', 'day': 'Monday', 'time': '08:00', 'course': 'Algorithms'}
    body.update(fields)
    return client.post('/api/schedules', json=body)


def test_health_and_config(client):
    assert client.get('/api/health').get_json() == {'status': 'ok', 'entries': 0}
    cfg = client.get('/api/config').get_json()
    assert cfg['days'][0] == 'Monday'
    assert cfg['timeSlots'][0] == '08:00'


@pytest.mark.parametrize('method, url', [
    ('post', '/api/schedules'),
    ('delete', '/api/schedules'),
    ('post', '/api/schedules/move'),
    ('post', '/api/schedules/bulk'),
    ('post', '/api/schedules/clear'),
    ('post', '/api/groups'),
    ('delete', '/api/groups/G1'),
    ('post', '/api/import/excel'),
    ('get', '/api/auth/verify'),
])
def test_mutations_require_login(client, method, url):
    resp = getattr(client, method)(url, json={})
    assert resp.status_code == 401
    assert resp.get_json()['status'] == 'error'


def test_login_rejects_bad_password(client):
    resp = client.post('/api/auth/login', json={'username': 'admin', 'password': 'nope'})
    assert resp.status_code == 401


def test_login_with_form_and_logout(client):
    resp = client.post('/api/auth/login', data={'username': 'admin', 'password': 'secret'})
    assert resp.get_json() == {'status': 'success', 'username': 'admin'}
    assert client.get('/api/auth/verify').status_code == 200
    client.post('/api/auth/logout')
    assert client.get('/api/auth/verify').status_code == 401


def test_save_class_reports_conflicts_without_blocking(admin_client):
    assert post_class(admin_client, teacher='Dr. X', room='B110').get_json()['conflicts'] == []

    resp = post_class(admin_client, group='G2', course='Physics', teacher='dr.x', room='b110')

    assert resp.status_code == 200
    body = resp.get_json()
    assert body['entry']['subjectType'] == 'lecture'
    assert sorted(w['type'] for w in body['conflicts']) == ['room', 'teacher']
    assert all(w['group'] == 'G1' for w in body['conflicts'])
    assert len(admin_client.get('/api/schedules').get_json()) == 2


@pytest.mark.parametrize('fields', [
    {'course': ''},
    {'group': ''},
    {'subjectType': 'workshop'},
    {'duration': 0},
])
def test_save_class_rejects_invalid_entries(admin_client, fields):
    resp = post_class(admin_client, **fields)
    assert resp.status_code == 400
    assert admin_client.get('/api/schedules').get_json() == {}


def test_check_slot(admin_client):
    post_class(admin_client, teacher='Dr. X')
    resp = admin_client.post('/api/schedules/check',
                             json={'group': 'G2', 'day': 'Monday', 'time': '08:00', 'teacher': 'Dr. X'})
    assert [w['type'] for w in resp.get_json()['conflicts']] == ['teacher']


def test_conflicts_endpoint_matches_count(admin_client):
    post_class(admin_client, teacher='Dr. X', room='B110')
    post_class(admin_client, group='G2', teacher='Dr. X B202', room='b110')
    post_class(admin_client, group='G3', time='08:45', teacher='Ms. Y', room='A1')

    body = admin_client.get('/api/conflicts').get_json()
    count = admin_client.get('/api/conflicts/count').get_json()['count']

    assert count == len(body['conflicts']) == 2
    assert body['summary'] == {'total': 2, 'teacher': 1, 'room': 1}
    teacher = body['conflicts'][0]
    assert teacher['type'] == 'teacher'
    assert teacher['id'] == 'teacher-Monday-08:00-Dr. X'
    assert [e['group'] for e in teacher['entries']] == ['G1', 'G2']


def test_delete_class(admin_client):
    post_class(admin_client)
    slot = {'group': 'G1', 'day': 'Monday', 'time': '08:00'}
    assert admin_client.delete('/api/schedules', json=slot).get_json()['deleted'] is True
    assert admin_client.delete('/api/schedules', json=slot).get_json()['deleted'] is False
    assert admin_client.delete('/api/schedules', json={'group': 'G1'}).status_code == 400


def test_move_swaps_occupied_destination(admin_client):
    post_class(admin_client, course='Algorithms')
    post_class(admin_client, group='G2', day='Tuesday', time='09:30', course='Physics')

    resp = admin_client.post('/api/schedules/move', json={
        'from': {'group': 'G1', 'day': 'Monday', 'time': '08:00'},
        'to': {'group': 'G2', 'day': 'Tuesday', 'time': '09:30'},
    })

    body = resp.get_json()
    assert body['moved']['course'] == 'Algorithms'
    assert body['swapped']['course'] == 'Physics'
    schedule = admin_client.get('/api/schedules').get_json()
    assert schedule['G2-Tuesday-09:30']['course'] == 'Algorithms'
    assert schedule['G1-Monday-08:00']['course'] == 'Physics'
    assert schedule['G1-Monday-08:00']['group'] == 'G1'


def test_move_missing_source(admin_client):
    resp = admin_client.post('/api/schedules/move', json={
        'from': {'group': 'G1', 'day': 'Monday', 'time': '08:00'},
        'to': {'group': 'G2', 'day': 'Monday', 'time': '08:00'},
    })
    assert resp.status_code == 404


def test_groups_add_and_cascade_delete(admin_client):
    assert admin_client.post('/api/groups', json={'name': 'G1'}).status_code == 200
    assert admin_client.post('/api/groups', json={'name': 'G1'}).status_code == 409
    assert admin_client.post('/api/groups', json={'name': ' '}).status_code == 400
    post_class(admin_client, teacher='Dr. X')
    post_class(admin_client, group='G2', teacher='Dr. X')
    assert admin_client.get('/api/conflicts/count').get_json()['count'] == 1

    resp = admin_client.delete('/api/groups/G1')

    assert resp.get_json()['removed'] == 1
    assert admin_client.get('/api/groups').get_json() == []
    assert list(admin_client.get('/api/schedules').get_json()) == ['G2-Monday-08:00']
    assert admin_client.get('/api/conflicts').get_json()['conflicts'] == []
    assert admin_client.delete('/api/groups/G1').status_code == 404


def test_changes_survive_restart(app, admin_client):
    admin_client.post('/api/groups', json={'name': 'G1'})
    post_class(admin_client, teacher='Dr. X', duration=2)
    post_class(admin_client, time='08:45', course='Physics')
    admin_client.post('/api/schedules/move', json={
        'from': {'group': 'G1', 'day': 'Monday', 'time': '08:45'},
        'to': {'group': 'G1', 'day': 'Friday', 'time': '08:45'},
    })

    restarted = create_app({'DB_PATH': app.config['DB_PATH'], 'LOG_LEVEL': 'WARNING'})
    schedule = restarted.test_client().get('/api/schedules').get_json()

    assert set(schedule) == {'G1-Monday-08:00', 'G1-Friday-08:45'}
    assert schedule['G1-Monday-08:00']['duration'] == 2
    assert restarted.test_client().get('/api/groups').get_json() == ['G1']


def test_bulk_import_is_all_or_nothing(admin_client):
    bad = [
        {'group': 'G1', 'day': 'Monday', 'time': '08:00', 'course': 'A'},
        {'group': 'G1', 'day': 'Monday', 'time': '08:45', 'course': ''},
    ]
    assert admin_client.post('/api/schedules/bulk', json=bad).status_code == 400
    assert admin_client.get('/api/schedules').get_json() == {}

    resp = admin_client.post('/api/schedules/bulk', json={'groups': ['G0'], 'schedule': {
        'G1-Monday-08:00': {'group': 'G1', 'day': 'Monday', 'time': '08:00', 'course': 'A'},
    }})
    assert resp.get_json()['imported'] == 1
    assert resp.get_json()['groups'] == ['G0', 'G1']


def test_clear(admin_client):
    admin_client.post('/api/groups', json={'name': 'G1'})
    post_class(admin_client)
    assert admin_client.post('/api/schedules/clear').get_json()['removed'] == 1
    assert admin_client.get('/api/schedules').get_json() == {}
    assert admin_client.get('/api/groups').get_json() == ['G1']


def test_teacher_views(admin_client):
    post_class(admin_client, teacher='Dr. Daniyar Satybaldiev B110')
    post_class(admin_client, group='G2', time='08:45', teacher='dr. daniiar')
    post_class(admin_client, group='G3', teacher='Ms. Y')

    assert admin_client.get('/api/teachers').get_json() == ['Dr. Daniiar Satybaldiev', 'Ms. Y']
    stats = admin_client.get('/api/teachers/stats').get_json()
    assert stats[0]['teacher'] == 'Dr. Daniiar Satybaldiev'
    assert stats[0]['classes'] == 2
    schedule = admin_client.get('/api/teachers/Dr.%20Daniiar%20Satybaldiev/schedule').get_json()
    assert sorted(e['group'] for e in schedule) == ['G1', 'G2']


def test_day_schedule(admin_client):
    post_class(admin_client)
    post_class(admin_client, day='Tuesday')
    assert [e['day'] for e in admin_client.get('/api/days/Tuesday/schedule').get_json()] == ['Tuesday']


def test_excel_export_and_upload(admin_client):
    post_class(admin_client, teacher='Dr. X', room='B110')
    post_class(admin_client, group='G2', day='Wednesday', course='Physics Lab', subject_type='lab')

    resp = admin_client.get('/api/export/excel')
    assert resp.status_code == 200
    assert 'attachment' in resp.headers['Content-Disposition']
    data = resp.data
    assert 'All Data' in load_workbook(io.BytesIO(data)).sheetnames

    admin_client.post('/api/schedules/clear')
    upload = admin_client.post('/api/import/excel', data={'file': (io.BytesIO(data), 'schedule.xlsx')},
                               content_type='multipart/form-data')

    assert upload.get_json()['imported'] == 2
    schedule = admin_client.get('/api/schedules').get_json()
    assert schedule['G1-Monday-08:00']['teacher'] == 'Dr. X'
    assert schedule['G2-Wednesday-08:00']['subjectType'] == 'lab'


def test_excel_upload_errors(admin_client):
    assert admin_client.post('/api/import/excel', data={}, content_type='multipart/form-data').status_code == 400
    bad = admin_client.post('/api/import/excel', data={'file': (io.BytesIO(b'junk'), 'x.xlsx')},
                            content_type='multipart/form-data')
    assert bad.status_code == 400


def test_json_export(admin_client):
    post_class(admin_client)
    resp = admin_client.get('/api/export/json')
    body = json.loads(resp.data)
    assert list(body['schedule']) == ['G1-Monday-08:00']
    assert 'exportDate' in body


def test_pdf_export(admin_client):
    admin_client.post('/api/groups', json={'name': 'G1'})
    post_class(admin_client, teacher='Dr. X')
    resp = admin_client.get('/api/export/pdf/Monday')
    assert resp.mimetype == 'application/pdf'
    assert resp.data.startswith(b'%PDF')
    assert admin_client.get('/api/export/pdf/Sunday').status_code == 404


def test_save_class_accepts_numeric_fields(admin_client):
    resp = admin_client.post('/api/schedules', json={
        'group': 101, 'day': 'Monday', 'time': '08:00', 'course': 5, 'room': 202,
    })

    assert resp.status_code == 200
    schedule = admin_client.get('/api/schedules').get_json()
    assert schedule['101-Monday-08:00']['course'] == '5'
    assert schedule['101-Monday-08:00']['room'] == '202'


@pytest.mark.parametrize('body', [
    {'schedule': 5},
    {'groups': 5, 'schedule': [{'group': 'G1', 'day': 'Monday', 'time': '08:00', 'course': 'A'}]},
    {'groups': 'G1', 'schedule': [{'group': 'G1', 'day': 'Monday', 'time': '08:00', 'course': 'A'}]},
])
def test_bulk_import_rejects_malformed_documents(admin_client, body):
    resp = admin_client.post('/api/schedules/bulk', json=body)

    assert resp.status_code == 400
    assert admin_client.get('/api/groups').get_json() == []
    assert admin_client.get('/api/schedules').get_json() == {}


def test_failed_write_reloads_timetable(admin_client, monkeypatch):
    post_class(admin_client, course='A')

    def disk_full(db, entries):
        raise sqlite3.OperationalError('disk full')

    monkeypatch.setattr(database, 'save_entries', disk_full)
    resp = post_class(admin_client, course='B')

    assert resp.status_code == 500
    assert resp.get_json() == {'status': 'error', 'message': 'Failed to save: disk full'}
    schedule = admin_client.get('/api/schedules').get_json()
    assert schedule['G1-Monday-08:00']['course'] == 'A'
