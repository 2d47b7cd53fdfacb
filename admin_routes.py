import logging
import sqlite3

from flask import Blueprint, current_app, jsonify, request

import database
from auth import login_required
from conflicts import find_slot_conflicts
from database import get_aliases, get_db, get_store, reload_store
from io_utils import import_workbook, parse_json_payload
from models import Slot, ValidationError

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin_bp', __name__, url_prefix='/api')


def _persist(write, *args):
    """Write a change that the store already holds; on failure resync and return an error response."""
    try:
        write(get_db(), *args)
    except sqlite3.Error as e:
        logger.exception("Failed to save timetable change")
        reload_store()
        return jsonify({'status': 'error', 'message': f'Failed to save: {e}'}), 500
    return None


def _slot(data, prefix=''):
    if not isinstance(data, dict):
        raise ValidationError(f"'{prefix or 'slot'}' must be an object with group, day and time")
    slot = Slot(str(data.get('group') or '').strip(),
                str(data.get('day') or '').strip(),
                str(data.get('time') or '').strip())
    if not (slot.group and slot.day and slot.time):
        raise ValidationError(f"'{prefix or 'slot'}' needs group, day and time")
    return slot


@admin_bp.route('/schedules', methods=['POST'])
@login_required
def save_class():
    data = request.get_json(silent=True) or {}
    store = get_store()
    try:
        entry = store.upsert(
            data.get('group'), data.get('day'), data.get('time'),
            course=data.get('course'), teacher=data.get('teacher'), room=data.get('room'),
            subject_type=data.get('subjectType'), duration=data.get('duration'),
        )
    except ValidationError as e:
        return jsonify({'status': 'error', 'message': str(e)}), 400

    failed = _persist(database.save_entries, [entry])
    if failed:
        return failed
    warnings = find_slot_conflicts(store.snapshot(), entry.group, entry.day, entry.time,
                                   entry.teacher, entry.room, get_aliases())
    if warnings:
        logger.info("Saved %s with %d conflict warning(s)", entry.key, len(warnings))
    return jsonify({'status': 'success', 'entry': entry.to_dict(), 'conflicts': warnings})


@admin_bp.route('/schedules/check', methods=['POST'])
@login_required
def check_class():
    data = request.get_json(silent=True) or {}
    try:
        slot = _slot(data)
    except ValidationError as e:
        return jsonify({'status': 'error', 'message': str(e)}), 400
    warnings = find_slot_conflicts(get_store().snapshot(), slot.group, slot.day, slot.time,
                                   data.get('teacher') or '', data.get('room') or '', get_aliases())
    return jsonify({'status': 'success', 'conflicts': warnings})


@admin_bp.route('/schedules', methods=['DELETE'])
@login_required
def delete_class():
    data = request.get_json(silent=True) or {}
    try:
        slot = _slot(data)
    except ValidationError as e:
        return jsonify({'status': 'error', 'message': str(e)}), 400

    deleted = get_store().delete(slot.group, slot.day, slot.time)
    if deleted:
        failed = _persist(database.delete_entry, slot.group, slot.day, slot.time)
        if failed:
            return failed
    return jsonify({'status': 'success', 'deleted': deleted})


@admin_bp.route('/schedules/move', methods=['POST'])
@login_required
def move_class():
    data = request.get_json(silent=True) or {}
    try:
        source = _slot(data.get('from'), 'from')
        destination = _slot(data.get('to'), 'to')
    except ValidationError as e:
        return jsonify({'status': 'error', 'message': str(e)}), 400

    result = get_store().move(source, destination)
    if result is None:
        return jsonify({'status': 'error', 'message': 'Source class not found'}), 404
    moved, swapped = result
    failed = _persist(database.save_move, source, moved, swapped)
    if failed:
        return failed
    return jsonify({
        'status': 'success',
        'moved': moved.to_dict(),
        'swapped': swapped.to_dict() if swapped else None,
    })


@admin_bp.route('/schedules/bulk', methods=['POST'])
@login_required
def bulk_import():
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({'status': 'error', 'message': 'Expected a JSON body'}), 400
    try:
        groups, entries = parse_json_payload(data)
        count = get_store().bulk_load(groups, entries)
    except ValidationError as e:
        return jsonify({'status': 'error', 'message': str(e)}), 400

    failed = _persist(database.save_bulk, groups, entries)
    if failed:
        return failed
    return jsonify({'status': 'success', 'imported': count, 'groups': get_store().groups})


@admin_bp.route('/import/excel', methods=['POST'])
@login_required
def import_excel():
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return jsonify({'status': 'error', 'message': 'No file uploaded'}), 400
    try:
        groups, entries = import_workbook(upload.stream, current_app.config['DAYS'])
        count = get_store().bulk_load(groups, entries)
    except ValidationError as e:
        return jsonify({'status': 'error', 'message': str(e)}), 400

    failed = _persist(database.save_bulk, groups, entries)
    if failed:
        return failed
    logger.info("Imported %d classes from %s", count, upload.filename)
    return jsonify({'status': 'success', 'imported': count, 'groups': get_store().groups})


@admin_bp.route('/schedules/clear', methods=['POST'])
@login_required
def clear_schedule():
    removed = get_store().clear()
    failed = _persist(database.clear_entries)
    if failed:
        return failed
    return jsonify({'status': 'success', 'removed': removed})


@admin_bp.route('/groups', methods=['POST'])
@login_required
def add_group():
    data = request.get_json(silent=True) or {}
    name = str(data.get('name') or '').strip()
    try:
        added = get_store().add_group(name)
    except ValidationError as e:
        return jsonify({'status': 'error', 'message': str(e)}), 400
    if not added:
        return jsonify({'status': 'error', 'message': f'Group "{name}" already exists.'}), 409

    failed = _persist(database.save_group, name)
    if failed:
        return failed
    return jsonify({'status': 'success', 'message': f'Group "{name}" added successfully!'})


@admin_bp.route('/groups/<path:name>', methods=['DELETE'])
@login_required
def delete_group(name):
    store = get_store()
    known = name in store.groups
    removed = store.delete_group(name)
    if not known and not removed:
        return jsonify({'status': 'error', 'message': f'Group "{name}" not found'}), 404
    failed = _persist(database.delete_group, name)
    if failed:
        return failed
    return jsonify({'status': 'success', 'message': f'Group "{name}" deleted successfully.',
                    'removed': removed})
