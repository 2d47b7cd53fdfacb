import io
import logging
from datetime import date, timedelta

from flask import Blueprint, Flask, Response, current_app, jsonify, send_file

import config
import database
from admin_routes import admin_bp
from auth import auth_bp
from conflicts import count_conflicts, scan_conflicts, summarize
from database import get_aliases, get_store
from directory import build_directory, entries_for_teacher, teacher_stats
from io_utils import export_json, export_workbook, render_day_pdf
from models import ValidationError, entry_dicts
from normalizer import KNOWN_ALIASES, load_aliases, merge_aliases
from store import ScheduleStore

logger = logging.getLogger(__name__)

api_bp = Blueprint('api_bp', __name__, url_prefix='/api')

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def configure_logging(level):
    root = logging.getLogger()
    if not any(getattr(h, 'timetable_handler', False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('TIMETABLE | %(asctime)s | %(levelname)s | %(name)s | %(message)s'))
        handler.timetable_handler = True
        root.addHandler(handler)
    root.setLevel(level)


def _grid():
    return current_app.config['DAYS'], current_app.config['TIME_SLOTS']


# --- ROUTES ---
@api_bp.route('/health')
def health():
    return jsonify({'status': 'ok', 'entries': len(get_store())})


@api_bp.route('/config')
def api_config():
    days, time_slots = _grid()
    return jsonify({'days': days, 'timeSlots': time_slots})


@api_bp.route('/schedules')
def api_schedules():
    return jsonify(get_store().to_dict())


@api_bp.route('/groups')
def api_groups():
    return jsonify(get_store().groups)


@api_bp.route('/days/<day>/schedule')
def api_day_schedule(day):
    return jsonify(entry_dicts(get_store().entries_for_day(day)))


@api_bp.route('/conflicts')
def api_conflicts():
    days, time_slots = _grid()
    found = scan_conflicts(get_store().snapshot(), days, time_slots, get_aliases())
    return jsonify({'conflicts': [c.to_dict() for c in found], 'summary': summarize(found)})


@api_bp.route('/conflicts/count')
def api_conflict_count():
    days, time_slots = _grid()
    return jsonify({'count': count_conflicts(get_store().snapshot(), days, time_slots, get_aliases())})


@api_bp.route('/teachers')
def api_teachers():
    return jsonify(build_directory(get_store().snapshot(), get_aliases()))


@api_bp.route('/teachers/stats')
def api_teacher_stats():
    return jsonify(teacher_stats(get_store().snapshot(), get_aliases()))


@api_bp.route('/teachers/<path:name>/schedule')
def api_teacher_schedule(name):
    entries = entries_for_teacher(get_store().snapshot(), name, get_aliases())
    return jsonify(entry_dicts(entries))


@api_bp.route('/export/excel')
def export_timetable_excel():
    days, time_slots = _grid()
    store = get_store()
    out = export_workbook(store.groups, store.snapshot(), days, time_slots)
    return send_file(out, mimetype=XLSX_MIMETYPE, as_attachment=True,
                     download_name=f'university-schedule-{date.today().isoformat()}.xlsx')


@api_bp.route('/export/json')
def export_timetable_json():
    store = get_store()
    body = export_json(store.groups, store.to_dict())
    return Response(body, mimetype='application/json', headers={
        'Content-Disposition': f'attachment; filename=university-schedule-{date.today().isoformat()}.json',
    })


@api_bp.route('/export/pdf/<day>')
def export_timetable_pdf(day):
    days, time_slots = _grid()
    if day not in days:
        return jsonify({'status': 'error', 'message': f'Unknown day "{day}"'}), 404
    store = get_store()
    pdf = render_day_pdf(day, store.groups, store.snapshot(), time_slots)
    return send_file(io.BytesIO(pdf), mimetype='application/pdf', as_attachment=True,
                     download_name=f'timetable-{day.lower()}.pdf')


def handle_validation_error(e):
    return jsonify({'status': 'error', 'message': str(e)}), 400


def _aliases(setting):
    if setting is None:
        if config.TEACHER_ALIASES_FILE:
            return load_aliases(config.TEACHER_ALIASES_FILE)
        return KNOWN_ALIASES
    if isinstance(setting, str):
        return load_aliases(setting)
    return merge_aliases(setting)


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_mapping(
        SECRET_KEY=config.SECRET_KEY,
        DB_PATH=config.DB_PATH,
        DAYS=list(config.DAYS),
        TIME_SLOTS=list(config.TIME_SLOTS),
        DEFAULT_GROUPS=list(config.DEFAULT_GROUPS),
        ADMIN_USERNAME=config.ADMIN_USERNAME,
        ADMIN_PASSWORD=config.ADMIN_PASSWORD,
        LOG_LEVEL=config.LOG_LEVEL,
        TEACHER_ALIASES=None,
    )
    if test_config:
        app.config.update(test_config)
    app.permanent_session_lifetime = timedelta(days=30)  # "Remember Me"

    configure_logging(app.config['LOG_LEVEL'])
    app.config['TEACHER_ALIASES'] = _aliases(app.config['TEACHER_ALIASES'])

    db = database.connect(app.config['DB_PATH'])
    try:
        database.init_db(db, app.config['ADMIN_USERNAME'], app.config['ADMIN_PASSWORD'])
        groups, entries = database.load_timetable(db)
        if not groups and app.config['DEFAULT_GROUPS']:
            groups = list(app.config['DEFAULT_GROUPS'])
            database.save_bulk(db, groups, [])
    finally:
        db.close()
    app.extensions['schedule_store'] = ScheduleStore(groups, entries)
    logger.info("Loaded %d groups and %d classes from %s", len(groups), len(entries), app.config['DB_PATH'])

    app.teardown_appcontext(database.close_connection)
    app.register_error_handler(ValidationError, handle_validation_error)
    app.register_blueprint(api_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    return app


if __name__ == '__main__':
    create_app().run(debug=True)
