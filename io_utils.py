import io
import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, IO, Iterable, List, Sequence, Tuple, Union

import pandas as pd
from fpdf import FPDF
from openpyxl import load_workbook
from openpyxl.utils import get_column_letter

from models import ScheduleEntry, ValidationError
from normalizer import extract_teacher_room

logger = logging.getLogger(__name__)

BytesOrFile = Union[bytes, IO]

ALL_DATA_SHEET = 'All Data'
FLAT_COLUMNS = ['Group', 'Day', 'Time', 'Course', 'Teacher', 'Room', 'Type', 'Duration']

# Column headers of the Ala-Too workbook and the lesson start they stand for
ALATOO_TIME_SLOTS = [
    ('08.00-08.40', '08:00'),
    ('08.45-09.25', '08:45'),
    ('09.30-10.10', '09:30'),
    ('10.15-10.55', '10:15'),
    ('11.00-11.40', '11:00'),
    ('11.45-12.25', '11:45'),
    ('12:30-13.10', '12:30'),
    ('13.10-13.55', '13:10'),
    ('14.00-14.40', '14:00'),
    ('14:45 - 15:25', '14:45'),
    ('15:30 - 16:10', '15:30'),
    ('16:15 - 16:55', '16:15'),
    ('17:00 - 17:40', '17:00'),
    ('17:45 - 18:25', '17:45'),
]
ALATOO_SHEET = re.compile(r'^(MONDAY|TUESDAY|WEDNESDAY|THURSDAY|FRIDAY|SATURDAY)\s+\S+')
ALATOO_GROUP = re.compile(r'^(COMSE|COMFCI|COMCEH|MATDAIS|MATMIE|EEAIR|IEMIT|COM-|MATH-)', re.IGNORECASE)
ALATOO_GROUP_COL = 3
ALATOO_HEADER_MARK = '08.00'

_TIME = re.compile(r'^(\d{1,2})[:.](\d{2})(?::\d{2})?$')


class ImportFormatError(ValidationError):
    """The uploaded file does not hold a timetable we can read."""


def _read_bytes(src: BytesOrFile) -> bytes:
    if isinstance(src, (bytes, bytearray)):
        return bytes(src)
    if hasattr(src, 'seek'):
        src.seek(0)
    return src.read()


def _cell(value) -> str:
    if value is None:
        return ''
    if isinstance(value, float) and pd.isna(value):
        return ''
    return str(value).strip()


def clean_time(value) -> str:
    """'8:00', '08.00', '08:00:00' -> '08:00'. Anything else is returned stripped."""
    text = _cell(value)
    m = _TIME.match(text)
    if not m:
        return text
    return f"{int(m.group(1)):02d}:{m.group(2)}"


def _duration(value) -> int:
    text = _cell(value)
    if not text:
        return 1
    try:
        return int(float(text))
    except ValueError:
        raise ImportFormatError(f"Duration must be a number, got '{text}'")


def guess_subject_type(course: str, room: str) -> str:
    course_lower, room_lower = course.lower(), room.lower()
    if 'lab' in course_lower or 'практика' in course_lower or 'lab' in room_lower:
        return 'lab'
    if 'seminar' in course_lower or 'семинар' in course_lower:
        return 'seminar'
    return 'lecture'


def _unique(items: Iterable[str]) -> List[str]:
    seen = []
    for item in items:
        if item and item not in seen:
            seen.append(item)
    return seen


# --- EXCEL EXPORT ---
def _cell_text(entry: ScheduleEntry) -> str:
    parts = [entry.course]
    if entry.teacher:
        parts.append(entry.teacher)
    if entry.room:
        parts.append(entry.room)
    return '\n'.join(parts)


def export_workbook(groups: Sequence[str], entries: Iterable[ScheduleEntry],
                    days: Sequence[str], time_slots: Sequence[str]) -> io.BytesIO:
    """One sheet per day (groups x time slots) plus a flat 'All Data' sheet for re-import."""
    entries = list(entries)
    by_key = {e.key: e for e in entries}
    out = io.BytesIO()
    with pd.ExcelWriter(out, engine='openpyxl') as writer:
        for day in days:
            rows = []
            for group in groups:
                row = {'Group': group}
                for time in time_slots:
                    entry = by_key.get(f"{group}-{day}-{time}")
                    row[time] = _cell_text(entry) if entry else ''
                rows.append(row)
            df = pd.DataFrame(rows, columns=['Group'] + list(time_slots))
            df.to_excel(writer, sheet_name=day[:31], index=False)
            ws = writer.sheets[day[:31]]
            ws.column_dimensions['A'].width = 18
            for col in range(2, len(time_slots) + 2):
                ws.column_dimensions[get_column_letter(col)].width = 22

        flat = pd.DataFrame(
            [[e.group, e.day, e.time, e.course, e.teacher, e.room, e.subject_type, e.duration]
             for e in entries],
            columns=FLAT_COLUMNS,
        )
        flat.to_excel(writer, sheet_name=ALL_DATA_SHEET, index=False)
    out.seek(0)
    logger.info("Exported %d entries over %d day sheets", len(entries), len(days))
    return out


# --- EXCEL IMPORT ---
def import_workbook(src: BytesOrFile, days: Sequence[str]) -> Tuple[List[str], List[ScheduleEntry]]:
    """Parse an uploaded workbook into (groups, entries).

    Tries, in order: the flat 'All Data' sheet, the Ala-Too university layout
    ('MONDAY Spring25' sheets), and day-named grid sheets as written by
    export_workbook.
    """
    data = _read_bytes(src)
    try:
        sheets: Dict[str, pd.DataFrame] = pd.read_excel(io.BytesIO(data), sheet_name=None,
                                                        header=None, dtype=str)
    except Exception as e:
        raise ImportFormatError(f"Failed to parse Excel file: {e}")

    if ALL_DATA_SHEET in sheets:
        groups, entries = _parse_flat_sheet(sheets[ALL_DATA_SHEET])
        source = ALL_DATA_SHEET
    elif any(ALATOO_SHEET.match(name) for name in sheets):
        groups, entries = parse_alatoo_workbook(data)
        source = 'Ala-Too layout'
    else:
        groups, entries = _parse_day_sheets(sheets, days)
        source = 'day sheets'

    if not entries and not groups:
        raise ImportFormatError(
            'No valid data found in file. Make sure it has an "All Data" sheet or day-named sheets.')
    logger.info("Parsed %d entries and %d groups from %s", len(entries), len(groups), source)
    return groups, entries


def _parse_flat_sheet(df: pd.DataFrame) -> Tuple[List[str], List[ScheduleEntry]]:
    if df.empty:
        return [], []
    header = [_cell(v).lower() for v in df.iloc[0].tolist()]
    wanted = [c.lower() for c in FLAT_COLUMNS]
    # older exports have no Type/Duration columns
    position = {name: header.index(name) for name in wanted if name in header}
    for required in ('group', 'day', 'time', 'course'):
        if required not in position:
            raise ImportFormatError(f"'{ALL_DATA_SHEET}' sheet is missing the '{required}' column")

    entries = []
    for raw in df.iloc[1:].itertuples(index=False):
        row = list(raw)

        def get(name):
            return _cell(row[position[name]]) if name in position else ''

        group, day, time, course = get('group'), get('day'), clean_time(get('time')), get('course')
        if not group or not day or not time or not course:
            continue
        room = get('room')
        entries.append(ScheduleEntry(
            group=group, day=day, time=time, course=course,
            teacher=get('teacher'), room=room,
            subject_type=get('type').lower() or 'lecture',
            duration=_duration(get('duration')),
        ))
    return _unique(e.group for e in entries), entries


def _parse_day_sheets(sheets: Dict[str, pd.DataFrame], days: Sequence[str]) -> Tuple[List[str], List[ScheduleEntry]]:
    groups, entries = [], []
    for day in days:
        df = sheets.get(day)
        if df is None or len(df.index) < 2:
            continue
        times = [clean_time(v) for v in df.iloc[0].tolist()[1:]]
        for raw in df.iloc[1:].itertuples(index=False):
            row = list(raw)
            group = _cell(row[0])
            if not group:
                continue
            groups.append(group)
            for time, value in zip(times, row[1:]):
                parts = [p.strip() for p in _cell(value).split('\n')]
                course = parts[0] if parts else ''
                if not course or not time:
                    continue
                teacher = parts[1] if len(parts) > 1 else ''
                room = parts[2] if len(parts) > 2 else ''
                entries.append(ScheduleEntry(
                    group=group, day=day, time=time, course=course,
                    teacher=teacher, room=room,
                    subject_type=guess_subject_type(course, room),
                ))
    return _unique(groups), entries


def _merge_spans(ws) -> Dict[Tuple[int, int], int]:
    # (row, col) of a merged range's top-left cell -> number of columns it covers
    spans = {}
    for rng in ws.merged_cells.ranges:
        width = rng.max_col - rng.min_col + 1
        if width > 1:
            spans[(rng.min_row, rng.min_col)] = width
    return spans


def _find_time_header(ws) -> Tuple[int, int]:
    for row in ws.iter_rows(min_row=1, max_row=min(10, ws.max_row)):
        for cell in row:
            if cell.value is not None and ALATOO_HEADER_MARK in str(cell.value):
                return cell.row, cell.column
    return -1, -1


def parse_alatoo_workbook(data: bytes) -> Tuple[List[str], List[ScheduleEntry]]:
    """Read the Ala-Too university timetable layout.

    Each 'DAY <term>' sheet has a time header row (found by '08.00'), group
    names in the third column, and cells 'Course\\nTeacher Room'. A cell merged
    across several time columns lasts that many slots.
    """
    wb = load_workbook(io.BytesIO(data), data_only=True)
    groups, entries = [], []
    for ws in wb.worksheets:
        m = ALATOO_SHEET.match(ws.title)
        if not m:
            continue
        day = m.group(1).capitalize()
        spans = _merge_spans(ws)
        header_row, first_col = _find_time_header(ws)
        if header_row == -1:
            logger.warning("Could not find time header in sheet %s", ws.title)
            continue

        count = 0
        for row_idx in range(header_row + 2, ws.max_row + 1):
            group = _cell(ws.cell(row=row_idx, column=ALATOO_GROUP_COL).value)
            if not ALATOO_GROUP.match(group):
                continue
            groups.append(group)
            for offset, (_, time) in enumerate(ALATOO_TIME_SLOTS):
                col_idx = first_col + offset
                value = _cell(ws.cell(row=row_idx, column=col_idx).value)
                if not value or 'LUNCH' in value:
                    continue
                lines = value.split('\n')
                course = lines[0].strip()
                if not course:
                    continue
                teacher, room = extract_teacher_room(lines[1].strip() if len(lines) > 1 else '')
                entries.append(ScheduleEntry(
                    group=group, day=day, time=time, course=course,
                    teacher=teacher, room=room,
                    subject_type=guess_subject_type(course, room),
                    duration=spans.get((row_idx, col_idx), 1),
                ))
                count += 1
        logger.info("Found %d classes in sheet %s", count, ws.title)
    return _unique(groups), entries


# --- JSON ---
def export_json(groups: Sequence[str], schedule: Dict[str, dict]) -> str:
    return json.dumps({
        'groups': list(groups),
        'schedule': schedule,
        'exportDate': datetime.now(timezone.utc).isoformat(),
    }, indent=2, ensure_ascii=False)


def parse_json_payload(data) -> Tuple[List[str], List[ScheduleEntry]]:
    """Accept either a list of entries or {'groups': [...], 'schedule': {key: entry}}."""
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except ValueError as e:
            raise ImportFormatError(f"Invalid JSON: {e}")
    if isinstance(data, list):
        records = data
        groups = None
    elif isinstance(data, dict) and 'schedule' in data:
        schedule = data['schedule'] or {}
        if isinstance(schedule, dict):
            records = list(schedule.values())
        elif isinstance(schedule, list):
            records = schedule
        else:
            raise ImportFormatError("'schedule' must be an object or a list of entries")
        groups = data.get('groups')
        if groups is not None and not isinstance(groups, list):
            raise ImportFormatError("'groups' must be a list of group names")
    else:
        raise ImportFormatError('Invalid data format')
    if not records:
        raise ImportFormatError('No schedule entries found in file')
    entries = [ScheduleEntry.from_dict(r) for r in records if isinstance(r, dict)]
    if groups is None:
        groups = _unique(e.group for e in entries)
    return [str(g).strip() for g in groups if g is not None and str(g).strip()], entries


# --- PDF ---
def _latin1(text: str) -> str:
    # core PDF fonts only cover latin-1
    return text.encode('latin-1', 'replace').decode('latin-1')


def _fit(pdf: FPDF, text: str, width: float) -> str:
    text = _latin1(text)
    while text and pdf.get_string_width(text) > width:
        text = text[:-1]
    return text


def render_day_pdf(day: str, groups: Sequence[str], entries: Iterable[ScheduleEntry],
                   time_slots: Sequence[str]) -> bytes:
    """Printable grid of one day: a row per group, a column per time slot."""
    by_key = {(e.group, e.time): e for e in entries if e.day == day}
    pdf = FPDF(orientation='L', unit='mm', format='A4')
    pdf.set_auto_page_break(auto=False)
    margin = 10
    group_w = 25
    slot_w = (pdf.w - 2 * margin - group_w) / max(len(time_slots), 1)
    line_h = 3.5
    row_h = 3 * line_h + 1

    def header():
        pdf.add_page()
        pdf.set_xy(margin, margin)
        pdf.set_font('Helvetica', 'B', 12)
        pdf.cell(0, 8, _latin1(f"Timetable - {day}"))
        pdf.set_xy(margin, margin + 10)
        pdf.set_font('Helvetica', 'B', 7)
        pdf.cell(group_w, 6, 'Group', border=1, align='C')
        for time in time_slots:
            pdf.cell(slot_w, 6, _latin1(time), border=1, align='C')
        return margin + 16

    y = header()
    for group in groups:
        if y + row_h > pdf.h - margin:
            y = header()
        pdf.set_font('Helvetica', 'B', 6)
        pdf.rect(margin, y, group_w, row_h)
        pdf.set_xy(margin + 0.5, y + 0.5)
        pdf.cell(group_w - 1, line_h, _fit(pdf, group, group_w - 1))
        pdf.set_font('Helvetica', '', 5)
        for i, time in enumerate(time_slots):
            x = margin + group_w + i * slot_w
            pdf.rect(x, y, slot_w, row_h)
            entry = by_key.get((group, time))
            if entry is None:
                continue
            for n, line in enumerate([entry.course, entry.teacher, entry.room]):
                if not line:
                    continue
                pdf.set_xy(x + 0.5, y + 0.5 + n * line_h)
                pdf.cell(slot_w - 1, line_h, _fit(pdf, line, slot_w - 1))
        y += row_h
    return bytes(pdf.output())
