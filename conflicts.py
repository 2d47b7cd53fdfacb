"""
Double-booking detection over a timetable snapshot.

A conflict is two or more entries of different groups sitting in the same
(day, time) slot with the same teacher (compared after name normalization)
or the same room (compared case-insensitively). Nothing here is stored; every
call recomputes from the entries it is given.
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from models import Conflict, ScheduleEntry
from normalizer import normalize

TEACHER = 'teacher'
ROOM = 'room'


def room_key(room) -> str:
    return ' '.join(str(room or '').split()).lower()


def _teacher_value(entry, aliases):
    return normalize(entry.teacher, aliases)


def _room_value(entry, aliases):
    return ' '.join(entry.room.split())


def _buckets(slot_entries, value_of, aliases) -> Dict[str, List[ScheduleEntry]]:
    # insertion order of the dict is the discovery order
    buckets: Dict[str, List[ScheduleEntry]] = {}
    for entry in slot_entries:
        value = value_of(entry, aliases)
        if not value:
            continue
        buckets.setdefault(value.lower(), []).append(entry)
    return buckets


def _clashing(bucket: List[ScheduleEntry]) -> bool:
    return len(bucket) > 1 and len({e.group for e in bucket}) > 1


def _unique(values) -> List[str]:
    return list(dict.fromkeys(values))


def index_by_slot(entries: Iterable[ScheduleEntry]) -> Dict[Tuple[str, str], List[ScheduleEntry]]:
    by_slot = defaultdict(list)
    for entry in entries:
        by_slot[(entry.day, entry.time)].append(entry)
    return by_slot


def scan_conflicts(entries: Iterable[ScheduleEntry], days: Sequence[str], time_slots: Sequence[str],
                   aliases: Optional[Dict[str, str]] = None) -> List[Conflict]:
    by_slot = index_by_slot(entries)
    days, time_slots = _unique(days), _unique(time_slots)
    found: List[Conflict] = []
    for day in days:
        for time in time_slots:
            slot_entries = by_slot.get((day, time), [])
            if len(slot_entries) < 2:
                continue
            for kind, value_of in ((TEACHER, _teacher_value), (ROOM, _room_value)):
                for bucket in _buckets(slot_entries, value_of, aliases).values():
                    if _clashing(bucket):
                        found.append(Conflict(
                            type=kind, day=day, time=time,
                            value=value_of(bucket[0], aliases),
                            entries=list(bucket),
                        ))
    return found


def count_conflicts(entries: Iterable[ScheduleEntry], days: Sequence[str], time_slots: Sequence[str],
                    aliases: Optional[Dict[str, str]] = None) -> int:
    """Badge counter. A clash of any size between the same value counts once."""
    by_slot = index_by_slot(entries)
    days, time_slots = _unique(days), _unique(time_slots)
    seen = set()
    for day in days:
        for time in time_slots:
            slot_entries = by_slot.get((day, time), [])
            if len(slot_entries) < 2:
                continue
            groups_by_value = defaultdict(set)
            for entry in slot_entries:
                teacher = _teacher_value(entry, aliases).lower()
                if teacher:
                    groups_by_value[(TEACHER, teacher)].add(entry.group)
                room = room_key(entry.room)
                if room:
                    groups_by_value[(ROOM, room)].add(entry.group)
            for (kind, value), groups in groups_by_value.items():
                if len(groups) > 1:
                    seen.add((kind, value, day, time))
    return len(seen)


def find_slot_conflicts(entries: Iterable[ScheduleEntry], group: str, day: str, time: str,
                        teacher: str = '', room: str = '',
                        aliases: Optional[Dict[str, str]] = None) -> List[dict]:
    """Warnings for placing `teacher`/`room` at (group, day, time).

    Only entries of other groups in the same slot are considered. The result
    is advisory; callers decide whether to go ahead.
    """
    teacher_target = normalize(teacher, aliases).lower()
    room_target = room_key(room)
    warnings = []
    for entry in entries:
        if entry.day != day or entry.time != time or entry.group == group:
            continue
        if teacher_target and normalize(entry.teacher, aliases).lower() == teacher_target:
            warnings.append({'type': TEACHER, 'value': entry.teacher, 'group': entry.group,
                             'course': entry.course})
        if room_target and room_key(entry.room) == room_target:
            warnings.append({'type': ROOM, 'value': entry.room, 'group': entry.group,
                             'course': entry.course})
    return warnings


def summarize(conflicts: List[Conflict]) -> dict:
    teacher = sum(1 for c in conflicts if c.type == TEACHER)
    return {'total': len(conflicts), 'teacher': teacher, 'room': len(conflicts) - teacher}
