from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from models import ScheduleEntry
from normalizer import normalize


def build_directory(entries: Iterable[ScheduleEntry], aliases: Optional[Dict[str, str]] = None) -> List[str]:
    """Sorted, deduplicated canonical teacher names found in the entries.

    Names are compared case-insensitively after normalization; the first
    normalized spelling seen is the one displayed.
    """
    canonical: Dict[str, str] = {}
    for entry in entries:
        name = normalize(entry.teacher, aliases)
        if not name:
            continue
        canonical.setdefault(name.lower(), name)
    return sorted(canonical.values(), key=lambda n: (n.lower(), n))


def entries_for_teacher(entries: Iterable[ScheduleEntry], teacher: str,
                        aliases: Optional[Dict[str, str]] = None) -> List[ScheduleEntry]:
    target = normalize(teacher, aliases).lower()
    if not target:
        return []
    return [e for e in entries if normalize(e.teacher, aliases).lower() == target]


def teacher_stats(entries: Iterable[ScheduleEntry], aliases: Optional[Dict[str, str]] = None) -> List[dict]:
    """Per-teacher load: number of classes, hours (sum of durations), groups and days."""
    stats: Dict[str, dict] = OrderedDict()
    for entry in entries:
        name = normalize(entry.teacher, aliases)
        if not name:
            continue
        row = stats.setdefault(name.lower(), {
            'teacher': name, 'classes': 0, 'hours': 0, 'groups': [], 'days': [],
        })
        row['classes'] += 1
        row['hours'] += entry.duration
        if entry.group not in row['groups']:
            row['groups'].append(entry.group)
        if entry.day not in row['days']:
            row['days'].append(entry.day)
    return sorted(stats.values(), key=lambda r: (-r['hours'], r['teacher'].lower()))
