from dataclasses import dataclass, field
from typing import List, Optional

SUBJECT_TYPES = ('lecture', 'lab', 'seminar')


class ValidationError(ValueError):
    """Raised when an entry is rejected before any mutation happens."""


def make_key(group: str, day: str, time: str) -> str:
    return f"{group}-{day}-{time}"


@dataclass(frozen=True)
class Slot:
    group: str
    day: str
    time: str

    @property
    def key(self) -> str:
        return make_key(self.group, self.day, self.time)


@dataclass
class ScheduleEntry:
    group: str
    day: str
    time: str
    course: str
    teacher: str = ''
    room: str = ''
    subject_type: str = 'lecture'
    duration: int = 1

    @property
    def key(self) -> str:
        return make_key(self.group, self.day, self.time)

    @property
    def slot(self) -> Slot:
        return Slot(self.group, self.day, self.time)

    def relocated(self, slot: Slot) -> 'ScheduleEntry':
        return ScheduleEntry(
            group=slot.group, day=slot.day, time=slot.time,
            course=self.course, teacher=self.teacher, room=self.room,
            subject_type=self.subject_type, duration=self.duration,
        )

    def to_dict(self) -> dict:
        return {
            'group': self.group,
            'day': self.day,
            'time': self.time,
            'course': self.course,
            'teacher': self.teacher,
            'room': self.room,
            'subjectType': self.subject_type,
            'duration': self.duration,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ScheduleEntry':
        """Build an entry from a JSON/spreadsheet record, tolerating missing optional fields."""
        return cls(
            group=clean_text(data.get('group')),
            day=clean_text(data.get('day')),
            time=clean_text(data.get('time')),
            course=clean_text(data.get('course')),
            teacher=clean_text(data.get('teacher')),
            room=clean_text(data.get('room')),
            subject_type=clean_text(data.get('subjectType', data.get('subject_type'))) or 'lecture',
            duration=_duration(data.get('duration')),
        )


@dataclass
class Conflict:
    type: str  # 'teacher' | 'room'
    day: str
    time: str
    value: str
    entries: List[ScheduleEntry] = field(default_factory=list)

    @property
    def id(self) -> str:
        return f"{self.type}-{self.day}-{self.time}-{self.value}"

    @property
    def groups(self) -> List[str]:
        return [e.group for e in self.entries]

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'type': self.type,
            'day': self.day,
            'time': self.time,
            'value': self.value,
            'entries': [e.to_dict() for e in self.entries],
        }


def clean_text(value: Optional[object]) -> str:
    if value is None:
        return ''
    return str(value).strip()


def validate_entry(entry: ScheduleEntry) -> ScheduleEntry:
    """Check an entry and coerce its duration; raises ValidationError."""
    for name in ('group', 'day', 'time'):
        if not getattr(entry, name):
            raise ValidationError(f"'{name}' is required")
    if not entry.course:
        raise ValidationError('Course name is required')
    if entry.subject_type not in SUBJECT_TYPES:
        raise ValidationError(
            f"Unknown subject type '{entry.subject_type}', expected one of {', '.join(SUBJECT_TYPES)}")
    try:
        duration = int(entry.duration)
    except (TypeError, ValueError):
        raise ValidationError(f"Duration must be an integer, got {entry.duration!r}")
    if duration < 1:
        raise ValidationError('Duration must be at least 1')
    entry.duration = duration
    return entry


def entry_dicts(entries) -> List[dict]:
    return [e.to_dict() for e in entries]


def _duration(value: Optional[object]):
    if value is None or (isinstance(value, str) and not value.strip()):
        return 1
    return value
