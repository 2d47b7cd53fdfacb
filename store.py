"""
In-process owner of the timetable.

ScheduleStore keeps the flat key -> entry map and the ordered group list.
All mutations and snapshots go through one re-entrant lock, so readers never
see a half-applied move or cascade.
"""
import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from models import ScheduleEntry, Slot, ValidationError, clean_text, make_key, validate_entry

logger = logging.getLogger(__name__)


class ScheduleStore:

    def __init__(self, groups: Optional[Iterable[str]] = None,
                 entries: Optional[Iterable[ScheduleEntry]] = None):
        self._lock = threading.RLock()
        self._groups: List[str] = []
        self._entries: Dict[str, ScheduleEntry] = {}
        for group in groups or []:
            self.add_group(group)
        for entry in entries or []:
            self._put(validate_entry(entry))

    # --- reads ---
    @property
    def groups(self) -> List[str]:
        with self._lock:
            return list(self._groups)

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def get(self, group: str, day: str, time: str) -> Optional[ScheduleEntry]:
        with self._lock:
            entry = self._entries.get(make_key(group, day, time))
            return entry.relocated(entry.slot) if entry else None

    def snapshot(self) -> List[ScheduleEntry]:
        """Consistent copy of all entries for the read-side computations."""
        with self._lock:
            return [e.relocated(e.slot) for e in self._entries.values()]

    def entries_for_day(self, day: str) -> List[ScheduleEntry]:
        return [e for e in self.snapshot() if e.day == day]

    def to_dict(self) -> Dict[str, dict]:
        with self._lock:
            return {key: e.to_dict() for key, e in self._entries.items()}

    # --- mutations ---
    def _put(self, entry: ScheduleEntry):
        self._entries[entry.key] = entry

    def upsert(self, group: str, day: str, time: str, course: str = '', teacher: Optional[str] = None,
               room: Optional[str] = None, subject_type: Optional[str] = None,
               duration: Optional[int] = None) -> ScheduleEntry:
        """Insert or replace the entry at (group, day, time).

        Raises ValidationError before touching the map. Conflicts are not
        checked here.
        """
        entry = validate_entry(ScheduleEntry(
            group=clean_text(group),
            day=clean_text(day),
            time=clean_text(time),
            course=clean_text(course),
            teacher=clean_text(teacher),
            room=clean_text(room),
            subject_type=subject_type or 'lecture',
            duration=1 if duration is None else duration,
        ))
        with self._lock:
            self._put(entry)
        return entry.relocated(entry.slot)

    def delete(self, group: str, day: str, time: str) -> bool:
        with self._lock:
            return self._entries.pop(make_key(group, day, time), None) is not None

    def move(self, source: Slot, destination: Slot) -> Optional[Tuple[ScheduleEntry, Optional[ScheduleEntry]]]:
        """Move the entry at `source` to `destination`, swapping if it is occupied.

        Returns (moved, swapped) where `swapped` is the former destination
        entry now sitting at `source`, or None if the source slot is empty.
        """
        with self._lock:
            moving = self._entries.get(source.key)
            if moving is None:
                logger.info("Move skipped, no entry at %s", source.key)
                return None
            if source.key == destination.key:
                return moving.relocated(source), None
            occupant = self._entries.get(destination.key)
            del self._entries[source.key]
            self._put(moving.relocated(destination))
            swapped = None
            if occupant is not None:
                self._put(occupant.relocated(source))
                swapped = occupant.relocated(source)
            return moving.relocated(destination), swapped

    def add_group(self, group: str) -> bool:
        name = clean_text(group)
        if not name:
            raise ValidationError('Group name is required')
        with self._lock:
            if name in self._groups:
                return False
            self._groups.append(name)
            return True

    def delete_group(self, group: str) -> int:
        """Remove the group and every entry that belongs to it; returns entries removed."""
        with self._lock:
            if group in self._groups:
                self._groups.remove(group)
            doomed = [key for key, e in self._entries.items() if e.group == group]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    def bulk_load(self, groups: Iterable[str], entries: Iterable[ScheduleEntry]) -> int:
        """Add groups and upsert entries all-or-nothing; any invalid entry rejects the batch."""
        checked = []
        for index, entry in enumerate(entries):
            try:
                checked.append(validate_entry(entry))
            except ValidationError as e:
                raise ValidationError(f"Entry {index + 1} ({entry.key}): {e}")
        names = [name for name in map(clean_text, groups) if name]
        with self._lock:
            for name in names:
                if name not in self._groups:
                    self._groups.append(name)
            for entry in checked:
                if entry.group not in self._groups:
                    self._groups.append(entry.group)
                self._put(entry.relocated(entry.slot))
            group_count = len(self._groups)
        logger.info("Bulk loaded %d entries into %d groups", len(checked), group_count)
        return len(checked)

    def replace_all(self, groups: Iterable[str], entries: Iterable[ScheduleEntry]):
        """Swap in a whole new timetable (used when hydrating from the database)."""
        fresh = ScheduleStore(groups, entries)
        with self._lock:
            self._groups = fresh._groups
            self._entries = fresh._entries
