"""
Teacher-name normalization.

Spreadsheet cells carry teacher names mixed with room numbers, notes and
second teachers ("Dr.Ahmad B202 LAB", "/Ms.Asina", "Dr. X (online) until 10:00").
`normalize` turns such a string into one canonical display name so that the
directory and the conflict scanner can compare teachers reliably.

The pipeline is an ordered list of small rewrite rules (RULES). Every rule
takes a string and returns a string; a rule that does not match returns its
input unchanged. The whole chain is repeated until the output stops changing,
so normalize(normalize(x)) == normalize(x).
"""
import json
import logging
import re

logger = logging.getLogger(__name__)

# Room identifiers that show up after the teacher name in a cell.
# Cyrillic letters cover transliterated codes (и102, Б201, А305).
# Word tokens match in capitals only; Link and Web are also surnames.
_ROOM = r"(?:[BbБб]\d+|[AaАа]\d+|(?:LAB|Lab)\d*(?:\(\d+\))?|BIGLAB|LINK|WEB|[иИ]\d+)"

ROOM_TOKEN = re.compile(rf"^{_ROOM}$")
_ROOM_ONLY = re.compile(rf"^{_ROOM}(?:[\s,]+{_ROOM})*$")

_LEADING_NOISE = re.compile(r"^[\s/\\]+")
_PARENTHETICAL = re.compile(r"(?:\s*\([^()]*\)?)+\s*$")
_TRAILING_PHRASE = re.compile(
    r"\s*\b(?:until\s+\d{1,2}[:.]\d{2}|own\s+device|make[\s-]*up)\b.*$",
    re.IGNORECASE | re.DOTALL,
)
_TRAILING_SEGMENT = re.compile(r"\s*[\\/][^\\/]*$")
_PLUS_TAIL = re.compile(r"\s*\+.*$", re.DOTALL)
_COMMA_ROOM = re.compile(rf"\s*,\s*{_ROOM}(?:[\s,]+{_ROOM})*\s*$")
_TRAILING_PUNCT = re.compile(r"[\s,;:.\-_*|]+$")
_TITLE = re.compile(r"^(prof|mrs|mr|ms|dr)(?:\s*\.\s*|\s+)(?=\S)", re.IGNORECASE)

TITLES = {
    'dr': 'Dr.',
    'mr': 'Mr.',
    'mrs': 'Mrs.',
    'ms': 'Ms.',
    'prof': 'Prof.',
}

# Known misspellings and short forms, keyed by the lower-cased normalized form.
KNOWN_ALIASES = {
    'dr. daniyar satybaldiev': 'Dr. Daniiar Satybaldiev',
    'dr. daniiar': 'Dr. Daniiar Satybaldiev',
    'dr. satybaldiev': 'Dr. Daniiar Satybaldiev',
    'dr. mekuriya': 'Dr. Mekuria',
    'ms. assina': 'Ms. Asina',
}

_MAX_PASSES = 10


def is_room_token(token):
    return bool(token) and ROOM_TOKEN.match(token) is not None


def strip_leading_noise(s):
    """'  /Ms.Asina' -> 'Ms.Asina'"""
    return _LEADING_NOISE.sub('', s.strip())


def keep_first_teacher(s):
    """'Dr. X / Dr. Y' -> 'Dr. X '"""
    return s.split('/', 1)[0]


def strip_parenthetical(s):
    """'Dr. X (online)' -> 'Dr. X'. Also drops an unclosed '(...' tail."""
    return _PARENTHETICAL.sub('', s)


def strip_trailing_phrases(s):
    """Cut at 'until 10:00', 'own device' or 'make up', including everything after."""
    return _TRAILING_PHRASE.sub('', s)


def strip_trailing_segment(s):
    return _TRAILING_SEGMENT.sub('', s)


def strip_room_tokens(s):
    """'Dr. X B110 LAB' -> 'Dr. X'. The first token is always kept."""
    parts = s.split()
    while len(parts) > 1 and ROOM_TOKEN.match(parts[-1]):
        parts.pop()
    return ' '.join(parts)


def strip_trailing_noise(s):
    s = _PLUS_TAIL.sub('', s)
    s = _COMMA_ROOM.sub('', s)
    return _TRAILING_PUNCT.sub('', s)


def normalize_title(s):
    """'dr.Ahmad', 'DR Ahmad', 'Dr . Ahmad' -> 'Dr. Ahmad'"""
    return _TITLE.sub(lambda m: TITLES[m.group(1).lower()] + ' ', s, count=1)


def collapse_whitespace(s):
    return ' '.join(s.split())


def drop_bare_room(s):
    # A cell holding only a room was mis-parsed as a teacher.
    if _ROOM_ONLY.match(s):
        return ''
    return s


RULES = [
    ('leading_noise', strip_leading_noise),
    ('first_teacher', keep_first_teacher),
    ('parenthetical', strip_parenthetical),
    ('trailing_phrases', strip_trailing_phrases),
    ('trailing_segment', strip_trailing_segment),
    ('room_tokens', strip_room_tokens),
    ('trailing_noise', strip_trailing_noise),
    ('title', normalize_title),
    ('whitespace', collapse_whitespace),
    ('bare_room', drop_bare_room),
]


def apply_aliases(s, aliases):
    return aliases.get(s.lower(), s)


def _run_rules(s, aliases):
    for _, rule in RULES:
        s = rule(s)
        if not s:
            return ''
    return apply_aliases(s, aliases)


def merge_aliases(extra=None):
    table = dict(KNOWN_ALIASES)
    if extra:
        table.update({str(k).strip().lower(): str(v).strip() for k, v in extra.items()})
    return table


def normalize(raw, aliases=None):
    """Map a free-text teacher cell to its canonical name ('' when there is none)."""
    if raw is None:
        return ''
    table = KNOWN_ALIASES if aliases is None else aliases
    current = str(raw)
    for _ in range(_MAX_PASSES):
        result = _run_rules(current, table)
        if result == current:
            return result
        current = result
    logger.warning("Teacher name %r did not settle after %d passes", raw, _MAX_PASSES)
    return current


def teacher_key(raw, aliases=None):
    """Case-insensitive identity of a teacher, used for deduplication and matching."""
    return normalize(raw, aliases).lower()


def extract_teacher_room(text):
    """Split 'Dr. X B110 LAB' into ('Dr. X', 'B110 LAB').

    Walks back from the end collecting consecutive room identifiers.
    """
    if not text:
        return '', ''
    parts = str(text).strip().split()
    rooms = []
    while parts and ROOM_TOKEN.match(parts[-1]):
        rooms.insert(0, parts.pop())
    return ' '.join(parts), ' '.join(rooms)


def load_aliases(path):
    """Read an alias table from a JSON object file {variant: canonical}."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Alias file {path} must contain a JSON object")
    logger.info("Loaded %d teacher aliases from %s", len(data), path)
    return merge_aliases(data)
