"""
Task Key Normalizer
Turns free-text task types ("Send Reminder", "תזכורת תשלום", "follow-up")
into canonical lookup keys such as SEND_REMINDER.

The spreadsheet loader and the per-task lookup both go through
normalize_task_key, so it must stay total and deterministic.
"""
import re
import string
import unicodedata
from typing import Any

from task_messenger.shared.core.constants import UNKNOWN_TASK_KEY

# Hebrew letter → Latin approximation (final forms share their base letter's value)
HEBREW_TO_LATIN = {
    "א": "A",
    "ב": "B",
    "ג": "G",
    "ד": "D",
    "ה": "H",
    "ו": "V",
    "ז": "Z",
    "ח": "H",
    "ט": "T",
    "י": "Y",
    "כ": "K",
    "ך": "K",
    "ל": "L",
    "מ": "M",
    "ם": "M",
    "נ": "N",
    "ן": "N",
    "ס": "S",
    "ע": "A",
    "פ": "P",
    "ף": "P",
    "צ": "TZ",
    "ץ": "TZ",
    "ק": "K",
    "ר": "R",
    "ש": "SH",
    "ת": "T",
}

_ALLOWED_CHARS = frozenset(string.ascii_uppercase + string.digits + "_")
_SEPARATORS_RE = re.compile(r"[\s\-]+")
_UNDERSCORES_RE = re.compile(r"_+")


def normalize_task_key(value: Any) -> str:
    """
    Normalize a task type or subject into a template key.

    Examples:
        >>> normalize_task_key("  Send Reminder  ")
        'SEND_REMINDER'

        >>> normalize_task_key("follow-up")
        'FOLLOW_UP'

        >>> normalize_task_key("!!!")
        'UNKNOWN'
    """
    if not isinstance(value, str):
        return UNKNOWN_TASK_KEY

    # Decompose and drop combining marks (Latin accents, Hebrew niqqud)
    decomposed = unicodedata.normalize("NFKD", value.strip())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))

    transliterated = "".join(HEBREW_TO_LATIN.get(ch, ch) for ch in stripped)
    upper = _SEPARATORS_RE.sub("_", transliterated.upper())

    filtered = "".join(ch for ch in upper if ch in _ALLOWED_CHARS)
    collapsed = _UNDERSCORES_RE.sub("_", filtered).strip("_")

    return collapsed or UNKNOWN_TASK_KEY
