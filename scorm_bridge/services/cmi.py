"""
CMI data model rules for the emulated LMS API.

Error codes, per-element defaults, access rules and value checks. SCORM 2004
element names used by our progress record are mapped onto their SCORM 1.2
equivalents so one snapshot serves content written for either version.
"""

import re
from typing import Dict, Optional, Tuple

# Error codes are part of the content's own error handling: never renumber
NO_ERROR = 0
GENERAL_EXCEPTION = 101
INVALID_ARGUMENT = 201
NOT_INITIALIZED = 301
NOT_AN_ARRAY = 401
ARRAY_EMPTY = 402
NOT_INITIALIZED_ELEMENT = 403
ELEMENT_NOT_FOUND = 404
READ_ONLY = 405
WRITE_ONLY = 406
KEYWORD_IMMUTABLE = 407

ERROR_STRINGS: Dict[int, str] = {
    NO_ERROR: "No error",
    GENERAL_EXCEPTION: "General exception",
    INVALID_ARGUMENT: "Invalid argument error",
    NOT_INITIALIZED: "Not initialized",
    NOT_AN_ARRAY: "Element not an array - cannot have count",
    ARRAY_EMPTY: "Element is empty - cannot have count",
    NOT_INITIALIZED_ELEMENT: "Element not initialized",
    ELEMENT_NOT_FOUND: "Element not found",
    READ_ONLY: "Element is read only",
    WRITE_ONLY: "Element is write only",
    KEYWORD_IMMUTABLE: "Element is a keyword and cannot be changed",
}

LESSON_STATUS = "cmi.core.lesson_status"
SCORE_RAW = "cmi.core.score.raw"
TOTAL_TIME = "cmi.core.total_time"
SUSPEND_DATA = "cmi.suspend_data"
ENTRY = "cmi.core.entry"
EXIT = "cmi.core.exit"

LESSON_STATUSES = (
    "passed", "failed", "completed", "incomplete", "browsed", "not attempted"
)
ENTRY_VALUES = ("ab-initio", "resume", "")
EXIT_VALUES = ("time-out", "suspend", "logout", "normal", "")
SUSPEND_DATA_MAX = 4096

ELEMENT_PREFIXES = ("cmi.", "nav.", "adl.")
KEYWORD_NAMES = ("_children", "_count", "_version")

# Value rules are shared verbatim with the wrapper's script, so patterns
# stick to syntax that means the same in Python and JavaScript
TIME_PATTERN = r"^[0-9]{2,4}:[0-9]{2}:[0-9]{2}(\.[0-9]{1,2})?$"
# empty, or a non-negative decimal
SCORE_PATTERN = r"^([0-9]+(\.[0-9]*)?|\.[0-9]+)?$"

VALUE_VOCABULARIES: Dict[str, Tuple[str, ...]] = {
    LESSON_STATUS: LESSON_STATUSES,
    ENTRY: ENTRY_VALUES,
    EXIT: EXIT_VALUES,
}
VALUE_PATTERNS: Dict[str, str] = {
    SCORE_RAW: SCORE_PATTERN,
    "cmi.core.score.max": SCORE_PATTERN,
    "cmi.core.score.min": SCORE_PATTERN,
    TOTAL_TIME: TIME_PATTERN,
}
VALUE_MAX_LENGTHS: Dict[str, int] = {SUSPEND_DATA: SUSPEND_DATA_MAX}

DEFAULT_VALUES: Dict[str, str] = {
    "cmi.core._children": (
        "student_id,student_name,lesson_location,credit,lesson_status,"
        "entry,score,total_time,lesson_mode,exit,session_time"
    ),
    "cmi.core.score._children": "raw,min,max",
    "cmi.core.student_name": "Student",
    "cmi.core.student_id": "",
    "cmi.core.lesson_location": "",
    "cmi.core.credit": "credit",
    LESSON_STATUS: "not attempted",
    "cmi.core.lesson_mode": "normal",
    SCORE_RAW: "",
    "cmi.core.score.max": "100",
    "cmi.core.score.min": "0",
    TOTAL_TIME: "00:00:00.00",
    ENTRY: "ab-initio",
    SUSPEND_DATA: "",
    "cmi.launch_data": "",
    "cmi.comments": "",
    "cmi.comments_from_lms": "",
    "cmi.student_data.mastery_score": "",
    "cmi.student_data.max_time_allowed": "",
    "cmi.student_data.time_limit_action": "",
    "cmi.interactions._count": "0",
    "cmi.objectives._count": "0",
    "cmi.student_preference.audio": "0",
    "cmi.student_preference.language": "",
    "cmi.student_preference.speed": "0",
    "cmi.student_preference.text": "0",
    "cmi._version": "3.4",
    "nav.event": "",
}

READ_ONLY_ELEMENTS = frozenset({
    "cmi.core.student_name",
    "cmi.core.student_id",
    "cmi.core.credit",
    "cmi.core.lesson_mode",
    "cmi.core.score.max",
    "cmi.core.score.min",
    "cmi.launch_data",
    "cmi.comments_from_lms",
    "cmi.student_data.mastery_score",
    "cmi.student_data.max_time_allowed",
    "cmi.student_data.time_limit_action",
})

WRITE_ONLY_ELEMENTS = frozenset({EXIT, "cmi.core.session_time"})

# SCORM 2004 names stored under their 1.2 keys
ELEMENT_ALIASES: Dict[str, str] = {
    "cmi.completion_status": LESSON_STATUS,
    "cmi.score.raw": SCORE_RAW,
    "cmi.score.max": "cmi.core.score.max",
    "cmi.score.min": "cmi.core.score.min",
    "cmi.total_time": TOTAL_TIME,
    "cmi.session_time": "cmi.core.session_time",
    "cmi.location": "cmi.core.lesson_location",
    "cmi.exit": EXIT,
    "cmi.entry": ENTRY,
    "cmi.learner_id": "cmi.core.student_id",
    "cmi.learner_name": "cmi.core.student_name",
    "cmi.credit": "cmi.core.credit",
    "cmi.mode": "cmi.core.lesson_mode",
}

# 2004 completion vocabulary folded into lesson_status
COMPLETION_STATUS_MAP = {"unknown": "not attempted", "not attempted": "not attempted"}


class RuntimeApiError(Exception):
    """An LMS error code reported back to content through GetLastError."""

    def __init__(self, code: int, diagnostic: Optional[str] = None):
        self.code = code
        self.diagnostic = diagnostic or ERROR_STRINGS.get(code, "Unknown error")
        super().__init__(self.diagnostic)


def error_string(code) -> str:
    try:
        return ERROR_STRINGS.get(int(code), "Unknown error")
    except (TypeError, ValueError):
        return "Unknown error"


def canonical_element(element) -> str:
    """Validate an element name and map 2004 aliases to 1.2 keys."""
    if not isinstance(element, str) or not element.strip():
        raise RuntimeApiError(INVALID_ARGUMENT, "Element name must be a non-empty string")
    element = element.strip()
    if not element.startswith(ELEMENT_PREFIXES):
        raise RuntimeApiError(INVALID_ARGUMENT, f"Invalid element name: {element}")
    return ELEMENT_ALIASES.get(element, element)


def is_keyword(element: str) -> bool:
    return element.rsplit(".", 1)[-1] in KEYWORD_NAMES


def check_readable(element: str) -> None:
    if element in WRITE_ONLY_ELEMENTS:
        raise RuntimeApiError(WRITE_ONLY, f"{element} is write only")


def check_writable(element: str, value: str) -> None:
    if is_keyword(element):
        raise RuntimeApiError(KEYWORD_IMMUTABLE, f"{element} is a keyword")
    if element in READ_ONLY_ELEMENTS:
        raise RuntimeApiError(READ_ONLY, f"{element} is read only")
    if not validate_value(element, value):
        raise RuntimeApiError(INVALID_ARGUMENT, f"Invalid value for {element}")


def normalize_value(element: str, value: str) -> str:
    """Fold SCORM 2004 vocabulary into what the 1.2 keys store."""
    if element == LESSON_STATUS:
        return COMPLETION_STATUS_MAP.get(value, value)
    return value


def validate_value(element: str, value: str) -> bool:
    if element in VALUE_VOCABULARIES:
        return value in VALUE_VOCABULARIES[element]
    if element in VALUE_PATTERNS:
        return re.fullmatch(VALUE_PATTERNS[element], value) is not None
    if element in VALUE_MAX_LENGTHS:
        return len(value) <= VALUE_MAX_LENGTHS[element]
    return True


def value_rules() -> Dict[str, object]:
    """The element and value rules in a JSON-friendly shape."""
    return {
        "prefixes": list(ELEMENT_PREFIXES),
        "keywords": list(KEYWORD_NAMES),
        "vocabularies": {k: list(v) for k, v in VALUE_VOCABULARIES.items()},
        "patterns": dict(VALUE_PATTERNS),
        "maxLengths": dict(VALUE_MAX_LENGTHS),
        "statusMap": dict(COMPLETION_STATUS_MAP),
    }


def default_value(element: str) -> str:
    return DEFAULT_VALUES.get(element, "")
