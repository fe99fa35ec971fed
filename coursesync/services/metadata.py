"""
Content metadata filter.

Only configuration keys cross the master/client boundary. A key passes when it
carries one of the content-configuration prefixes and matches none of the
exclusion patterns (per-user data and sync bookkeeping). The same filter runs
on export and again on write.
"""
import re
from typing import Any, Dict, Mapping, Optional

# Structure map and its derived flat lists, stored in course meta
STEPS_KEY = "course_steps"
LESSON_IDS_KEY = "course_lesson_ids"
QUIZ_IDS_KEY = "course_quiz_ids"

CONFIG_KEY_PREFIXES = (
    "course_",
    "lesson_",
    "topic_",
    "quiz_",
    "question_",
    "content_",
    "access_",
    "drip_",
    "prerequisite_",
    "_course_",
    "_lesson_",
    "_quiz_",
)

EXCLUDED_KEY_PATTERNS = [
    # quiz attempts, statistics and scores
    re.compile(r"attempt"),
    re.compile(r"statistic"),
    re.compile(r"score"),
    # per-user activity and state
    re.compile(r"activity"),
    re.compile(r"progress"),
    re.compile(r"complet"),
    re.compile(r"enrol"),
    re.compile(r"(^|_)users?(_|$)"),
    re.compile(r"_\d+_access"),
    re.compile(r"access_(list|from|expires|granted)"),
    # sync bookkeeping
    re.compile(r"(^|_)sync_"),
    re.compile(r"last_sync"),
    re.compile(r"stable_id"),
    re.compile(r"origin_(id|ref)"),
]


def is_config_key(key: str) -> bool:
    return key.lower().startswith(CONFIG_KEY_PREFIXES)


def is_excluded_key(key: str) -> bool:
    lowered = key.lower()
    return any(p.search(lowered) for p in EXCLUDED_KEY_PATTERNS)


def is_safe_key(key: Any) -> bool:
    return isinstance(key, str) and is_config_key(key) and not is_excluded_key(key)


def safe_metadata(meta: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return the subset of ``meta`` that is content configuration."""
    if not meta:
        return {}
    return {key: value for key, value in meta.items() if is_safe_key(key)}
