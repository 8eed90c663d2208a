import math
import re
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from bson import ObjectId
from pydantic.alias_generators import to_camel

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100

DateLike = Union[str, date, datetime]


# ----------------------
# Dates
# ----------------------
def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_date(value: Optional[datetime] = None) -> str:
    value = value or utcnow()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def parse_date(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    else:
        dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def days_until(due_date: DateLike, now: Optional[datetime] = None) -> int:
    """Whole calendar days from the start of today to the end of the due day.

    A deadline later today is day 0, tomorrow is day 1; past deadlines are negative.
    """
    start_of_today = datetime.combine((now or utcnow()).astimezone(timezone.utc).date(), time.min, timezone.utc)
    end_of_due_day = datetime.combine(parse_date(due_date).date(), time.max, timezone.utc)
    return math.floor((end_of_due_day - start_of_today).total_seconds() / 86400)


def calculate_priority(due_date: DateLike, now: Optional[datetime] = None) -> str:
    diff_days = days_until(due_date, now)
    if diff_days <= 2:
        return "high"
    if diff_days <= 5:
        return "medium"
    return "low"


def is_overdue(due_date: DateLike, now: Optional[datetime] = None) -> bool:
    """True once the end of the due day has passed."""
    end_of_due_day = datetime.combine(parse_date(due_date).date(), time.max, timezone.utc)
    return (now or utcnow()) > end_of_due_day


# ----------------------
# Grades
# ----------------------
def calculate_letter_grade(score: float) -> str:
    if score >= 90:
        return "A"
    if score >= 80:
        return "B"
    if score >= 70:
        return "C"
    if score >= 60:
        return "D"
    return "F"


def calculate_rubric_total(criteria: Iterable[Dict[str, Any]]) -> int:
    """Weighted average of the scored criteria, rounded to an integer.

    Criteria without a score are left out of both sums; nothing scored gives 0.
    """
    total_weight = 0.0
    weighted_score = 0.0
    for criterion in criteria:
        score = criterion.get("score")
        if score is None:
            continue
        weight = criterion.get("weight") or 0
        total_weight += weight
        weighted_score += score * weight / 100
    if total_weight == 0:
        return 0
    # half-up, not round()'s banker's rounding
    return int(math.floor(weighted_score / total_weight * 100 + 0.5))


# ----------------------
# Ids and strings
# ----------------------
def generate_id() -> str:
    return str(ObjectId())


_TAG_RE = re.compile(r"<[^>]*>")


def sanitize_string(value: str) -> str:
    return _TAG_RE.sub("", value).strip()


def serialize_doc(doc: Any) -> Any:
    """Convert a stored document (snake_case) into its wire form (camelCase)."""
    if isinstance(doc, dict):
        d = {**doc}
        if "_id" in d:
            d["id"] = str(d.pop("_id"))
        return {to_camel(k): serialize_doc(v) for k, v in d.items()}
    if isinstance(doc, list):
        return [serialize_doc(v) for v in doc]
    if isinstance(doc, datetime):
        return format_date(doc)
    return doc


# ----------------------
# Listing
# ----------------------
def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_pagination_params(page: Any = None, limit: Any = None) -> Dict[str, int]:
    page_num = _as_int(page)
    limit_num = _as_int(limit)
    page_num = max(1, page_num if page_num is not None else 1)
    limit_num = min(MAX_PAGE_LIMIT, max(1, limit_num if limit_num is not None else DEFAULT_PAGE_LIMIT))
    return {"page": page_num, "limit": limit_num, "offset": (page_num - 1) * limit_num}


def build_paginated_response(data: List[Any], total: int, page: int, limit: int) -> Dict[str, Any]:
    return {
        "data": data,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def paginate(items: Sequence[Any], page: int, limit: int) -> Dict[str, Any]:
    offset = (page - 1) * limit
    return build_paginated_response(list(items[offset:offset + limit]), len(items), page, limit)


def chunked(values: Sequence[Any], size: int) -> List[List[Any]]:
    return [list(values[i:i + size]) for i in range(0, len(values), size)]


def unique_by_id(docs: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen: Dict[str, Dict[str, Any]] = {}
    for doc in docs:
        seen.setdefault(doc["id"], doc)
    return list(seen.values())


def sort_docs(docs: List[Dict[str, Any]], field: str, descending: bool = False,
              key: Optional[Callable[[Dict[str, Any]], Any]] = None) -> List[Dict[str, Any]]:
    """Sort stored documents in memory; missing values sort first ascending."""
    return sorted(docs, key=key or (lambda d: d.get(field) or ""), reverse=descending)
