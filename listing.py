"""
Filtered, paginated listing shared by the products, orders and users endpoints.

``build_filter`` turns optional query-string parameters into one MongoDB
filter; ``paginate`` runs it with skip/limit and reports the totals the
frontend pager needs.
"""
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

NEWEST_FIRST = [("createdAt", -1), ("_id", -1)]


def _present(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_number(value: Any) -> Optional[float]:
    """Parse a numeric query parameter; anything unusable means "no bound"."""
    text = _present(value)
    if text is None:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def positive_int(value: Any, default: int) -> int:
    text = _present(value)
    if text is None:
        return default
    try:
        number = int(float(text))
    except (ValueError, OverflowError):
        return default
    return number if number > 0 else default


def text_match(value: str, fields: Sequence[str]) -> Dict[str, Any]:
    pattern = {"$regex": re.escape(value), "$options": "i"}
    if len(fields) == 1:
        return {fields[0]: pattern}
    return {"$or": [{f: dict(pattern)} for f in fields]}


def build_filter(params: Mapping[str, Any],
                 text_param: Optional[str] = None,
                 text_fields: Sequence[str] = (),
                 exact: Sequence[str] = (),
                 ranges: Optional[Mapping[str, Tuple[str, str]]] = None) -> Dict[str, Any]:
    """Build the conjunction of every constraint present in ``params``.

    ``exact`` names parameters matched by equality on the field of the same
    name. ``ranges`` maps a numeric field to its (min, max) parameter names;
    bounds are inclusive and independent.
    """
    clauses: List[Dict[str, Any]] = []

    if text_param and text_fields:
        text = _present(params.get(text_param))
        if text is not None:
            clauses.append(text_match(text, text_fields))

    for name in exact:
        value = _present(params.get(name))
        if value is not None:
            clauses.append({name: value})

    for target, (low_param, high_param) in (ranges or {}).items():
        bounds = {}
        low = to_number(params.get(low_param))
        high = to_number(params.get(high_param))
        if low is not None:
            bounds["$gte"] = low
        if high is not None:
            bounds["$lte"] = high
        if bounds:
            clauses.append({target: bounds})

    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


@dataclass
class Page:
    items: List[dict] = field(default_factory=list)
    page: int = 1
    pages: int = 0
    total: int = 0

    def to_response(self, key: str, serializer: Callable[[dict], Any]) -> Dict[str, Any]:
        return {
            key: [serializer(item) for item in self.items],
            "page": self.page,
            "pages": self.pages,
            "total": self.total,
        }


def paginate(collection, filter_dict: Dict[str, Any], page_number: Any, page_size: Any,
             default_size: int = 10, sort: Optional[list] = None,
             projection: Optional[dict] = None) -> Page:
    size = positive_int(page_size, default_size)
    page = positive_int(page_number, 1)

    total = collection.count_documents(filter_dict)
    pages = math.ceil(total / size) if total else 0

    cursor = (
        collection.find(filter_dict, projection)
        .sort(sort or NEWEST_FIRST)
        .skip((page - 1) * size)
        .limit(size)
    )
    return Page(items=list(cursor), page=page, pages=pages, total=total)
