"""Station search and sync helpers."""

from typing import Any

from sqlalchemy import ColumnElement, case, func

from railwatch.models.station import Station
from railwatch.schemas.ns import NsStation

MIN_SEARCH_LENGTH = 2
MAX_SEARCH_RESULTS = 10


def normalize_search_term(query: str) -> str | None:
    """
    Lower-case and trim a search query; None when it is too short to search.

    >>> normalize_search_term("  Utr ")
    'utr'
    >>> normalize_search_term("U") is None
    True
    """
    term = query.strip().lower()
    return term if len(term) >= MIN_SEARCH_LENGTH else None


def escape_like(term: str) -> str:
    r"""
    Escape LIKE wildcards so user input is matched literally.

    >>> escape_like("50%_off")
    '50\\%\\_off'
    """
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def station_search_order(term: str) -> tuple[ColumnElement[Any], ...]:
    """
    ORDER BY clauses ranking search matches by relevance.

    An exact (case-insensitive) code match comes first, then shorter long
    names before longer ones; ties break alphabetically so paging is stable.

    Args:
        term: Normalised search term

    Returns:
        Clauses for ``Select.order_by``
    """
    return (
        case((func.lower(Station.code) == term, 0), else_=1),
        func.length(Station.name_long),
        Station.name_long,
    )


def station_row_values(station: NsStation) -> dict[str, Any] | None:
    """
    Column values for upserting one provider station; None when it has no code.

    Missing names fall back to the code, a missing country to "NL".

    >>> station_row_values(NsStation(code="UT"))["name_long"]
    'UT'
    >>> station_row_values(NsStation(code=" ")) is None
    True
    """
    code = (station.code or "").strip()
    if not code:
        return None
    names = station.names
    name_long = (names.long if names else None) or code
    return {
        "code": code,
        "uic_code": station.uic_code or "",
        "name_long": name_long,
        "name_medium": (names.medium if names else None) or name_long,
        "name_short": (names.short if names else None) or code,
        "synonyms": list(station.synonyms),
        "lat": station.lat,
        "lng": station.lng,
        "country": station.country or "NL",
    }
