"""Parsing of query-string and path parameters shared by the blueprints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Tuple

from pymongo import ASCENDING, DESCENDING


class ParamError(ValueError):
    """Raised when a query or path parameter is invalid."""


@dataclass
class PagingParams:
    page: int
    page_size: int
    sort: Tuple[str, int]
    normalized_sort: str

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.page_size


def parse_int_arg(
    raw_value: str | None,
    *,
    name: str,
    default: int | None = None,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    if raw_value in (None, ""):
        if default is None:
            raise ParamError(f"{name} is required.")
        value = default
    else:
        try:
            value = int(raw_value)
        except (TypeError, ValueError):
            raise ParamError(f"{name} must be an integer.") from None

    if minimum is not None and value < minimum:
        raise ParamError(f"{name} must be ≥ {minimum}.")
    if maximum is not None and value > maximum:
        raise ParamError(f"{name} must be ≤ {maximum}.")

    return value


def _parse_sort_arg(
    raw_sort: str | None,
    *,
    allowed_fields: Mapping[str, str],
    default_sort: str,
) -> Tuple[Tuple[str, int], str]:
    sort_value = raw_sort or default_sort
    direction = DESCENDING if sort_value.startswith("-") else ASCENDING
    field_key = sort_value.lstrip("-")

    if field_key not in allowed_fields:
        options = [
            value for field in sorted(allowed_fields) for value in (field, f"-{field}")
        ]
        raise ParamError("sort must be one of: " + ", ".join(options) + ".")

    normalized = f"-{field_key}" if direction == DESCENDING else field_key
    return (allowed_fields[field_key], direction), normalized


def parse_paging_params(
    args: Mapping[str, str],
    *,
    default_page_size: int = 20,
    max_page_size: int = 100,
    allowed_sort_fields: Mapping[str, str],
    default_sort: str,
) -> PagingParams:
    """Parse ``page``, ``page_size`` and ``sort`` from a request args mapping."""

    page = parse_int_arg(args.get("page"), name="page", default=1, minimum=1)
    page_size = parse_int_arg(
        args.get("page_size"),
        name="page_size",
        default=default_page_size,
        minimum=1,
        maximum=max_page_size,
    )
    sort_tuple, normalized_sort = _parse_sort_arg(
        args.get("sort"),
        allowed_fields=allowed_sort_fields,
        default_sort=default_sort,
    )

    return PagingParams(
        page=page,
        page_size=page_size,
        sort=sort_tuple,
        normalized_sort=normalized_sort,
    )


def parse_id_filter(raw_value: str | None) -> str | None:
    """Return an id filter, treating ``all`` and blanks as no filter."""

    cleaned = (raw_value or "").strip()
    if not cleaned or cleaned.lower() == "all":
        return None
    return cleaned


def parse_level_name(raw_value: str | None) -> str:
    """Validate a level name used as a key inside ``grades_by_level``."""

    cleaned = (raw_value or "").strip()
    if not cleaned:
        raise ParamError("Level name is required.")
    if "." in cleaned or cleaned.startswith("$"):
        raise ParamError("Level name cannot contain '.' or start with '$'.")
    return cleaned
