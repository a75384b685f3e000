from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Mapping, Sequence

ALL_SENTINEL = "all"
SORT_DIRECTIONS = ("asc", "desc")
VIEW_MODES = ("table", "cards")

TABLE_PAGE_SIZES = (10, 25, 50, 100)
CARD_PAGE_SIZES = (4, 8, 12, 16)
DEFAULT_TABLE_PAGE_SIZE = 25
DEFAULT_CARD_PAGE_SIZE = 8

Record = Mapping[str, Any]
FieldAccessor = Callable[[Record, str], Any]
CellRenderer = Callable[[Any, Record, int], Any]
CardRenderer = Callable[[Record, int], Any]


def default_accessor(record: Record, field_name: str) -> Any:
    return record.get(field_name)


def stringify(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def is_filter_active(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and (not value or value == ALL_SENTINEL):
        return False
    return True


def active_filter_items(active_filters: Mapping[str, Any] | None) -> list[tuple[str, Any]]:
    if not active_filters:
        return []
    return [(key, value) for key, value in active_filters.items() if is_filter_active(value)]


@dataclass(frozen=True)
class FilterSpec:
    key: str
    label: str


def derive_buckets(
    records: Iterable[Record],
    field_names: Sequence[str],
    *,
    accessor: FieldAccessor | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Distinct non-empty values per field, sorted by their string form."""
    get = accessor or default_accessor
    items = list(records)
    buckets: dict[str, list[dict[str, Any]]] = {}
    for name in field_names:
        seen: dict[str, Any] = {}
        for record in items:
            value = get(record, name)
            if _is_empty(value):
                continue
            seen.setdefault(stringify(value) or "", value)
        buckets[name] = [
            {"value": value, "label": label}
            for label, value in sorted(seen.items(), key=lambda item: item[0])
        ]
    return buckets


def filter_controls(
    records: Iterable[Record],
    filters: Sequence[FilterSpec],
    *,
    accessor: FieldAccessor | None = None,
) -> list[dict[str, Any]]:
    buckets = derive_buckets(records, [spec.key for spec in filters], accessor=accessor)
    return [
        {
            "key": spec.key,
            "label": spec.label,
            "options": [{"value": ALL_SENTINEL, "label": f"All {spec.label}"}] + buckets[spec.key],
        }
        for spec in filters
    ]


def matches_search(
    record: Record,
    query: str | None,
    searchable_fields: Sequence[str],
    *,
    accessor: FieldAccessor | None = None,
) -> bool:
    needle = (query or "").lower()
    if not needle or not searchable_fields:
        return True
    get = accessor or default_accessor
    for name in searchable_fields:
        text = stringify(get(record, name))
        if text is not None and needle in text.lower():
            return True
    return False


def matches_filters(
    record: Record,
    active_filters: Mapping[str, Any] | None,
    *,
    accessor: FieldAccessor | None = None,
) -> bool:
    get = accessor or default_accessor
    return all(get(record, key) == value for key, value in active_filter_items(active_filters))


def _sort_text(text: str) -> tuple[str, str]:
    return text.casefold(), text


def sort_records(
    records: Iterable[Record],
    sort_key: str,
    sort_dir: str = "asc",
    *,
    accessor: FieldAccessor | None = None,
) -> list[Record]:
    if sort_dir not in SORT_DIRECTIONS:
        raise ValueError(f"sort direction must be one of {SORT_DIRECTIONS}, got {sort_dir!r}")

    get = accessor or default_accessor
    present: list[tuple[str, Record]] = []
    missing: list[Record] = []
    for record in records:
        text = stringify(get(record, sort_key))
        if text is None:
            missing.append(record)
        else:
            present.append((text, record))

    # list.sort stays stable with reverse=True; missing values trail either way.
    present.sort(key=lambda item: _sort_text(item[0]), reverse=sort_dir == "desc")
    return [record for _, record in present] + missing


def apply_query(
    records: Iterable[Record],
    query: str | None = "",
    searchable_fields: Sequence[str] = (),
    active_filters: Mapping[str, Any] | None = None,
    sort_key: str | None = None,
    sort_dir: str = "asc",
    *,
    accessor: FieldAccessor | None = None,
) -> list[Record]:
    filtered = [
        record
        for record in records
        if matches_search(record, query, searchable_fields, accessor=accessor)
        and matches_filters(record, active_filters, accessor=accessor)
    ]
    if sort_key:
        return sort_records(filtered, sort_key, sort_dir, accessor=accessor)
    return filtered


@dataclass(frozen=True)
class Page:
    records: list[Record]
    total_pages: int
    current_page: int
    total_count: int
    page_size: int

    @property
    def start_index(self) -> int:
        return (self.current_page - 1) * self.page_size

    @property
    def end_index(self) -> int:
        return min(self.start_index + self.page_size, self.total_count)

    @property
    def showing_label(self) -> str:
        if not self.records:
            return f"Showing 0 of {self.total_count} records"
        return f"Showing {self.start_index + 1}-{self.end_index} of {self.total_count} records"


def total_pages_for(count: int, page_size: int) -> int:
    return max(1, math.ceil(count / page_size))


def paginate(records: Sequence[Record], page_size: int, current_page: int) -> Page:
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    items = list(records)
    start = max(0, (current_page - 1) * page_size)
    page_records = items[start : start + page_size] if current_page >= 1 else []
    return Page(
        records=page_records,
        total_pages=total_pages_for(len(items), page_size),
        current_page=current_page,
        total_count=len(items),
        page_size=page_size,
    )


def page_window(current_page: int, total_pages: int, width: int = 5) -> list[int]:
    count = min(width, total_pages)
    if total_pages <= width or current_page <= (width // 2) + 1:
        first = 1
    elif current_page >= total_pages - (width // 2):
        first = total_pages - width + 1
    else:
        first = current_page - (width // 2)
    return list(range(first, first + count))


@dataclass(frozen=True)
class GridState:
    query: str = ""
    filters: Mapping[str, Any] = field(default_factory=dict)
    sort_key: str | None = None
    sort_dir: str = "asc"
    page: int = 1
    page_size: int = DEFAULT_TABLE_PAGE_SIZE

    def with_query(self, query: str) -> "GridState":
        return replace(self, query=query, page=1)

    def with_filter(self, key: str, value: Any) -> "GridState":
        return replace(self, filters={**self.filters, key: value}, page=1)

    def with_page_size(self, page_size: int) -> "GridState":
        return replace(self, page_size=page_size, page=1)

    def with_page(self, page: int) -> "GridState":
        return replace(self, page=page)

    def toggle_sort(self, key: str) -> "GridState":
        if self.sort_key == key:
            direction = "desc" if self.sort_dir == "asc" else "asc"
            return replace(self, sort_dir=direction, page=1)
        return replace(self, sort_key=key, sort_dir="asc", page=1)


def run_grid(
    records: Iterable[Record],
    state: GridState,
    *,
    searchable_fields: Sequence[str],
    accessor: FieldAccessor | None = None,
) -> tuple[list[Record], Page]:
    ordered = apply_query(
        records,
        state.query,
        searchable_fields,
        state.filters,
        state.sort_key,
        state.sort_dir,
        accessor=accessor,
    )
    return ordered, paginate(ordered, state.page_size, state.page)


@dataclass(frozen=True)
class Column:
    key: str
    label: str
    sortable: bool = True
    render: CellRenderer | None = None


def _default_cell(value: Any) -> str:
    return stringify(value) or ""


def render_table(
    records: Sequence[Record],
    columns: Sequence[Column],
    *,
    accessor: FieldAccessor | None = None,
) -> list[dict[str, Any]]:
    get = accessor or default_accessor
    rows: list[dict[str, Any]] = []
    for index, record in enumerate(records):
        cells: dict[str, Any] = {}
        for column in columns:
            value = get(record, column.key)
            cells[column.key] = column.render(value, record, index) if column.render else _default_cell(value)
        rows.append(cells)
    return rows


def render_cards(records: Sequence[Record], render_card: CardRenderer) -> list[Any]:
    return [render_card(record, index) for index, record in enumerate(records)]


def _sort_indicator(column: Column, state: GridState | None) -> str | None:
    if not column.sortable:
        return None
    if state is None or state.sort_key != column.key:
        return "↕"
    return "↑" if state.sort_dir == "asc" else "↓"


def build_view(
    *,
    mode: str,
    page: Page | None,
    columns: Sequence[Column] = (),
    render_card: CardRenderer | None = None,
    state: GridState | None = None,
    controls: Sequence[dict[str, Any]] = (),
    loading: bool = False,
    error: str = "",
    empty_message: str = "No data found",
    accessor: FieldAccessor | None = None,
) -> dict[str, Any]:
    if mode not in VIEW_MODES:
        raise ValueError(f"view mode must be one of {VIEW_MODES}, got {mode!r}")
    if loading:
        return {"state": "loading", "mode": mode}
    if error:
        return {"state": "error", "mode": mode, "error": error}
    if page is None:
        raise ValueError("page is required once loading and error are clear")

    view: dict[str, Any] = {
        "mode": mode,
        "filters": list(controls),
        "pagination": {
            "current_page": page.current_page,
            "total_pages": page.total_pages,
            "page_size": page.page_size,
            "page_size_options": list(TABLE_PAGE_SIZES if mode == "table" else CARD_PAGE_SIZES),
            "total_count": page.total_count,
            "pages": page_window(page.current_page, page.total_pages),
            "showing": page.showing_label,
        },
    }
    if state is not None:
        view["query"] = {
            "q": state.query,
            "filters": dict(state.filters),
            "sort": state.sort_key,
            "dir": state.sort_dir,
        }
    if mode == "table":
        view["columns"] = [
            {
                "key": column.key,
                "label": column.label,
                "sortable": column.sortable,
                "sort_indicator": _sort_indicator(column, state),
            }
            for column in columns
        ]

    if not page.records:
        view["state"] = "empty"
        view["message"] = empty_message
        return view

    view["state"] = "ready"
    if mode == "table":
        view["rows"] = render_table(page.records, columns, accessor=accessor)
    else:
        if render_card is None:
            raise ValueError("card view requires a card renderer")
        view["cards"] = render_cards(page.records, render_card)
    return view
