"""Adapt legacy rendered spreads into the standard spread view model."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date

from spreadengine.models.view_model import (
    ColumnKind,
    RowFormat,
    SpreadColumn,
    SpreadRow,
    SpreadSection,
    SpreadViewModel,
    ViewModelMeta,
    ViewSource,
)
from spreadengine.parity.legacy_spread import (
    LegacyPeriodColumn,
    RenderedSpread,
    extract_legacy_spread_data,
)
from spreadengine.renderer.standard_rows import (
    STATEMENT_LABELS,
    STATEMENT_ORDER,
    format_value,
    home_row,
)

logger = logging.getLogger(__name__)

OTHER_SECTION = "OTHER"


def _column_key(column: LegacyPeriodColumn) -> str:
    return column.end_date.isoformat() if column.end_date else column.key


def _order_columns(columns: dict[str, SpreadColumn], ends: dict[str, date]) -> list[SpreadColumn]:
    dated = sorted(
        (c for c in columns.values() if c.key in ends and c.kind == ColumnKind.PERIOD),
        key=lambda c: ends[c.key],
    )
    rest = [c for c in columns.values() if c not in dated]
    return dated + rest


def render_from_legacy_spread(
    spreads: Iterable[RenderedSpread], deal_id: str
) -> SpreadViewModel:
    """Build a view model from one or more legacy rendered spreads.

    Rows whose key (or legacy alias) matches a standard row are placed in
    that row's section under the standard key, so they line up with the
    model rendering. Other rows are kept under their spread type. When two
    spreads supply the same row, the first non-null value per cell wins.

    Args:
        spreads: Legacy rendered spreads, e.g. T12 and BALANCE_SHEET.
        deal_id: Deal identifier.

    Returns:
        SpreadViewModel with source=legacy.
    """
    columns: dict[str, SpreadColumn] = {}
    ends: dict[str, date] = {}
    sections: dict[str, SpreadSection] = {}
    row_order: dict[str, dict[str, int]] = {}
    rows: dict[tuple[str, str], SpreadRow] = {}

    for spread in spreads:
        data = extract_legacy_spread_data(spread)
        col_keys: dict[str, str] = {}
        for column in data.periods:
            key = _column_key(column)
            col_keys[column.key] = key
            if key not in columns:
                columns[key] = SpreadColumn(
                    key=key,
                    label=column.label,
                    kind=ColumnKind.AGGREGATE if column.is_aggregate else ColumnKind.PERIOD,
                )
                if column.end_date is not None:
                    ends[key] = column.end_date

        for legacy_row in data.rows:
            standard = home_row(legacy_row.key)
            if standard is not None:
                section_key = standard.statement.value
                section_label = STATEMENT_LABELS[standard.statement]
                row_key, label, fmt, order = (
                    standard.key,
                    standard.label,
                    standard.format,
                    standard.order,
                )
            else:
                section_key = data.spread_type or OTHER_SECTION
                section_label = section_key.replace("_", " ").title()
                row_key, label = legacy_row.key, legacy_row.label
                fmt = RowFormat.CURRENCY
                order = len(row_order.get(section_key, {})) + 1000

            if section_key not in sections:
                sections[section_key] = SpreadSection(key=section_key, label=section_label)
            spread_row = rows.get((section_key, row_key))
            if spread_row is None:
                spread_row = SpreadRow(key=row_key, label=label, format=fmt)
                rows[(section_key, row_key)] = spread_row
                row_order.setdefault(section_key, {})[row_key] = order

            for legacy_col, value in legacy_row.value_by_period.items():
                col_key = col_keys.get(legacy_col, legacy_col)
                if spread_row.value_by_col.get(col_key) is None:
                    spread_row.value_by_col[col_key] = value
                    spread_row.display_by_col[col_key] = format_value(value, fmt)

    statement_rank = {s.value: i for i, s in enumerate(STATEMENT_ORDER)}
    ordered_sections = sorted(
        sections.values(),
        key=lambda s: statement_rank.get(s.key, len(statement_rank)),
    )
    for section in ordered_sections:
        order = row_order[section.key]
        section.rows = sorted(
            (row for (sk, _), row in rows.items() if sk == section.key),
            key=lambda r: order[r.key],
        )

    ordered_columns = _order_columns(columns, ends)
    meta = ViewModelMeta(
        row_count=len(rows),
        section_count=len(ordered_sections),
        period_count=sum(1 for c in ordered_columns if c.kind == ColumnKind.PERIOD),
        non_null_cell_count=sum(
            1 for r in rows.values() for v in r.value_by_col.values() if v is not None
        ),
    )
    logger.debug(
        "Adapted %d legacy rows into %d sections for deal %s",
        meta.row_count,
        meta.section_count,
        deal_id,
    )
    return SpreadViewModel(
        source=ViewSource.LEGACY,
        deal_id=deal_id,
        columns=ordered_columns,
        sections=ordered_sections,
        meta=meta,
    )

