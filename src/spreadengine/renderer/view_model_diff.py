"""Cell-level diff between two spread view models.

Used in shadow mode to compare the legacy rendering against the model
rendering. Rows are matched by (section key, row key) and cells by column
key; only columns present on both sides are compared cell by cell.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field

from spreadengine.models.view_model import SpreadRow, SpreadViewModel
from spreadengine.parity.materiality import is_material


class CellDiff(BaseModel):
    """One differing cell."""

    section: str
    row: str
    column: str
    left: Decimal | None
    right: Decimal | None
    delta: Decimal | None = None
    material: bool

    model_config = {"frozen": True, "extra": "forbid"}


class RowPresence(BaseModel):
    """A row present on only one side."""

    section: str
    row: str
    side: str = Field(..., description='"left" or "right"')

    model_config = {"frozen": True, "extra": "forbid"}


class ViewModelDiffSummary(BaseModel):
    """Cell counters for a diff."""

    total_cells: int = 0
    matching_cells: int = 0
    differing_cells: int = 0
    material_diffs: int = 0
    max_abs_delta: Decimal = Decimal("0")
    passed: bool = True

    model_config = {"frozen": False, "extra": "forbid"}


class ViewModelDiff(BaseModel):
    """Full diff result."""

    deal_id: str
    cells: list[CellDiff] = Field(default_factory=list)
    missing_rows: list[RowPresence] = Field(default_factory=list)
    columns_only_left: list[str] = Field(default_factory=list)
    columns_only_right: list[str] = Field(default_factory=list)
    summary: ViewModelDiffSummary = Field(default_factory=ViewModelDiffSummary)

    model_config = {"frozen": False, "extra": "forbid"}


def _rows(view: SpreadViewModel) -> dict[tuple[str, str], SpreadRow]:
    return {(s.key, r.key): r for s in view.sections for r in s.rows}


def _compare_cell(
    section: str, row: str, column: str, left: Decimal | None, right: Decimal | None
) -> CellDiff | None:
    if left is None and right is None:
        return None
    if left is None or right is None:
        return CellDiff(
            section=section, row=row, column=column, left=left, right=right, material=True
        )
    delta = right - left
    if delta == 0:
        return None
    return CellDiff(
        section=section,
        row=row,
        column=column,
        left=left,
        right=right,
        delta=delta,
        material=is_material(left, delta),
    )


def diff_view_models(left: SpreadViewModel, right: SpreadViewModel) -> ViewModelDiff:
    """Diff two view models cell by cell.

    A cell present on one side only counts as a material difference. A
    numeric difference is material per is_material(). The diff passes when
    there are no material cell differences.

    Args:
        left: Usually the legacy rendering.
        right: Usually the model rendering.

    Returns:
        ViewModelDiff with cell diffs, one-sided rows and columns, and summary.
    """
    left_cols = [c.key for c in left.columns]
    right_cols = [c.key for c in right.columns]
    common_cols = [c for c in left_cols if c in right_cols]

    result = ViewModelDiff(
        deal_id=right.deal_id or left.deal_id,
        columns_only_left=[c for c in left_cols if c not in right_cols],
        columns_only_right=[c for c in right_cols if c not in left_cols],
    )
    summary = result.summary

    left_rows = _rows(left)
    right_rows = _rows(right)
    for key in left_rows:
        if key not in right_rows:
            result.missing_rows.append(RowPresence(section=key[0], row=key[1], side="left"))
    for key in right_rows:
        if key not in left_rows:
            result.missing_rows.append(RowPresence(section=key[0], row=key[1], side="right"))

    for key, left_row in left_rows.items():
        right_row = right_rows.get(key)
        if right_row is None:
            continue
        for column in common_cols:
            summary.total_cells += 1
            cell = _compare_cell(
                key[0],
                key[1],
                column,
                left_row.value_by_col.get(column),
                right_row.value_by_col.get(column),
            )
            if cell is None:
                summary.matching_cells += 1
                continue
            result.cells.append(cell)
            summary.differing_cells += 1
            if cell.material:
                summary.material_diffs += 1
            if cell.delta is not None:
                summary.max_abs_delta = max(summary.max_abs_delta, abs(cell.delta))

    summary.passed = summary.material_diffs == 0
    return result


def format_view_model_diff(diff: ViewModelDiff) -> str:
    """Render a diff as markdown."""
    s = diff.summary
    lines = [
        f"# Spread Diff: {diff.deal_id}",
        "",
        f"**{'PASS' if s.passed else 'FAIL'}**: {s.matching_cells}/{s.total_cells} cells match, "
        f"{s.material_diffs} material",
        "",
    ]
    if diff.columns_only_left or diff.columns_only_right:
        lines.append("## Columns")
        lines.append("")
        lines += [f"- only left: {c}" for c in diff.columns_only_left]
        lines += [f"- only right: {c}" for c in diff.columns_only_right]
        lines.append("")
    if diff.missing_rows:
        lines.append("## One-Sided Rows")
        lines.append("")
        lines += [f"- {m.section}/{m.row} ({m.side} only)" for m in diff.missing_rows]
        lines.append("")
    if diff.cells:
        lines += [
            "## Cells",
            "",
            "| Section | Row | Column | Left | Right | Delta | Material |",
            "|---|---|---|---|---|---|---|",
        ]
        for c in diff.cells:
            lines.append(
                f"| {c.section} | {c.row} | {c.column} | {c.left if c.left is not None else '-'} "
                f"| {c.right if c.right is not None else '-'} "
                f"| {c.delta if c.delta is not None else '-'} | {'yes' if c.material else 'no'} |"
            )
        lines.append("")
    return "\n".join(lines)
