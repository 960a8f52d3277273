"""Human-readable markdown rendering of a ParityReport."""

from __future__ import annotations

from decimal import Decimal

from spreadengine.models.parity import ParityReport, Severity
from spreadengine.parity.metric_dictionary import METRICS_BY_KEY


def _fmt(value: Decimal | None) -> str:
    if value is None:
        return "n/a"
    if not value.is_finite():
        return str(value)
    return f"{value:,.2f}"


def _fmt_pct(value: Decimal | None) -> str:
    if value is None:
        return "n/a"
    if not value.is_finite():
        return "inf"
    return f"{value * 100:.4f}%"


def _label(key: str) -> str:
    metric = METRICS_BY_KEY.get(key)
    return metric.label if metric else key


def format_parity_report(report: ParityReport) -> str:
    """Render a parity report as markdown.

    Sections: verdict, period alignment, headline metrics, line item
    mismatches (material diffs only), flags, notes, thresholds, summary.
    """
    lines: list[str] = [
        f"# Parity Report: {report.deal_id}",
        "",
        f"**Verdict: {report.pass_fail.value}** (gate: {report.gate.value})",
        "",
        "## Period Alignment",
        "",
        "| Period End | Legacy | Model | Aligned |",
        "|---|---|---|---|",
    ]
    alignment = report.alignment
    for period_end in sorted(
        [*alignment.aligned, *alignment.legacy_only, *alignment.model_only]
    ):
        in_legacy = period_end in alignment.aligned or period_end in alignment.legacy_only
        in_model = period_end in alignment.aligned or period_end in alignment.model_only
        lines.append(
            f"| {period_end.isoformat()} | {'yes' if in_legacy else 'no'} "
            f"| {'yes' if in_model else 'no'} "
            f"| {'yes' if in_legacy and in_model else 'no'} |"
        )

    lines += [
        "",
        "## Headline Metrics",
        "",
        "| Metric | Period End | Legacy | Model | Delta | Pct | Status |",
        "|---|---|---|---|---|---|---|",
    ]
    for h in report.headline:
        lines.append(
            f"| {_label(h.key)} | {h.period_end.isoformat()} | {_fmt(h.left)} "
            f"| {_fmt(h.right)} | {_fmt(h.delta)} | {_fmt_pct(h.pct_delta)} "
            f"| {'PASS' if h.within_tolerance else 'FAIL'} |"
        )

    lines += ["", "## Line Item Mismatches", ""]
    mismatches = [
        (comparison.period_end, diff)
        for comparison in report.period_comparisons
        for diff in comparison.diffs.values()
        if diff.material
    ]
    if mismatches:
        lines += [
            "| Metric | Period End | Legacy | Model | Delta | Pct | Severity |",
            "|---|---|---|---|---|---|---|",
        ]
        for period_end, diff in mismatches:
            severity = diff.severity.value if diff.severity != Severity.NONE else "-"
            lines.append(
                f"| {_label(diff.key)} | {period_end.isoformat()} | {_fmt(diff.left)} "
                f"| {_fmt(diff.right)} | {_fmt(diff.delta)} | {_fmt_pct(diff.pct_delta)} "
                f"| {severity} |"
            )
    else:
        lines.append("No material line item mismatches.")

    lines += ["", "## Flags", ""]
    if report.flags:
        for flag in report.flags:
            lines.append(f"- **{flag.severity.value.upper()}** `{flag.type.value}`: {flag.message}")
    else:
        lines.append("No flags.")

    if report.notes:
        lines += ["", "## Notes", ""]
        lines += [f"- {note}" for note in report.notes]

    t = report.thresholds
    lines += [
        "",
        "## Thresholds Used",
        "",
        f"- Profile: {t.name}",
        f"- Headline tolerance: abs {t.headline_abs_tolerance}, pct {t.headline_pct_tolerance}",
        f"- Missing legacy period fails: {'yes' if t.missing_period_fails else 'no'}",
    ]
    for category, ct in t.categories.items():
        lines.append(
            f"- {category.value}: WARN abs {ct.warn_abs} / pct {ct.warn_pct}; "
            f"BLOCK abs {ct.block_abs} / pct {ct.block_pct}"
        )

    s = report.summary
    lines += [
        "",
        "## Summary",
        "",
        f"- Comparisons: {s.comparisons}",
        f"- Differences: {s.total_differences}",
        f"- Material: {s.material_count}",
        f"- WARN: {s.warn_count}, BLOCK: {s.block_count}",
        f"- Max abs delta: {_fmt(s.max_abs_delta)}",
        "",
    ]
    return "\n".join(lines)
