import json
import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .grouping import Grouping
from .markup import apply_markup

logger = logging.getLogger(__name__)

SEPARATOR = "-" * 30
KEY_WIDTH = 50
VALUE_WIDTH = 15
NO_RESULTS = "No results found for this period."


def money(x: Decimal) -> str:
    # "+ 0" turns a negative amount that rounds to zero into 0.00, not -0.00
    return str(x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) + 0)


def parse_amount(metric_value: dict | None) -> Decimal | None:
    """Amount of a Cost Explorer MetricValue, or None if missing or unparseable."""
    if not metric_value or metric_value.get("Amount") is None:
        return None
    try:
        amount = Decimal(metric_value["Amount"])
    except (InvalidOperation, TypeError):
        return None
    return amount if amount.is_finite() else None


def summarize_total(results: list[dict], metric: str, factor: Decimal, label: str) -> Decimal:
    total = Decimal("0")
    for bucket in results:
        metric_value = bucket.get("Total", {}).get(metric)
        if not metric_value or metric_value.get("Amount") is None:
            continue
        amount = parse_amount(metric_value)
        if amount is None:
            logger.warning("Could not parse amount '%s' for %s total.", metric_value["Amount"], label)
            continue
        total += apply_markup(amount, factor)
    return total


def summarize_by_group(
    results: list[dict], metric: str, factor: Decimal, grouping: Grouping, label: str
) -> list[tuple[str, Decimal]]:
    """
    Marked-up totals per group, highest first.

    Groups with equal totals are ordered by name so output is reproducible.
    """
    totals: dict[str, Decimal] = {}
    for bucket in results:
        for group in bucket.get("Groups", []):
            key = grouping.key_for(group.get("Keys", []))
            if key is None:
                continue
            metric_value = group.get("Metrics", {}).get(metric)
            if not metric_value or metric_value.get("Amount") is None:
                continue
            amount = parse_amount(metric_value)
            if amount is None:
                logger.warning(
                    "Could not parse amount '%s' for %s %s in %s.",
                    metric_value["Amount"],
                    grouping.label.lower(),
                    key,
                    label,
                )
                continue
            totals[key] = totals.get(key, Decimal("0")) + apply_markup(amount, factor)

    return sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))


def _row(key: str, value: str) -> str:
    return f"  {key:<{KEY_WIDTH}} {value:>{VALUE_WIDTH}}"


def render_period_report(
    label: str,
    results: list[dict],
    metric: str,
    factor: Decimal,
    grouping: Grouping | None = None,
) -> list[str]:
    """Report lines for one period; `grouping` None means a single total."""
    lines = [f"--- {label} Results ---"]
    if not results:
        lines.append(NO_RESULTS)
        lines.append(SEPARATOR)
        return lines

    if grouping is None:
        total = summarize_total(results, metric, factor, label)
        lines.append(f"Total {metric} for {label}: {money(total)}")
    else:
        lines.append(f"Cost Summary by {grouping.label} ({label}):")
        rule = _row("-" * KEY_WIDTH, "-" * VALUE_WIDTH)
        lines.append(_row(grouping.label, metric))
        lines.append(rule)

        # the total row adds up the rounded rows exactly as displayed
        overall = Decimal("0")
        for key, value in summarize_by_group(results, metric, factor, grouping, label):
            shown = Decimal(money(value))
            lines.append(_row(key, str(shown)))
            overall += shown

        lines.append(rule)
        lines.append(_row(f"Total (Sum of {grouping.plural_label})", money(overall)))

    lines.append(SEPARATOR)
    return lines


def print_period_report(label, results, metric, factor, grouping=None) -> None:
    for line in render_period_report(label, results, metric, factor, grouping):
        print(line)


def print_raw_results(label: str, results: list[dict]) -> None:
    print(f"Raw API Response for {label} (JSON):")
    print(json.dumps(results, indent=2, default=str))
    print(SEPARATOR)
