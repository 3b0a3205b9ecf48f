"""
Previous month and month-to-date AWS cost report.

Usage:
    finops-report
    AWS_MARGIN=15 finops-report --profile finops
    finops-report --no-group-by --asof 2025-05-01
    finops-report --group-by TAG:Environment --granularity DAILY
"""
import logging
import sys
import time
from datetime import datetime

from .config import ReportConfig, build_parser, load_config
from .cost_explorer import create_ce_client, fetch_cost_and_usage, get_session, verify_credentials
from .cost_report import SEPARATOR, print_period_report, print_raw_results
from .errors import ConfigError, FetchError
from .grouping import grouping_for
from .periods import ReportingPeriod, month_periods

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG = 2


def setup_logging(level: str = "INFO") -> None:
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    # logs go to stderr so stdout carries only the report
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(max(numeric_level, logging.INFO))


def report_period(ce_client, config: ReportConfig, period: ReportingPeriod, deadline: float | None = None) -> None:
    """Fetch and print one period; a failed fetch is logged and the period skipped."""
    query = config.query
    print(f"Fetching {period.name}'s Data ({period.start_iso} to {period.end_iso})...")
    try:
        results = fetch_cost_and_usage(
            ce_client,
            period.start_iso,
            period.end_iso,
            query.granularity,
            query.metrics,
            group_by=query.group_by,
            filter_expression=query.filter,
            deadline=deadline,
        )
    except FetchError as e:
        logger.error("Fetching %s data: %s", period.label, e)
        return

    if config.show_raw:
        print_raw_results(period.label, results)

    grouping = grouping_for(query.group_by) if query.group_by else None
    print_period_report(period.label, results, query.cost_metric, config.markup, grouping)


def run_report(ce_client, config: ReportConfig, now: datetime) -> None:
    periods = month_periods(now)
    deadline = time.monotonic() + config.timeout if config.timeout else None

    report_period(ce_client, config, periods.previous, deadline)

    if periods.day == 1:
        # Cost Explorer has no data yet for a month that started today
        print("--- Current Month Results ---")
        print("Today is the 1st of the month. Check back tomorrow to see this month's usage data.")
        print(SEPARATOR)
    else:
        report_period(ce_client, config, periods.current, deadline)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = load_config(args)
        now = config.asof or datetime.now().astimezone()
        logger.info("Current script time set to: %s", now.strftime("%a, %d %b %Y %H:%M:%S %z"))

        session = get_session(config.profile)
        account_id, arn = verify_credentials(session)
        logger.info("Credentials valid. Account: %s (%s)", account_id, arn)

        ce = create_ce_client(
            session,
            config.region,
            max_attempts=config.max_attempts,
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
        )
    except ConfigError as e:
        logger.error("%s", e)
        return EXIT_CONFIG

    run_report(ce, config, now)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
