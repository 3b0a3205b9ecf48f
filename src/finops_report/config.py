import argparse
import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from .errors import ConfigError
from .grouping import GroupDefinition, grouping_for, parse_group_by
from .markup import MARGIN_ENV_VAR, markup_factor

DEFAULT_REGION = "us-east-1"  # Cost Explorer is served from us-east-1
DEFAULT_GRANULARITY = "MONTHLY"
DEFAULT_METRICS = ("UnblendedCost",)
DEFAULT_GROUP_BY = (GroupDefinition(type="DIMENSION", key="SERVICE"),)
GRANULARITIES = ("DAILY", "MONTHLY")

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_READ_TIMEOUT = 60


@dataclass(frozen=True)
class ReportQuery:
    granularity: str = DEFAULT_GRANULARITY
    metrics: tuple[str, ...] = DEFAULT_METRICS
    group_by: tuple[GroupDefinition, ...] = DEFAULT_GROUP_BY
    filter: dict | None = None

    def __post_init__(self):
        if self.granularity not in GRANULARITIES:
            raise ConfigError(f"granularity must be one of {', '.join(GRANULARITIES)}, got {self.granularity}")
        if not self.metrics:
            raise ConfigError("at least one metric is required")
        # validates types and the GroupBy limit up front
        grouping_for(self.group_by)

    @property
    def cost_metric(self) -> str:
        # the first metric is the one the report marks up and displays
        return self.metrics[0]


@dataclass(frozen=True)
class ReportConfig:
    query: ReportQuery = field(default_factory=ReportQuery)
    markup: Decimal = Decimal("1")
    asof: datetime | None = None
    profile: str | None = None
    region: str = DEFAULT_REGION
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    timeout: float | None = None
    show_raw: bool = False
    log_level: str = "INFO"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="finops-report",
        description=(
            "Print AWS cost for the previous month and the current month to date. "
            f"Set {MARGIN_ENV_VAR} to apply a percentage markup (or a negative discount)."
        ),
    )
    parser.add_argument("--profile", help="AWS profile name (default: AWS_PROFILE or the default credential chain)")
    parser.add_argument("--region", default=DEFAULT_REGION, help=f"Cost Explorer region (default: {DEFAULT_REGION})")
    parser.add_argument(
        "--granularity",
        default=DEFAULT_GRANULARITY,
        type=str.upper,
        choices=GRANULARITIES,
        help=f"Time bucket size (default: {DEFAULT_GRANULARITY})",
    )
    parser.add_argument(
        "--metric",
        dest="metrics",
        action="append",
        help=f"Cost metric, repeatable; the first one is reported (default: {DEFAULT_METRICS[0]})",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--group-by",
        action="append",
        metavar="TYPE:KEY",
        help="Group-by definition, e.g. DIMENSION:SERVICE or TAG:Environment (default: DIMENSION:SERVICE)",
    )
    group.add_argument("--no-group-by", action="store_true", help="Report a single total per period")
    parser.add_argument("--filter", help="Cost Explorer filter expression as JSON")
    parser.add_argument("--asof", help="Reference date or datetime in ISO format (default: now)")
    parser.add_argument("--timeout", type=float, help="Stop fetching once the whole run has taken this many seconds")
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=DEFAULT_MAX_ATTEMPTS,
        help=f"Attempts per API call, including retries (default: {DEFAULT_MAX_ATTEMPTS})",
    )
    parser.add_argument("--show-raw", action="store_true", help="Print the raw Cost Explorer response as JSON")
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser


def parse_asof(text: str | None) -> datetime | None:
    if not text:
        return None
    try:
        value = datetime.fromisoformat(text)
    except ValueError as e:
        raise ConfigError(f"invalid --asof value '{text}': {e}") from e
    if value.tzinfo is None:
        value = value.astimezone()
    return value


def parse_filter(text: str | None) -> dict | None:
    if not text:
        return None
    try:
        expression = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid --filter JSON: {e}") from e
    if not isinstance(expression, dict):
        raise ConfigError("--filter must be a JSON object")
    return expression


def load_config(args: argparse.Namespace, environ=None) -> ReportConfig:
    """Build the run's configuration from parsed arguments and the environment."""
    if environ is None:
        environ = os.environ

    if args.no_group_by:
        group_by = ()
    elif args.group_by:
        group_by = tuple(parse_group_by(g) for g in args.group_by)
    else:
        group_by = DEFAULT_GROUP_BY

    if args.max_attempts < 1:
        raise ConfigError("--max-attempts must be at least 1")
    if args.timeout is not None and args.timeout <= 0:
        raise ConfigError("--timeout must be positive")

    query = ReportQuery(
        granularity=args.granularity,
        metrics=tuple(args.metrics) if args.metrics else DEFAULT_METRICS,
        group_by=group_by,
        filter=parse_filter(args.filter),
    )

    return ReportConfig(
        query=query,
        markup=markup_factor(environ.get(MARGIN_ENV_VAR)),
        asof=parse_asof(args.asof),
        profile=args.profile or environ.get("AWS_PROFILE") or None,
        region=args.region,
        max_attempts=args.max_attempts,
        timeout=args.timeout,
        show_raw=args.show_raw,
        log_level=args.log_level,
    )
