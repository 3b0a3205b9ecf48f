import logging
import time

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
    ProfileNotFound,
)

from .errors import ConfigError, FetchError

logger = logging.getLogger(__name__)


def get_session(profile: str | None = None):
    """
    Prefer a named profile if one is given; otherwise fall back to default boto3 credential resolution.
    """
    try:
        if profile:
            return boto3.Session(profile_name=profile)
        return boto3.Session()
    except ProfileNotFound as e:
        raise ConfigError(f"AWS profile not found: {profile}") from e


def verify_credentials(session) -> tuple[str, str]:
    """Prove credentials early (better error message than failing inside CE)."""
    try:
        # credential providers (env, SSO, credential_process) resolve here
        if session.get_credentials() is None:
            raise ConfigError("Unable to locate AWS credentials.")
        sts = session.client("sts")
        ident = sts.get_caller_identity()
    except (NoCredentialsError, PartialCredentialsError) as e:
        raise ConfigError("AWS credentials not found or incomplete.") from e
    except ClientError as e:
        err = e.response.get("Error", {})
        raise ConfigError(f"STS call failed: {err.get('Code', 'Unknown')} - {err.get('Message', str(e))}") from e
    except BotoCoreError as e:
        raise ConfigError(f"STS call failed: {e}") from e

    return ident["Account"], ident["Arn"]


def create_ce_client(
    session,
    region: str,
    max_attempts: int = 5,
    connect_timeout: float = 10,
    read_timeout: float = 60,
):
    # standard mode retries throttling and transient errors with backoff
    cfg = Config(
        retries={"max_attempts": max_attempts, "mode": "standard"},
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
    )
    try:
        return session.client("ce", region_name=region, config=cfg)
    except BotoCoreError as e:
        raise ConfigError(f"Unable to create Cost Explorer client: {e}") from e


def _describe(e: Exception) -> str:
    if isinstance(e, ClientError):
        err = e.response.get("Error", {})
        return f"{err.get('Code', 'Unknown')} - {err.get('Message', str(e))}"
    return str(e)


def fetch_cost_and_usage(
    ce_client,
    start: str,
    end: str,
    granularity: str,
    metrics,
    group_by=None,
    filter_expression: dict | None = None,
    deadline: float | None = None,
) -> list[dict]:
    """
    Fetch every ResultsByTime bucket for [start, end), following NextPageToken.

    Buckets are returned in API order. An error on any page discards what was
    fetched so far and raises FetchError. `deadline` is a time.monotonic()
    value checked before each page request.
    """
    results = []
    next_token = None
    page = 0

    while True:
        if deadline is not None and time.monotonic() >= deadline:
            raise FetchError(start, end, f"timed out after {page} page(s)")

        kwargs = {
            "TimePeriod": {"Start": start, "End": end},
            "Granularity": granularity,
            "Metrics": list(metrics),
        }
        if group_by:
            kwargs["GroupBy"] = [g.to_request() for g in group_by]
        if filter_expression:
            kwargs["Filter"] = filter_expression
        if next_token:
            kwargs["NextPageToken"] = next_token

        try:
            resp = ce_client.get_cost_and_usage(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise FetchError(start, end, _describe(e)) from e

        page += 1
        buckets = resp.get("ResultsByTime", [])
        logger.debug("Fetched page %d for %s to %s: %d bucket(s)", page, start, end, len(buckets))
        results.extend(buckets)

        next_token = resp.get("NextPageToken")
        if not next_token:
            break

    return results
