"""
Tests for the report run: period sequencing, first-of-month handling,
per-period error isolation and exit codes.
"""
import logging
from datetime import datetime
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError, PartialCredentialsError

from finops_report.cli import EXIT_CONFIG, EXIT_OK, main, run_report
from finops_report.config import ReportConfig, ReportQuery
from finops_report.cost_report import SEPARATOR
from finops_report.errors import ConfigError
from finops_report.markup import markup_factor

METRIC = "UnblendedCost"


def service_page(services: dict):
    return {
        "ResultsByTime": [
            {
                "TimePeriod": {"Start": "2025-04-01", "End": "2025-05-01"},
                "Total": {},
                "Groups": [
                    {"Keys": [name], "Metrics": {METRIC: {"Amount": amount, "Unit": "USD"}}}
                    for name, amount in services.items()
                ],
                "Estimated": False,
            }
        ]
    }


def total_page(*amounts):
    return {
        "ResultsByTime": [
            {"TimePeriod": {}, "Total": {METRIC: {"Amount": a, "Unit": "USD"}}, "Groups": []}
            for a in amounts
        ]
    }


class TestRunReport:
    """Tests for run_report."""

    def test_both_periods_fetched(self, capsys):
        mock_ce = Mock()
        mock_ce.get_cost_and_usage.side_effect = [
            service_page({"Amazon S3": "10", "AWS Lambda": "20"}),
            service_page({"Amazon S3": "5"}),
        ]

        run_report(mock_ce, ReportConfig(), datetime(2025, 5, 19, 9, 30))

        calls = mock_ce.get_cost_and_usage.call_args_list
        assert calls[0].kwargs["TimePeriod"] == {"Start": "2025-04-01", "End": "2025-05-01"}
        assert calls[1].kwargs["TimePeriod"] == {"Start": "2025-05-01", "End": "2025-06-01"}
        assert calls[0].kwargs["GroupBy"] == [{"Type": "DIMENSION", "Key": "SERVICE"}]

        out = capsys.readouterr().out
        assert "Fetching Previous Month's Data (2025-04-01 to 2025-05-01)..." in out
        assert "Fetching Current Month's Data (2025-05-01 to 2025-06-01)..." in out
        assert "--- Previous Month (Apr 2025) Results ---" in out
        assert "--- Current Month MTD (May 2025) Results ---" in out
        assert out.index("AWS Lambda") < out.index("Amazon S3")

    def test_first_of_month_skips_current_fetch(self, capsys):
        """Test no current-month fetch is attempted on the 1st."""
        mock_ce = Mock()
        mock_ce.get_cost_and_usage.return_value = service_page({"Amazon S3": "10"})

        run_report(mock_ce, ReportConfig(), datetime(2025, 5, 1, 12, 0, 8))

        assert mock_ce.get_cost_and_usage.call_count == 1
        assert mock_ce.get_cost_and_usage.call_args.kwargs["TimePeriod"]["Start"] == "2025-04-01"
        out = capsys.readouterr().out
        assert "--- Current Month Results ---" in out
        assert "Check back tomorrow" in out
        assert out.endswith(SEPARATOR + "\n")

    def test_markup_end_to_end(self, capsys):
        """Test 20% markup on ungrouped totals of 100 and 50 renders 180.00."""
        mock_ce = Mock()
        mock_ce.get_cost_and_usage.return_value = total_page("100.00", "50.00")
        config = ReportConfig(query=ReportQuery(group_by=()), markup=markup_factor("20"))

        run_report(mock_ce, config, datetime(2025, 5, 1))

        assert "GroupBy" not in mock_ce.get_cost_and_usage.call_args.kwargs
        out = capsys.readouterr().out
        assert "Total UnblendedCost for Previous Month (Apr 2025): 180.00" in out

    def test_fetch_error_isolated_to_period(self, capsys, caplog):
        """Test a failed previous month does not stop the current month."""
        mock_ce = Mock()
        mock_ce.get_cost_and_usage.side_effect = [
            ClientError({"Error": {"Code": "ThrottlingException", "Message": "Rate exceeded"}}, "GetCostAndUsage"),
            service_page({"Amazon S3": "5"}),
        ]

        with caplog.at_level(logging.ERROR):
            run_report(mock_ce, ReportConfig(), datetime(2025, 5, 19))

        out = capsys.readouterr().out
        assert "--- Previous Month (Apr 2025) Results ---" not in out
        assert "--- Current Month MTD (May 2025) Results ---" in out
        assert "ThrottlingException" in caplog.text
        assert "2025-04-01 to 2025-05-01" in caplog.text

    def test_show_raw(self, capsys):
        mock_ce = Mock()
        mock_ce.get_cost_and_usage.return_value = total_page("1.00")
        config = ReportConfig(query=ReportQuery(group_by=()), show_raw=True)

        run_report(mock_ce, config, datetime(2025, 5, 1))

        out = capsys.readouterr().out
        assert "Raw API Response for Previous Month (Apr 2025) (JSON):" in out
        assert '"Amount": "1.00"' in out


@pytest.fixture
def no_logging_setup():
    with patch("finops_report.cli.setup_logging"):
        yield


@pytest.mark.usefixtures("no_logging_setup")
class TestMain:
    """Tests for main."""

    @patch("finops_report.cli.create_ce_client")
    @patch("finops_report.cli.verify_credentials")
    @patch("finops_report.cli.get_session")
    def test_success(self, mock_get_session, mock_verify, mock_create_client, capsys, monkeypatch):
        monkeypatch.setenv("AWS_MARGIN", "20")
        mock_verify.return_value = ("123456789012", "arn:aws:iam::123456789012:user/finops")
        mock_ce = Mock()
        mock_ce.get_cost_and_usage.return_value = total_page("100.00", "50.00")
        mock_create_client.return_value = mock_ce

        code = main(["--no-group-by", "--asof", "2025-05-01", "--profile", "finops"])

        assert code == EXIT_OK
        mock_get_session.assert_called_once_with("finops")
        _, kwargs = mock_create_client.call_args
        assert kwargs["max_attempts"] == 5
        assert "Total UnblendedCost for Previous Month (Apr 2025): 180.00" in capsys.readouterr().out

    @patch("finops_report.cli.create_ce_client")
    @patch("finops_report.cli.verify_credentials")
    @patch("finops_report.cli.get_session")
    def test_credential_failure_is_fatal(self, mock_get_session, mock_verify, mock_create_client, capsys):
        mock_verify.side_effect = ConfigError("Unable to locate AWS credentials.")

        code = main(["--asof", "2025-05-19"])

        assert code == EXIT_CONFIG
        mock_create_client.assert_not_called()
        assert "Fetching" not in capsys.readouterr().out

    @patch("finops_report.cli.create_ce_client")
    @patch("finops_report.cli.get_session")
    def test_partial_credentials_exit_cleanly(self, mock_get_session, mock_create_client, capsys):
        """Test a half-configured credential chain exits with the config code, not a traceback."""
        mock_get_session.return_value.get_credentials.side_effect = PartialCredentialsError(
            provider="env", cred_var="AWS_SECRET_ACCESS_KEY"
        )

        assert main(["--asof", "2025-05-19"]) == EXIT_CONFIG
        mock_create_client.assert_not_called()
        assert "Fetching" not in capsys.readouterr().out

    @patch("finops_report.cli.get_session")
    def test_bad_option_is_fatal(self, mock_get_session):
        assert main(["--filter", "{oops"]) == EXIT_CONFIG
        mock_get_session.assert_not_called()

    @patch("finops_report.cli.create_ce_client")
    @patch("finops_report.cli.verify_credentials")
    @patch("finops_report.cli.get_session")
    def test_fetch_errors_still_exit_zero(self, mock_get_session, mock_verify, mock_create_client):
        mock_verify.return_value = ("123456789012", "arn")
        mock_ce = Mock()
        mock_ce.get_cost_and_usage.side_effect = ClientError(
            {"Error": {"Code": "AccessDeniedException", "Message": "denied"}}, "GetCostAndUsage"
        )
        mock_create_client.return_value = mock_ce

        assert main(["--asof", "2025-05-19"]) == EXIT_OK
        assert mock_ce.get_cost_and_usage.call_count == 2
