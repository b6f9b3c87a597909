"""Tests for the operator CLI."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
from typer.testing import CliRunner

from discovery_service.cli.service_cli import ENV_TEMPLATE, app, render_env_template
from discovery_service.models.scraper_models import PageRecord
from discovery_service.services.site_crawler import SeedPageError

runner = CliRunner()


class TestSetupEnv:
    """Tests for the setup-env command."""

    def test_template_lists_every_variable(self):
        template = render_env_template()

        for name, _, _ in ENV_TEMPLATE:
            assert name in template
        assert "PORT=3005" in template
        assert "# LOGFIRE_TOKEN=" in template

    def test_template_includes_browser_timeouts(self):
        template = render_env_template()

        assert "SEED_NAVIGATION_TIMEOUT_SECONDS=60\n" in template
        assert "PAGE_NAVIGATION_TIMEOUT_SECONDS=30\n" in template
        assert "SETTLE_DELAY_SECONDS=2\n" in template

    def test_writes_new_file(self, tmp_path):
        path = tmp_path / ".env"

        result = runner.invoke(app, ["setup-env", "--path", str(path)])

        assert result.exit_code == 0
        assert path.read_text() == render_env_template()
        assert "✓ Wrote" in result.output

    def test_declining_overwrite_leaves_file(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("PORT=9999\n")

        with patch("discovery_service.cli.service_cli.questionary") as mock_questionary:
            mock_questionary.confirm.return_value.ask.return_value = False
            result = runner.invoke(app, ["setup-env", "--path", str(path)])

        assert result.exit_code == 0
        assert path.read_text() == "PORT=9999\n"
        assert "untouched" in result.output

    def test_confirming_overwrite_replaces_file(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("PORT=9999\n")

        with patch("discovery_service.cli.service_cli.questionary") as mock_questionary:
            mock_questionary.confirm.return_value.ask.return_value = True
            result = runner.invoke(app, ["setup-env", "--path", str(path)])

        assert result.exit_code == 0
        assert "PORT=3005" in path.read_text()

    def test_force_skips_confirmation(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("PORT=9999\n")

        with patch("discovery_service.cli.service_cli.questionary") as mock_questionary:
            result = runner.invoke(app, ["setup-env", "--path", str(path), "--force"])

        assert result.exit_code == 0
        mock_questionary.confirm.assert_not_called()
        assert "PORT=3005" in path.read_text()

    def test_ask_secrets_writes_values(self, tmp_path):
        path = tmp_path / ".env"

        with patch("discovery_service.cli.service_cli.questionary") as mock_questionary:
            mock_questionary.password.return_value.ask.side_effect = ["lf_token", ""]
            result = runner.invoke(app, ["setup-env", "--path", str(path), "--ask-secrets"])

        assert result.exit_code == 0
        assert "LOGFIRE_TOKEN=lf_token" in path.read_text()


class TestScrapeCommand:
    """Tests for the scrape command."""

    def test_rejects_invalid_url(self):
        result = runner.invoke(app, ["scrape", "not-a-url"])

        assert result.exit_code == 2

    def test_prints_result_json(self, mock_logfire):
        pages = [PageRecord(url="https://example.com", content="Acme was founded in 1999.")]
        crawler = MagicMock()
        crawler.crawl = AsyncMock(return_value=pages)

        with patch("discovery_service.cli.service_cli.SiteCrawler", return_value=crawler):
            result = runner.invoke(app, ["scrape", "https://example.com"])

        assert result.exit_code == 0
        assert '"companyBasics": "Acme was founded in 1999."' in result.stdout
        crawler.crawl.assert_awaited_once_with("https://example.com")

    def test_writes_output_file(self, tmp_path, mock_logfire):
        output = tmp_path / "acme.json"
        crawler = MagicMock()
        crawler.crawl = AsyncMock(return_value=[])

        with patch("discovery_service.cli.service_cli.SiteCrawler", return_value=crawler):
            result = runner.invoke(app, ["scrape", "https://example.com", "--output", str(output)])

        assert result.exit_code == 0
        assert '"rawPages": []' in output.read_text()

    def test_seed_failure_exits_with_error(self, mock_logfire):
        crawler = MagicMock()
        crawler.crawl = AsyncMock(side_effect=SeedPageError("https://example.com", "timeout"))

        with patch("discovery_service.cli.service_cli.SiteCrawler", return_value=crawler):
            result = runner.invoke(app, ["scrape", "https://example.com"])

        assert result.exit_code == 1


class TestProbeRateLimit:
    """Tests for the probe-rate-limit command."""

    def test_reports_rate_limited_requests(self, respx_mock):
        responses = [
            httpx.Response(200, json={"success": True}, headers={"RateLimit-Remaining": "0"}),
            httpx.Response(
                429,
                json={"success": False, "error": "Too many scraping requests, please try again later.", "retryAfter": 42},
            ),
            httpx.Response(
                429,
                json={"success": False, "error": "Too many scraping requests, please try again later.", "retryAfter": 42},
            ),
        ]
        route = respx_mock.get("http://localhost:3005/scrape").mock(side_effect=responses)

        result = runner.invoke(app, ["probe-rate-limit", "--requests", "3"])

        assert result.exit_code == 0
        assert route.call_count == 3
        assert "2 of 3 requests were rate limited" in result.output
        assert "retryAfter=42s" in result.output

    def test_connection_errors_are_reported(self, respx_mock):
        respx_mock.get("http://localhost:3005/scrape").mock(
            side_effect=httpx.ConnectError("connection refused")
        )

        result = runner.invoke(app, ["probe-rate-limit", "--requests", "2"])

        assert result.exit_code == 0
        assert "error" in result.output
        assert "0 of 2 requests were rate limited" in result.output
