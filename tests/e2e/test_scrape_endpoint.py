"""E2E tests for GET /scrape with the fake browser."""

from unittest.mock import patch

SEED_URL = "https://example.com"


class TestScrapeEndpoint:
    """Request/response contract of the scrape endpoint."""

    def test_missing_url(self, test_client):
        response = test_client.get("/scrape")

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "URL is required"}

    def test_blank_url(self, test_client):
        response = test_client.get("/scrape", params={"url": "  "})

        assert response.status_code == 400
        assert response.json()["error"] == "URL is required"

    def test_invalid_url(self, test_client, fake_launcher):
        response = test_client.get("/scrape", params={"url": "example.com"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Invalid URL"
        assert body["details"]
        assert fake_launcher.browsers == []

    def test_successful_scrape(self, test_client, fake_launcher):
        response = test_client.get("/scrape", params={"url": SEED_URL})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert [p["url"] for p in data["rawPages"]] == [
            SEED_URL,
            f"{SEED_URL}/about",
            f"{SEED_URL}/careers",
        ]
        assert data["combinedText"].count("\n\n") == 2
        assert "founded in 1999" in data["companyBasics"]
        assert "platform" in data["productsAndServices"]
        assert "culture" in data["cultureAndValues"]
        assert data["recentNews"] is None
        assert fake_launcher.all_closed()

    def test_raw_html_is_not_exposed(self, test_client):
        response = test_client.get("/scrape", params={"url": SEED_URL})

        for page in response.json()["data"]["rawPages"]:
            assert set(page) == {"url", "content"}
        assert "<main>" not in response.text

    def test_partial_failure_still_succeeds(self, test_client, fake_site):
        fake_site.timeouts.add(f"{SEED_URL}/about")

        response = test_client.get("/scrape", params={"url": SEED_URL})

        assert response.status_code == 200
        urls = [p["url"] for p in response.json()["data"]["rawPages"]]
        assert urls == [SEED_URL, f"{SEED_URL}/careers"]

    def test_news_pages_produce_recent_news(self, test_client, fake_site):
        fake_site.pages[SEED_URL] = (
            '<html><body><main>Home <a href="/news">News</a></main></body></html>'
        )
        fake_site.pages[f"{SEED_URL}/news"] = (
            "<html><body><main>"
            '<a href="/news/funding">Acme closes a $20M Series B round</a>'
            "</main></body></html>"
        )

        response = test_client.get("/scrape", params={"url": SEED_URL})

        news = response.json()["data"]["recentNews"]
        assert news == [
            {
                "title": "Acme closes a $20M Series B round",
                "url": f"{SEED_URL}/news/funding",
                "date": None,
            }
        ]

    def test_seed_failure_returns_500(self, test_client, fake_site, fake_launcher):
        fake_site.timeouts.add(SEED_URL)

        response = test_client.get("/scrape", params={"url": SEED_URL})

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Failed to scrape the website"
        assert "timed out" in body["details"]
        assert fake_launcher.all_closed()

    def test_launch_failure_returns_500(self, test_client, fake_launcher):
        fake_launcher.fail_launch = True

        response = test_client.get("/scrape", params={"url": SEED_URL})

        assert response.status_code == 500
        assert "launch" in response.json()["details"]

    def test_aggregation_error_returns_500(self, test_client, fake_launcher):
        with patch(
            "discovery_service.api.scrape.build_scrape_result",
            side_effect=RuntimeError("boom"),
        ):
            response = test_client.get("/scrape", params={"url": SEED_URL})

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to scrape the website"
        assert fake_launcher.all_closed()

    def test_crawl_error_is_sent_to_sentry(self, test_client):
        with patch(
            "discovery_service.api.scrape.SiteCrawler.crawl",
            side_effect=RuntimeError("boom"),
        ), patch("discovery_service.api.scrape.sentry_sdk") as mock_sentry:
            response = test_client.get("/scrape", params={"url": SEED_URL})

        assert response.status_code == 500
        assert response.json()["details"] == "boom"
        mock_sentry.capture_exception.assert_called_once()

    def test_scrape_rate_limit_headers(self, test_client):
        response = test_client.get("/scrape", params={"url": SEED_URL})

        assert response.headers["RateLimit-Limit"] == "10"
        assert response.headers["RateLimit-Remaining"] == "9"
        assert int(response.headers["RateLimit-Reset"]) >= 1
