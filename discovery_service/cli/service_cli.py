"""Typer-based operator CLI."""

import os

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

import asyncio
from pathlib import Path

import httpx
import questionary
import typer
from dotenv import dotenv_values, set_key

from discovery_service.constants import (
    CONTENT_SELECTOR_TIMEOUT_SECONDS,
    DEFAULT_ALLOWED_ORIGINS,
    DEFAULT_MAX_CONCURRENT_SCRAPES,
    DEFAULT_MAX_DISCOVERED_PAGES,
    DEFAULT_PORT,
    DEFAULT_RATE_LIMIT_MAX_REQUESTS,
    DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
    DEFAULT_SCRAPE_RATE_LIMIT_MAX_REQUESTS,
    DEFAULT_SCRAPE_RATE_LIMIT_WINDOW_SECONDS,
    PAGE_NAVIGATION_TIMEOUT_SECONDS,
    PDF_RENDER_TIMEOUT_SECONDS,
    SEED_NAVIGATION_TIMEOUT_SECONDS,
    SETTLE_DELAY_SECONDS,
)
from discovery_service.services.aggregator import build_scrape_result
from discovery_service.services.browser import BrowserError, launch_chrome
from discovery_service.services.input_validator import validate_target_url
from discovery_service.services.site_crawler import SeedPageError, SiteCrawler

app = typer.Typer(help="Operator tools for the web discovery service.")

# (variable, default, comment). Empty default means "leave unset".
ENV_TEMPLATE: list[tuple[str, str, str]] = [
    ("ENV", "local", "local | railway | prod"),
    ("PORT", str(DEFAULT_PORT), "HTTP port"),
    ("LOG_LEVEL", "INFO", "Python logging level"),
    ("LOGFIRE_TOKEN", "", "Pydantic Logfire write token (optional)"),
    ("SENTRY_DSN", "", "Sentry DSN (optional)"),
    ("SENTRY_TRACES_SAMPLE_RATE", "1.0", "Sentry traces sample rate"),
    ("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS, "Comma-separated CORS origins"),
    ("RATE_LIMIT_WINDOW_SECONDS", str(DEFAULT_RATE_LIMIT_WINDOW_SECONDS), "General window"),
    ("RATE_LIMIT_MAX_REQUESTS", str(DEFAULT_RATE_LIMIT_MAX_REQUESTS), "General limit"),
    (
        "SCRAPE_RATE_LIMIT_WINDOW_SECONDS",
        str(DEFAULT_SCRAPE_RATE_LIMIT_WINDOW_SECONDS),
        "/scrape window",
    ),
    (
        "SCRAPE_RATE_LIMIT_MAX_REQUESTS",
        str(DEFAULT_SCRAPE_RATE_LIMIT_MAX_REQUESTS),
        "/scrape limit",
    ),
    ("TRUST_FORWARDED_FOR", "false", "Set to true behind a reverse proxy"),
    ("MAX_DISCOVERED_PAGES", str(DEFAULT_MAX_DISCOVERED_PAGES), "Pages crawled besides the seed"),
    (
        "MAX_CONCURRENT_SCRAPES",
        str(DEFAULT_MAX_CONCURRENT_SCRAPES),
        "Browser sessions running at once",
    ),
    ("SEED_NAVIGATION_TIMEOUT_SECONDS", f"{SEED_NAVIGATION_TIMEOUT_SECONDS:g}", "Seed load timeout"),
    ("PAGE_NAVIGATION_TIMEOUT_SECONDS", f"{PAGE_NAVIGATION_TIMEOUT_SECONDS:g}", "Page load timeout"),
    (
        "CONTENT_SELECTOR_TIMEOUT_SECONDS",
        f"{CONTENT_SELECTOR_TIMEOUT_SECONDS:g}",
        "Wait for page content to appear",
    ),
    ("SETTLE_DELAY_SECONDS", f"{SETTLE_DELAY_SECONDS:g}", "Pause before reading a page"),
    ("PDF_RENDER_TIMEOUT_SECONDS", f"{PDF_RENDER_TIMEOUT_SECONDS:g}", "PDF load timeout"),
    ("BROWSER_HEADLESS", "true", "Run Chrome headless"),
    ("CHROME_VERSION_MAIN", "", "Pin chromedriver to a Chrome major version (e.g. 143)"),
]

# Secrets asked for interactively by setup-env
SECRET_VARIABLES = ("LOGFIRE_TOKEN", "SENTRY_DSN")


def render_env_template() -> str:
    """Commented .env file with every supported variable."""
    lines = ["# Web discovery service configuration", ""]
    for name, default, comment in ENV_TEMPLATE:
        lines.append(f"# {comment}")
        lines.append(f"{name}={default}" if default else f"# {name}=")
    return "\n".join(lines) + "\n"


@app.command("setup-env")
def setup_env(
    path: Path = typer.Option(Path(".env"), "--path", help="File to write"),
    force: bool = typer.Option(False, "--force", help="Overwrite without asking"),
    ask_secrets: bool = typer.Option(
        False, "--ask-secrets", help="Prompt for Logfire and Sentry credentials"
    ),
):
    """Write a commented .env template."""
    if path.exists() and not force:
        overwrite = questionary.confirm(
            f"{path} already exists. Overwrite it?", default=False
        ).ask()
        if not overwrite:
            typer.echo(f"Left {path} untouched.")
            raise typer.Exit(0)

    path.write_text(render_env_template(), encoding="utf-8")

    if ask_secrets:
        for name in SECRET_VARIABLES:
            value = questionary.password(f"{name} (leave empty to skip)").ask()
            if value:
                set_key(str(path), name, value, quote_mode="never")

    configured = {k: v for k, v in dotenv_values(path).items() if v}
    typer.echo(f"✓ Wrote {path} ({len(configured)} variables set)")


async def _scrape(url: str):
    pages = await SiteCrawler(launch_chrome).crawl(url)
    return build_scrape_result(pages)


@app.command()
def scrape(
    url: str = typer.Argument(..., help="Company website URL"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write JSON here"),
):
    """Crawl a website locally with headless Chrome and print the result."""
    validation = validate_target_url(url)
    if not validation.is_valid:
        typer.echo(f"✗ {validation.error_message}", err=True)
        raise typer.Exit(2)

    typer.echo(f"Scraping {validation.value}...", err=True)
    try:
        result = asyncio.run(_scrape(validation.value))
    except (SeedPageError, BrowserError) as e:
        typer.echo(f"✗ Error scraping website: {e}", err=True)
        raise typer.Exit(1)

    payload = result.model_dump_json(by_alias=True, indent=2)
    if output is not None:
        output.write_text(payload, encoding="utf-8")
        typer.echo(f"✓ Wrote {len(result.raw_pages)} pages to {output}", err=True)
    else:
        typer.echo(payload)


async def _probe(
    base_url: str, target: str, requests: int
) -> list[tuple[int, httpx.Response | None, str]]:
    async with httpx.AsyncClient(base_url=base_url, timeout=120.0) as client:

        async def one(index: int):
            try:
                response = await client.get("/scrape", params={"url": target})
            except httpx.HTTPError as e:
                return index, None, str(e)
            return index, response, ""

        return await asyncio.gather(*(one(i) for i in range(1, requests + 1)))


@app.command("probe-rate-limit")
def probe_rate_limit(
    base_url: str = typer.Option(
        f"http://localhost:{DEFAULT_PORT}", "--base-url", help="Running service"
    ),
    target: str = typer.Option("https://example.com", "--target", help="URL to scrape"),
    requests: int = typer.Option(15, "--requests", min=1, help="Concurrent requests"),
):
    """Fire concurrent /scrape requests and report how many were rate limited."""
    typer.echo(f"Sending {requests} concurrent requests to {base_url}/scrape")
    results = asyncio.run(_probe(base_url, target, requests))

    limited = 0
    for index, response, error in results:
        if response is None:
            typer.echo(f"#{index:>3}  error      {error}")
            continue
        remaining = response.headers.get("RateLimit-Remaining", "-")
        line = f"#{index:>3}  {response.status_code}  remaining={remaining}"
        if response.status_code == 429:
            limited += 1
            retry_after = response.json().get("retryAfter")
            line += f"  retryAfter={retry_after}s"
        typer.echo(line)

    typer.echo(f"\n{limited} of {requests} requests were rate limited")


if __name__ == "__main__":
    app()
