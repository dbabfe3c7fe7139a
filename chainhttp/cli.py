"""Command line front end for the request chain."""

import logging
import sys
import uuid

import click
import structlog

from chainhttp.client import Client
from chainhttp.config import ClientConfig
from chainhttp.errors import ChainError
from chainhttp.observability.logging import (
    bind_request_context,
    configure_logging,
    parse_level,
)
from chainhttp.settings import get_settings
from chainhttp.validator import validate_url


logger = structlog.get_logger()


def _parse_header(raw: str) -> tuple[str, str]:
    """Split ``Name: value`` into its parts.

    Raises:
        click.BadParameter: If the header has no colon or an empty name.
    """
    name, sep, value = raw.partition(":")
    if not sep or not name.strip():
        msg = f"Header must look like 'Name: value', got {raw!r}"
        raise click.BadParameter(msg)
    return name.strip(), value.strip()


def _report_errors(errors: list[ChainError]) -> None:
    for error in errors:
        click.echo(f"  - [{error.error_class.value}] {error}", err=True)


@click.group()
@click.version_option(version="1.0.0")
def cli() -> None:
    """Fluent HTTP request chain CLI."""


@cli.command()
@click.argument("method")
@click.argument("url")
@click.option("--header", "-H", "headers", multiple=True, help="Header 'Name: value'.")
@click.option("--data", "-d", "data", default=None, help="Request body.")
@click.option("--user", "-u", "user", default=None, help="Basic auth 'user:password'.")
@click.option("--token", default=None, help="Authorization header value.")
@click.option(
    "--redirects",
    type=click.IntRange(min=0),
    default=None,
    help="Follow up to N redirects.",
)
@click.option("--timeout", type=click.FloatRange(min=0.0, min_open=True), default=None)
@click.option("--proxy", default=None, help="Proxy URL.")
@click.option("--insecure", is_flag=True, help="Skip TLS certificate verification.")
@click.option(
    "--json-logs/--console-logs",
    default=None,
    help="Log format (default from CHAINHTTP_JSON_LOGS).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
def request(  # noqa: PLR0913
    method: str,
    url: str,
    headers: tuple[str, ...],
    data: str | None,
    user: str | None,
    token: str | None,
    redirects: int | None,
    timeout: float | None,
    proxy: str | None,
    insecure: bool,
    json_logs: bool | None,
    verbose: bool,
) -> None:
    """Send METHOD to URL and print the response body.

    Accumulated errors are printed to stderr and make the command exit 1.
    """
    settings = get_settings()
    configure_logging(
        level=logging.DEBUG if verbose else parse_level(settings.log_level),
        json_format=settings.json_logs if json_logs is None else json_logs,
    )
    bind_request_context(uuid.uuid4().hex[:12])

    client = Client(ClientConfig.from_settings(settings))
    client.set_method(method).set_url(url)
    for raw in headers:
        name, value = _parse_header(raw)
        client.add_header(name, value)
    if data is not None:
        client.set_body_string(data)
    if user is not None:
        name, _, password = user.partition(":")
        client.set_basic_auth(name, password)
    if token is not None:
        client.set_auth_token(token)
    if redirects is not None:
        client.set_redirect_count(redirects)
    if timeout is not None:
        client.set_timeout(timeout)
    if proxy is not None:
        client.set_proxy(proxy)
    if insecure:
        client.set_tls_config(False)

    with client:
        body, errors = client.do().get_byte_body()
        response, _ = client.get_response()

    if response is not None:
        logger.info(
            "cli_response",
            component="cli",
            status_code=response.status_code,
            bytes=len(body),
        )
        click.echo(body.decode("utf-8", errors="replace"), nl=False)

    if errors:
        click.echo("Request failed:", err=True)
        _report_errors(errors)
        sys.exit(1)


@cli.command("check-url")
@click.argument("url")
def check_url(url: str) -> None:
    """Validate URL and print its normalized form."""
    try:
        normalized = validate_url(url)
    except ChainError as e:
        click.echo(f"[{e.error_class.value}] {e}", err=True)
        sys.exit(1)
    click.echo(str(normalized))


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
