"""
ProxyFetch CLI
==============
Command-line interface: fetch a URL through an authenticated forward proxy,
inspect the effective configuration, or persist proxy settings.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from proxyfetch import __version__
from proxyfetch.config import CONFIG_FILE, ProxyFetchConfig, load_config, save_config
from proxyfetch.core.client import ProxyClient
from proxyfetch.core.errors import ConfigError, ProxyFetchError
from proxyfetch.core.target import parse_proxy, resolve
from proxyfetch.core.transport import TunnelingTransport
from proxyfetch.ui import (
    console,
    print_error,
    print_info,
    print_success,
    print_warning,
    show_config_status,
    show_fetch_error,
    show_response_summary,
)

load_dotenv()

EXIT_FETCH_ERROR = 1
EXIT_CONFIG_ERROR = 2


def setup_logging(verbose: bool) -> None:
    """Route library logging through rich, DEBUG when verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(ctx: click.Context) -> ProxyFetchConfig:
    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        print_error(str(e))
        ctx.exit(EXIT_CONFIG_ERROR)


@click.group()
@click.option(
    "--config", "config_path", type=click.Path(dir_okay=False, path_type=Path),
    default=None, help=f"Config file (default: {CONFIG_FILE})",
)
@click.version_option(__version__, prog_name="proxyfetch")
@click.pass_context
def main(ctx, config_path):
    """ProxyFetch: fetch URLs through an authenticated forward proxy"""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command()
@click.argument("url", required=False)
@click.option("--proxy", "-x", default=None, help="Proxy URL: scheme://host:port")
@click.option("--user", "-u", default=None, help="Proxy username")
@click.option("--password", "-p", default=None, help="Proxy password")
@click.option("--dest", "-d", default=None, help="URL to fetch (alternative to URL argument)")
@click.option("--insecure/--secure", "-k", default=None, help="Skip TLS certificate verification")
@click.option("--timeout", "-t", type=float, default=None, help="Total time budget in seconds (0 = none)")
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), default=None,
              help="Write body to a file instead of stdout")
@click.option("--include", "-i", is_flag=True, help="Show response headers")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def fetch(ctx, url, proxy, user, password, dest, insecure, timeout, output, include, verbose):
    """Fetch URL through the proxy and write the body to stdout."""
    cfg = _load(ctx)

    # Apply CLI overrides
    if proxy:
        cfg.proxy.url = proxy
    if user is not None:
        cfg.proxy.username = user
    if password is not None:
        cfg.proxy.password = password
    if insecure is not None:
        cfg.transport.insecure = insecure
    if timeout is not None:
        cfg.transport.timeout = timeout or None
    if include:
        cfg.ui.include_headers = True
    if verbose:
        cfg.ui.verbose = True

    setup_logging(cfg.ui.verbose)

    if url and dest and url != dest:
        print_error("Give the destination either as URL or --dest, not both")
        ctx.exit(EXIT_CONFIG_ERROR)

    try:
        target = resolve(cfg.proxy.url, url or dest or "", cfg.proxy.username, cfg.proxy.password)
    except ConfigError as e:
        print_error(str(e))
        ctx.exit(EXIT_CONFIG_ERROR)

    if cfg.ui.verbose:
        print_info(f"scheme: {target.proxy.scheme}")
        print_info(f"host: {target.proxy.host}:{target.proxy.port}")
        if target.credentials:
            print_info("Setting basic auth")

    transport = TunnelingTransport(
        insecure=cfg.transport.insecure,
        timeout=cfg.transport.timeout,
    )
    client = ProxyClient(transport, user_agent=cfg.transport.user_agent)

    try:
        response = client.fetch(target)
    except ProxyFetchError as e:
        show_fetch_error(e)
        ctx.exit(EXIT_FETCH_ERROR)

    show_response_summary(
        response.status_code,
        response.reason,
        len(response.body),
        response.headers,
        include_headers=cfg.ui.include_headers,
    )

    if output:
        Path(output).write_bytes(response.body)
        print_success(f"Saved {len(response.body)} bytes to {output}")
    else:
        out = click.get_binary_stream("stdout")
        out.write(response.body)
        out.flush()


@main.command()
@click.pass_context
def config(ctx):
    """Show current configuration."""
    cfg = _load(ctx)
    show_config_status({
        "proxy": cfg.proxy.url,
        "username": cfg.proxy.username,
        "password": cfg.proxy.password,
        "insecure": cfg.transport.insecure,
        "timeout": cfg.transport.timeout,
        "user_agent": cfg.transport.user_agent,
    })
    print_info(f"Config file: {ctx.obj.get('config_path') or CONFIG_FILE}")


@main.command()
@click.option("--proxy", "-x", required=True, help="Proxy URL: scheme://host:port")
@click.option("--user", "-u", default=None, help="Proxy username")
@click.option("--password", "-p", default=None, help="Proxy password")
@click.option("--insecure/--secure", "-k", default=None, help="Skip TLS certificate verification")
@click.option("--timeout", "-t", type=float, default=None, help="Total time budget in seconds (0 = none)")
@click.pass_context
def setup(ctx, proxy, user, password, insecure, timeout):
    """Validate and save proxy settings to the config file."""
    cfg = _load(ctx)
    try:
        parse_proxy(proxy)
    except ConfigError as e:
        print_error(str(e))
        ctx.exit(EXIT_CONFIG_ERROR)

    cfg.proxy.url = proxy
    if user is not None:
        cfg.proxy.username = user
    if password is not None:
        cfg.proxy.password = password
    if insecure is not None:
        cfg.transport.insecure = insecure
    if timeout is not None:
        cfg.transport.timeout = timeout or None

    path = save_config(cfg, ctx.obj.get("config_path"))
    print_success(f"Saved proxy settings to {path}")
    if cfg.transport.insecure:
        print_warning("Saved settings disable TLS certificate verification")


if __name__ == "__main__":
    main()
