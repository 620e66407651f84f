"""payhook CLI - Command line interface."""

from __future__ import annotations

import logging
import os
import sys
import time
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.table import Table

console = Console()

PROVIDER_CHOICES = ["stripe", "paypal", "square"]


def _configure_logging(log_level: str) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
    )


@click.group()
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True),
    help="Path to YAML or TOML config file",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="warning",
    help="Log level (default: warning)",
)
@click.pass_context
def main(ctx: click.Context, config_file: str | None, log_level: str):
    """payhook - verify and dispatch payment provider webhooks.

    Examples:

        payhook sign event.json --secret whsec_test

        payhook verify event.json --secret whsec_test --header "t=... v1=..."

        payhook classify payment_intent.succeeded

        payhook config show

    Use 'payhook COMMAND --help' for more info on specific commands.
    """
    _configure_logging(log_level)

    if config_file:
        from payhook.core.config import clear_config, config_file_to_env
        try:
            file_env = config_file_to_env(config_file)
        except (OSError, ValueError) as e:
            console.print(f"[red]Failed to load config: {e}[/red]")
            sys.exit(1)
        for key, value in file_env.items():
            os.environ.setdefault(key, value)
        clear_config()
        console.print(f"Loaded config from {config_file}", style="dim", highlight=False)

    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file


def _resolve_secret(secret: str | None) -> str:
    if secret:
        return secret
    from payhook.core.config import get_config

    configured = get_config().stripe.signing_secret
    if not configured:
        console.print(
            "[red]No signing secret.[/red] Pass --secret or set PAYHOOK_STRIPE_SIGNING_SECRET"
        )
        sys.exit(1)
    return configured


@main.command()
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--secret", "-s", help="Signing secret (default: PAYHOOK_STRIPE_SIGNING_SECRET)")
@click.option("--timestamp", "-t", type=int, help="Unix timestamp to sign (default: now)")
def sign(payload_file: str, secret: str | None, timestamp: int | None):
    """Print a signature header for PAYLOAD_FILE.

    Useful for replaying captured payloads against a local endpoint.
    """
    from payhook.webhooks.signature import generate_signature_header

    payload = Path(payload_file).read_bytes()
    header = generate_signature_header(_resolve_secret(secret), payload, timestamp)
    click.echo(header)


@main.command()
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--secret", "-s", help="Signing secret (default: PAYHOOK_STRIPE_SIGNING_SECRET)")
@click.option("--header", "-H", "header_value", required=True, help="Signature header value")
@click.option(
    "--tolerance",
    type=int,
    default=None,
    help="Freshness tolerance in seconds (default: from config, 300)",
)
@click.option("--now", type=float, default=None, help="Current unix time (default: wall clock)")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def verify(
    payload_file: str,
    secret: str | None,
    header_value: str,
    tolerance: int | None,
    now: float | None,
    json_output: bool,
):
    """Verify PAYLOAD_FILE against a signature header.

    Exits with status 1 and the error code when verification fails.
    """
    from payhook.core.config import get_config
    from payhook.webhooks.errors import WebhookError
    from payhook.webhooks.providers import StripeWebhookProvider

    if tolerance is None:
        tolerance = get_config().stripe.tolerance_seconds

    provider = StripeWebhookProvider(
        secret=_resolve_secret(secret),
        tolerance_seconds=tolerance,
        clock=(lambda: now) if now is not None else time.time,
    )
    payload = Path(payload_file).read_bytes()

    try:
        event = provider.construct_event(payload, header_value)
    except WebhookError as e:
        console.print(f"[red]Verification failed ({e.code}):[/red] {e}", highlight=False)
        sys.exit(1)

    envelope = event.envelope
    if json_output:
        import json

        data = envelope.to_dict()
        data["classification"] = str(getattr(event.event_type, "name", "OTHER"))
        click.echo(json.dumps(data, indent=2, default=str))
        return

    table = Table(title="Verified Event")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("ID", envelope.id)
    table.add_row("Type", envelope.event_type)
    table.add_row("Classification", getattr(event.event_type, "name", "OTHER"))
    table.add_row("Created", str(envelope.created_at))
    table.add_row("Live Mode", "yes" if envelope.live_mode else "no")
    table.add_row("Pending Webhooks", str(envelope.pending_count))
    table.add_row("API Version", envelope.api_version or "[dim]None[/dim]")
    table.add_row("Object ID", event.object_id or "[dim]None[/dim]")
    if envelope.request_metadata:
        table.add_row("Request ID", envelope.request_metadata.request_id)

    console.print(table)


@main.command()
@click.argument("event_type")
@click.option(
    "--provider",
    "-p",
    type=click.Choice(PROVIDER_CHOICES, case_sensitive=False),
    default="stripe",
    help="Event taxonomy to classify against (default: stripe)",
)
def classify(event_type: str, provider: str):
    """Show how EVENT_TYPE is classified."""
    from payhook.webhooks.events import OtherEventType, classify as classify_event
    from payhook.webhooks.providers import PROVIDER_TAXONOMIES

    result = classify_event(event_type, PROVIDER_TAXONOMIES[provider.lower()])
    if isinstance(result, OtherEventType):
        console.print(f"[yellow]OTHER[/yellow] ({result.value})", highlight=False)
    else:
        console.print(f"[green]{result.name}[/green]", highlight=False)


@main.command()
def version():
    """Show version information."""
    from payhook import __version__

    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


@main.group()
def config():
    """View and export configuration settings.

    All settings can be configured via environment variables with the
    PAYHOOK_<PROVIDER>_ prefix. Use these commands to see current values.

    Examples:

        payhook config show            # Show all config settings

        payhook config export          # Export as env vars

        payhook config validate        # Validate current config
    """
    pass


@config.command("show")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option("--section", "-s", help="Show only specific section (stripe, paypal, square)")
def config_show(json_output: bool, section: str | None):
    """Show current configuration settings.

    Displays all configurable settings with their current values.
    Secrets are masked.
    """
    from payhook.core.config import get_config

    cfg = get_config()
    display = cfg.to_display_dict()

    if section:
        section = section.lower()
        if section not in display:
            console.print(f"[red]Unknown section:[/red] {section}")
            console.print(f"[dim]Available: {', '.join(display.keys())}[/dim]")
            sys.exit(1)
        display = {section: display[section]}

    if json_output:
        import json
        click.echo(json.dumps(display, indent=2))
        return

    console.print("[bold]Current Configuration[/bold]\n")

    for section_name, settings in display.items():
        table = Table(title=section_name.title())
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        table.add_column("Env Variable", style="dim")

        for key, value in settings.items():
            env_var = f"PAYHOOK_{section_name.upper()}_{key.upper()}"
            value_str = str(value) if value is not None else "[dim]None[/dim]"
            table.add_row(key, value_str, env_var)

        console.print(table)
        console.print()


@config.command("export")
@click.option("--shell", type=click.Choice(["bash", "powershell", "cmd"]), default="bash", help="Shell format")
def config_export(shell: str):
    """Export current configuration as environment variables.

    Outputs commands to set all config values as env vars. Secrets are
    included, so treat the output accordingly.
    """
    from payhook.core.config import get_config

    cfg = get_config()
    env_dict = cfg.to_env_dict()

    click.echo(f"# payhook Configuration Export ({shell})")

    for key, value_str in env_dict.items():
        if not value_str:
            continue
        if shell == "bash":
            click.echo(f'export {key}="{value_str}"')
        elif shell == "powershell":
            click.echo(f'$env:{key}="{value_str}"')
        elif shell == "cmd":
            click.echo(f"set {key}={value_str}")


@config.command("validate")
def config_validate():
    """Validate current configuration.

    Checks each provider for missing or inconsistent settings.
    """
    from pydantic import ValidationError

    from payhook.core.config import clear_config, get_config

    clear_config()

    try:
        cfg = get_config()
        stripe, paypal, square = cfg.stripe, cfg.paypal, cfg.square
    except ValidationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)

    errors = []
    warnings = []

    if not stripe.signing_secret:
        warnings.append("stripe: signing_secret is not set, Stripe provider disabled")
    elif not stripe.signing_secret.startswith("whsec_"):
        warnings.append("stripe: signing_secret does not look like an endpoint secret (whsec_...)")
    if stripe.tolerance_seconds == 0:
        warnings.append("stripe: tolerance_seconds is 0, only same-second deliveries will pass")

    paypal_fields = [paypal.webhook_id, paypal.client_id, paypal.client_secret]
    if any(paypal_fields) and not all(paypal_fields):
        errors.append("paypal: webhook_id, client_id and client_secret must be set together")
    elif not any(paypal_fields):
        warnings.append("paypal: not configured, PayPal provider disabled")

    if bool(square.signature_key) != bool(square.notification_url):
        errors.append("square: signature_key and notification_url must be set together")
    elif not square.signature_key:
        warnings.append("square: not configured, Square provider disabled")
    elif not square.notification_url.startswith("https://"):
        warnings.append("square: notification_url is not https")

    if errors:
        console.print("[red bold]Configuration Errors:[/red bold]")
        for error in errors:
            console.print(f"  [red]x[/red] {error}")
        console.print()

    if warnings:
        console.print("[yellow bold]Configuration Warnings:[/yellow bold]")
        for warning in warnings:
            console.print(f"  [yellow]![/yellow] {warning}")
        console.print()

    if not errors and not warnings:
        console.print("[green]OK - Configuration is valid[/green]")
    elif not errors:
        console.print("[green]OK - Configuration is valid (with warnings)[/green]")
    else:
        console.print("[red]ERROR - Configuration has errors[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
