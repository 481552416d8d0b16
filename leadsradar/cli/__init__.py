"""LeadsRadar CLI — operator access to API keys and rate limits.

Entry point registered in pyproject.toml:
    leadsradar = "leadsradar.cli:app"

Commands:
    leadsradar keys issue|revoke|verify — manage API keys
    leadsradar limits                   — show remaining rate-limit slots

Usage:
    leadsradar --help
    leadsradar keys issue --user-id <uuid> --name "Zapier"
"""

import typer

from leadsradar.cli.keys import keys_app, limits

app = typer.Typer(
    name="leadsradar",
    help="LeadsRadar CLI — manage API keys and rate limits",
    no_args_is_help=True,
)

app.add_typer(keys_app, name="keys")
app.command()(limits)
