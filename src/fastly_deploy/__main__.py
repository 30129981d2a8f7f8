"""Allow ``python -m fastly_deploy``."""

from fastly_deploy.cli.main import cli

cli()
