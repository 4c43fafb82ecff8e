"""Allow ``python -m deployerra``."""

from deployerra.main import cli

cli()
