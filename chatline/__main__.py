"""Allow ``python -m chatline``."""

from chatline.main import cli

cli()
