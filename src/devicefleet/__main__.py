"""Allow ``python -m devicefleet``."""

from .cli import app

app(prog_name="devicefleet")
