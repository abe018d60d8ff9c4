"""Allow ``python -m ecochange``."""

from .cli import main

main()
