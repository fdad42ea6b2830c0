"""Allow ``python -m manualboot``."""

from .main import main

main()
