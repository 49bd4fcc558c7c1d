"""Allow ``python -m crisscross_guest``."""

from crisscross_guest.cli import main

main()
