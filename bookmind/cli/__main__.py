"""Allow ``python -m bookmind.cli`` execution."""

from bookmind.cli.commands import main

main()
