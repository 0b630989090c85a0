"""Allow ``python -m docxgit``."""

from docxgit.cli.app import main

main()
