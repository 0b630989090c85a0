"""docxgit CLI: Typer-based git filter and hook entry points.

Provides the ``docxgit`` command with the ``clean`` and ``smudge`` filters,
the ``post-commit`` hook, and ``install`` to wire them into a repository.

Filters write only document or pointer bytes to stdout; diagnostics go to
stderr or the configured log file.
"""
