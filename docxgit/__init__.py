"""docxgit: track ZIP-based office documents in git as content-addressed trees.

The clean filter decomposes a document into its parts and stores them as a
git tree, emitting a small pointer record in place of the binary. The smudge
filter rebuilds a byte-identical archive from that tree. A post-commit hook
anchors each stored tree behind a ``refs/docx/*`` reference so it survives
garbage collection.
"""

__version__ = "0.2.0"
__description__ = "Diffable, content-addressed storage of office documents in git"

from docxgit.core.pipeline import decompose, recompose
from docxgit.core.anchor import AnchorRefManager
from docxgit.cli.app import app as cli

__all__ = ["decompose", "recompose", "AnchorRefManager", "cli", "__version__"]
