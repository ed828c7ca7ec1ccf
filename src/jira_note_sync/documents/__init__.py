"""Note storage: frontmatter handling and the document host contract."""

from .frontmatter import render_document, split_frontmatter
from .host import DocumentHost, FileDocumentHost

__all__ = [
    "DocumentHost",
    "FileDocumentHost",
    "render_document",
    "split_frontmatter",
]
