"""
Note materialization for synced emails.
"""

from .creator import NoteCreator, html_to_markdown, note_basename, sanitize_filename

__all__ = [
    "NoteCreator",
    "html_to_markdown",
    "note_basename",
    "sanitize_filename",
]
