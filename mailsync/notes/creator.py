"""
Note Creator - writes one Markdown note per synced email.

File names follow ``YYYY-MM-DD - Subject.md``; a numeric suffix is added on
collision and files are opened in exclusive-create mode, so an existing note
is never overwritten.
"""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from bs4 import BeautifulSoup
from markdownify import markdownify

if TYPE_CHECKING:
    from ..providers import NormalizedMessage


logger = logging.getLogger(__name__)

MAX_SUBJECT_LENGTH = 100
_ILLEGAL_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')


def sanitize_filename(name: str) -> str:
    """Replace characters that are illegal in Windows/Unix file names."""
    name = " ".join(name.split())
    return _ILLEGAL_FILENAME_CHARS.sub("-", name).strip()


def note_basename(message: "NormalizedMessage") -> str:
    date_str = message.received_at.date().isoformat()
    subject = sanitize_filename(message.subject)[:MAX_SUBJECT_LENGTH].strip()
    return f"{date_str} - {subject or 'Untitled'}"


def html_to_markdown(html: str) -> str:
    """Convert an email HTML body to Markdown."""
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(["script", "style", "head", "title"]):
        tag.decompose()

    text = markdownify(str(soup), heading_style="ATX", bullets="-")
    lines = [line.rstrip() for line in text.splitlines()]

    # Collapse runs of blank lines
    result = []
    for line in lines:
        if not line and result and not result[-1]:
            continue
        result.append(line)
    return "\n".join(result).strip()


def _yaml_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class NoteCreator:
    """Materializes normalized messages as Markdown notes in the inbox folder."""

    def __init__(self, inbox_dir: Path):
        self.inbox_dir = Path(inbox_dir)

    async def create_note(self, message: "NormalizedMessage") -> Path | None:
        """
        Create a new note for an email.

        Returns:
            Path of the created note, or None on failure
        """
        try:
            self.inbox_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create inbox folder {self.inbox_dir}: {e}")
            return None

        content = self.render(message)

        try:
            path = self._write_unique(note_basename(message), content)
        except OSError as e:
            logger.error(f"Failed to create note for email {message.id}: {e}")
            return None

        logger.info(f"Created note {path.name}")
        return path

    def _write_unique(self, basename: str, content: str) -> Path:
        counter = 0
        while True:
            suffix = f" ({counter})" if counter else ""
            path = self.inbox_dir / f"{basename}{suffix}.md"
            try:
                with path.open("x", encoding="utf-8") as f:
                    f.write(content)
                return path
            except FileExistsError:
                counter += 1

    def render(self, message: "NormalizedMessage") -> str:
        """Render front matter and body for a message."""
        received = message.received_at
        body = html_to_markdown(message.body_html) if message.body_html else (
            message.body_text or message.snippet
        )
        source_label = "Gmail" if message.source.value == "gmail" else "Outlook"

        frontmatter = "\n".join([
            "---",
            "tags: [all, para/inbox, email-task]",
            f"created: {received.date().isoformat()}",
            f"email-source: {message.source.value}",
            f"email-id: {_yaml_quote(message.id)}",
            f"email-from: {_yaml_quote(message.sender.email)}",
            f"email-subject: {_yaml_quote(message.subject)}",
            f"email-date: {received.isoformat()}",
            f"email-link: {_yaml_quote(message.web_link)}",
            f"synced: {datetime.now(timezone.utc).isoformat()}",
            "---",
        ])

        return "\n".join([
            frontmatter,
            "",
            f"# Subject: {message.subject}",
            "",
            f"**From:** {message.sender.name} <{message.sender.email}>",
            f"**Date:** {received.strftime('%Y-%m-%d %H:%M')}",
            f"**Source:** [View in {source_label}]({message.web_link})",
            "",
            "---",
            "",
            "## Email Content",
            "",
            body,
            "",
            "---",
            "",
            "## Tasks",
            "",
            "- [ ] ",
            "",
            "## Notes",
            "",
            "",
        ])
