"""Turn stored post bodies into plain text and HTML for mail."""

from __future__ import annotations

from dataclasses import dataclass

from markupsafe import Markup, escape

from forum_notify.models.forum import FORMAT_HTML, FORMAT_PLAIN


@dataclass(frozen=True)
class RenderedContent:
    text: str
    html: Markup


class ContentRenderer:
    """Pure ``render(body, format)`` function object.

    HTML bodies are assumed to be sanitized by the host when they were stored.
    """

    def render(self, body: str, body_format: int) -> RenderedContent:
        if body_format == FORMAT_HTML:
            html = Markup(body)
            return RenderedContent(text=html.striptags(), html=html)
        if body_format == FORMAT_PLAIN:
            html = Markup("<br />\n").join(escape(line) for line in body.splitlines())
            return RenderedContent(text=body, html=html)
        raise ValueError(f"Unsupported body format {body_format!r}")
