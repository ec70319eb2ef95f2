"""Markdown to standalone HTML rendition of a patched document."""

from __future__ import annotations

import html
from pathlib import PurePosixPath

import mistune

from docpatch.core.config import DEFAULT_STYLESHEET
from docpatch.core.errors import RenderError

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{title}</title>
<link rel="stylesheet" href="{stylesheet}">
<style>
    body {{
        box-sizing: border-box;
        min-width: 200px;
        max-width: 980px;
        margin: 0 auto;
        padding: 45px;
        background-color: #0d1117;
        color: #c9d1d9;
    }}
    @media (max-width: 767px) {{ body {{ padding: 15px; }} }}
</style>
</head>
<body class="markdown-body">
{body}
</body>
</html>"""

_markdown = mistune.create_markdown(
    escape=False,
    plugins=["strikethrough", "table", "url"],
)


def html_filename(filename: str) -> str:
    """``guide.md`` -> ``guide.html``; a name without extension gains one."""
    return str(PurePosixPath(filename).with_suffix(".html"))


def render_html(content: str, title: str, stylesheet: str = DEFAULT_STYLESHEET) -> str:
    """Render markdown ``content`` into a complete GitHub-styled page."""
    try:
        body = _markdown(content)
    except Exception as e:
        raise RenderError(f"Could not render markdown for {title}: {e}") from e
    return _PAGE_TEMPLATE.format(
        title=html.escape(title),
        stylesheet=html.escape(stylesheet, quote=True),
        body=body,
    )
