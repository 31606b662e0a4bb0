import re

import bleach
from markupsafe import escape

ALLOWED_RICH_TEXT_TAGS = [
    'p', 'br', 'strong', 'em', 'ul', 'li', 'h1', 'h2', 'h3', 'a',
]
ALLOWED_RICH_TEXT_ATTRIBUTES = {
    'a': ['href', 'title', 'rel'],
}
ALLOWED_RICH_TEXT_PROTOCOLS = ['http', 'https', 'mailto']

_HEADING_RE = re.compile(r'^(#{1,3}) (.+)$')
_LIST_ITEM_RE = re.compile(r'^- (.+)$')
_BOLD_RE = re.compile(r'\*\*(.+?)\*\*')
_ITALIC_RE = re.compile(r'\*(.+?)\*')
_LINK_RE = re.compile(r'\[([^\]]+)\]\(([^)\s]+)\)')


def _inline(text):
    html = str(escape(text))
    html = _LINK_RE.sub(r'<a href="\2">\1</a>', html)
    html = _BOLD_RE.sub(r'<strong>\1</strong>', html)
    return _ITALIC_RE.sub(r'<em>\1</em>', html)


def render_markdown(source):
    """Render the small markdown subset used by blog posts to safe HTML.

    Supports ``#``-``###`` headings, ``- `` bullet lists, ``**bold**``,
    ``*italic*`` and ``[text](url)`` links; blank lines split paragraphs.
    """
    blocks = []
    paragraph = []
    list_items = []

    def flush_paragraph():
        if paragraph:
            blocks.append('<p>' + '<br>'.join(_inline(line) for line in paragraph) + '</p>')
            paragraph.clear()

    def flush_list():
        if list_items:
            blocks.append('<ul>' + ''.join(f'<li>{_inline(item)}</li>' for item in list_items) + '</ul>')
            list_items.clear()

    for raw_line in (source or '').replace('\r\n', '\n').split('\n'):
        line = raw_line.rstrip()
        if not line.strip():
            flush_paragraph()
            flush_list()
            continue
        heading = _HEADING_RE.match(line)
        if heading:
            flush_paragraph()
            flush_list()
            level = len(heading.group(1))
            blocks.append(f'<h{level}>{_inline(heading.group(2))}</h{level}>')
            continue
        item = _LIST_ITEM_RE.match(line)
        if item:
            flush_paragraph()
            list_items.append(item.group(1))
            continue
        flush_list()
        paragraph.append(line.strip())
    flush_paragraph()
    flush_list()
    return sanitize_html('\n'.join(blocks))


def sanitize_html(value, max_length=200000):
    html = (value or '').strip()
    cleaned = bleach.clean(
        html,
        tags=ALLOWED_RICH_TEXT_TAGS,
        attributes=ALLOWED_RICH_TEXT_ATTRIBUTES,
        protocols=ALLOWED_RICH_TEXT_PROTOCOLS,
        strip=True,
    )
    return cleaned[:max_length]
