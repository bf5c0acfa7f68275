"""Page shell for rendered Markdown.

The shell is fixed so that the same fragment and stylesheet list always
produce the same bytes.
"""

PAGE_HEAD = b'<html><head><meta charset="utf-8">'
PAGE_BODY = (
    b'</head><body><article class="markdown-body entry-content" '
    b'style="padding: 30px;">'
)
PAGE_TAIL = b"</article></body></html>"

STYLE_LINK_TEMPLATE = (
    '<link href="{}" media="all" rel="stylesheet" type="text/css" />'
)


def style_link(url: str) -> bytes:
    """Return the <link> element for one stylesheet URL."""
    return STYLE_LINK_TEMPLATE.format(url).encode("utf-8")


def page_prefix(stylesheets: list[str]) -> bytes:
    """Return everything that precedes the fragment."""
    parts = [PAGE_HEAD]
    parts.extend(style_link(url) for url in stylesheets)
    parts.append(PAGE_BODY)
    return b"".join(parts)


def assemble(fragment: bytes, stylesheets: list[str]) -> bytes:
    """Wrap an HTML fragment in a standalone page.

    Stylesheets are linked in the given order, duplicates included. The
    fragment is inserted verbatim: it is the output of a Markdown renderer
    and is not escaped.

    Args:
        fragment: Rendered HTML fragment.
        stylesheets: Stylesheet URLs to link from the page head.

    Returns:
        Complete HTML page.
    """
    return page_prefix(stylesheets) + fragment + PAGE_TAIL
