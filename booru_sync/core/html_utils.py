from __future__ import annotations

from html.parser import HTMLParser


class _MetaContentExtractor(HTMLParser):
    def __init__(self, name: str) -> None:
        super().__init__(convert_charrefs=True)
        self._name = name
        self.content: str | None = None

    def handle_starttag(self, tag: str, attrs):
        if tag != "meta" or self.content is not None:
            return
        values = dict(attrs)
        if values.get("name") == self._name:
            self.content = values.get("content") or None


def extract_meta_content(html: str, name: str) -> str | None:
    """Return the ``content`` of the first ``<meta name=...>`` tag, if any."""
    parser = _MetaContentExtractor(name)
    parser.feed(html)
    parser.close()
    return parser.content
