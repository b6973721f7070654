"""Ancestor-bounded markup context for prompting the script generator."""

from __future__ import annotations

import html
import re

from lxml import etree

from visualedit.dom.document import is_element, is_html, local_name, markup_of

ANCESTOR_LEVELS = 5

START_MARKER = "<!-- START el -->"
END_MARKER = "<!-- END el -->"

# Page chrome the context never climbs past
_STOP_TAGS = {"html", "body"}

_INDENT = "  "
_SVG_BODY_RE = re.compile(r"(<svg\b[^>]*>)(?:.*?)(</svg>)", re.DOTALL | re.IGNORECASE)


def opening_tag(node: etree._Element) -> str:
    """Render ``<tag attr="...">`` for a node, without children."""
    parts = [local_name(node)]
    for name, value in node.attrib.items():
        parts.append(f'{_attribute_label(name)}="{html.escape(value, quote=True)}"')
    return "<" + " ".join(parts) + ">"


def closing_tag(node: etree._Element) -> str:
    return f"</{local_name(node)}>"


def _attribute_label(name: str) -> str:
    # {http://www.w3.org/1999/xlink}href -> href is ambiguous; keep the xlink prefix
    if name.startswith("{"):
        namespace, local = name[1:].split("}", 1)
        if namespace.endswith("/xlink"):
            return f"xlink:{local}"
        return local
    return name


def strip_inline_svg(markup: str) -> str:
    """Collapse the body of every inline ``<svg>`` to ``...``; path data is noise in a prompt."""
    return _SVG_BODY_RE.sub(r"\1...\2", markup)


def node_markup(node: etree._Element, strip_svg: bool | None = None) -> str:
    """Serialized markup of a node, with inline SVG collapsed inside HTML documents."""
    if strip_svg is None:
        strip_svg = is_html(node)
    if not strip_svg:
        return markup_of(node)
    if local_name(node) == "svg":
        # The target itself is an icon: keep its own tag, drop the drawing
        return opening_tag(node) + "..." + closing_tag(node)
    return strip_inline_svg(markup_of(node))


def build_ancestor_context(
    node: etree._Element,
    levels: int = ANCESTOR_LEVELS,
    strip_svg: bool | None = None,
) -> str:
    """Render up to ``levels`` ancestor opening tags around the node's markup.

    The target sits between START/END markers so the generator can tell it
    apart from its surroundings; ancestors contribute only their opening and
    closing tags. Without ancestors (a detached node, or one directly under
    ``<body>``) the node's markup is returned as is.
    """
    ancestors: list[etree._Element] = []
    current = node.getparent()
    while current is not None and len(ancestors) < levels:
        if not is_element(current) or local_name(current).lower() in _STOP_TAGS:
            break
        ancestors.append(current)
        current = current.getparent()

    target = node_markup(node, strip_svg)
    if not ancestors:
        return target

    ancestors.reverse()
    lines: list[str] = []
    for depth, ancestor in enumerate(ancestors):
        lines.append(_INDENT * depth + opening_tag(ancestor))

    indent = _INDENT * len(ancestors)
    lines.append(indent + START_MARKER)
    lines.extend(indent + line for line in target.split("\n"))
    lines.append(indent + END_MARKER)

    for depth in range(len(ancestors) - 1, -1, -1):
        lines.append(_INDENT * depth + closing_tag(ancestors[depth]))

    return "\n".join(lines).strip()
