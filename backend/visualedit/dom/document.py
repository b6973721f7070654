"""Live document tree — facade over lxml for HTML and SVG markup.

A Document owns the root of a parsed tree. Nodes are plain lxml elements; lxml
hands back the same proxy object for a node while any Python reference to it is
alive, so identity comparisons (``is``) are safe as long as the Document holds
its root.
"""

from __future__ import annotations

import copy
import logging
from typing import Literal

import lxml.html
from lxml import etree

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"

# Prefixes available to XPath selectors and edit scripts
NAMESPACES = {"svg": SVG_NS, "xlink": XLINK_NS}

DocumentKind = Literal["html", "svg"]

# No entity expansion, no network fetches: markup comes from untrusted pages
_XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=False)


def is_element(node: object) -> bool:
    """True for element nodes (comments and processing instructions have callable tags)."""
    return isinstance(node, etree._Element) and isinstance(node.tag, str)


def is_html(node: etree._Element) -> bool:
    return isinstance(node, lxml.html.HtmlMixin)


def local_name(node: etree._Element) -> str:
    if not is_element(node):
        return ""
    return etree.QName(node).localname


def namespace_of(node: etree._Element) -> str | None:
    if not is_element(node):
        return None
    return etree.QName(node).namespace


def markup_of(node: etree._Element) -> str:
    """Serialize a node's subtree (without its tail text)."""
    method = "html" if is_html(node) else "xml"
    return etree.tostring(node, encoding="unicode", method=method, with_tail=False)


def describe(node: etree._Element) -> str:
    """Short human-readable label, e.g. ``button#save.primary``."""
    label = local_name(node) or "node"
    node_id = node.get("id")
    if node_id:
        label += f"#{node_id}"
    classes = (node.get("class") or "").split()
    if classes:
        label += "." + ".".join(classes[:3])
    return label


def make_element(like: etree._Element, tag: str, attrib: dict[str, str] | None = None) -> etree._Element:
    """Create a detached element of the same flavour (HTML/XML, namespace) as ``like``."""
    if "{" not in tag:
        namespace = namespace_of(like)
        if namespace:
            tag = f"{{{namespace}}}{tag}"
    element = like.makeelement(tag, {})
    for key, value in (attrib or {}).items():
        element.set(key, str(value))
    return element


def parse_fragment(markup: str, like: etree._Element) -> list[etree._Element]:
    """Parse a markup fragment into detached elements matching ``like``'s flavour.

    Bare text outside elements is rejected — text belongs on ``.text``/``.tail``.
    """
    if not markup or not markup.strip():
        raise ValueError("Empty markup fragment")

    if is_html(like):
        try:
            parts = lxml.html.fragments_fromstring(markup)
        except (etree.ParserError, etree.XMLSyntaxError) as e:
            raise ValueError(f"Could not parse markup fragment: {e}") from e
    else:
        namespace = namespace_of(like)
        xmlns = f' xmlns="{namespace}"' if namespace else ""
        wrapped = f'<fragment{xmlns} xmlns:xlink="{XLINK_NS}">{markup}</fragment>'
        try:
            holder = etree.fromstring(wrapped.encode("utf-8"), parser=_XML_PARSER)
        except etree.XMLSyntaxError as e:
            raise ValueError(f"Could not parse markup fragment: {e}") from e
        if holder.text and holder.text.strip():
            raise ValueError("Markup fragment starts with bare text")
        parts = list(holder)

    elements: list[etree._Element] = []
    for part in parts:
        if isinstance(part, str):
            if part.strip():
                raise ValueError("Markup fragment starts with bare text")
            continue
        if not is_element(part):
            continue
        _detach_from_parser_wrapper(part)
        elements.append(part)
    if not elements:
        raise ValueError("Markup fragment contains no elements")
    return elements


def _detach_from_parser_wrapper(node: etree._Element) -> None:
    # lxml.html leaves fragments inside a synthetic <html><body>
    parent = node.getparent()
    if parent is not None:
        parent.remove(node)
    node.tail = None


class Document:
    """A parsed, mutable markup tree that edit requests operate on."""

    def __init__(self, root: etree._Element, kind: DocumentKind = "html") -> None:
        self.root = root
        self.kind = kind

    @classmethod
    def from_markup(cls, markup: str, kind: DocumentKind = "html") -> "Document":
        if not markup or not markup.strip():
            raise ValueError("Empty markup")
        try:
            if kind == "html":
                root = lxml.html.fromstring(markup)
                if root.getparent() is not None:
                    # Fragment parsed inside a synthetic <body>: give it a document of its own
                    root = copy.deepcopy(root)
                root.tail = None
            else:
                root = etree.fromstring(markup.strip().encode("utf-8"), parser=_XML_PARSER)
        except (etree.ParserError, etree.XMLSyntaxError) as e:
            raise ValueError(f"Could not parse {kind} markup: {e}") from e

        doc = cls(root, kind)
        logger.info("Parsed %s document: root <%s>, %d elements", kind, local_name(root), doc.element_count)
        return doc

    @property
    def element_count(self) -> int:
        return sum(1 for node in self.root.iter() if is_element(node))

    def serialize(self, node: etree._Element | None = None) -> str:
        return markup_of(self.root if node is None else node)

    def contains(self, node: etree._Element) -> bool:
        """True while ``node`` is attached somewhere under this document's root."""
        if node is self.root:
            return True
        return any(ancestor is self.root for ancestor in node.iterancestors())

    def select(self, xpath: str) -> list[etree._Element]:
        """Resolve an XPath expression to element nodes. ``svg:`` prefix maps to the SVG namespace."""
        try:
            result = self.root.xpath(xpath, namespaces=NAMESPACES)
        except etree.XPathError as e:
            raise ValueError(f"Invalid XPath {xpath!r}: {e}") from e
        if not isinstance(result, list):
            raise ValueError(f"XPath {xpath!r} does not select nodes")
        return [node for node in result if is_element(node)]

    def path_of(self, node: etree._Element) -> str:
        if not self.contains(node):
            return ""
        return self.root.getroottree().getpath(node)
