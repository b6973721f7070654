"""Reversible tree mutations — a closed set of command objects.

Every mutation an edit script can perform is one of these commands. ``apply()``
captures whatever prior state it needs, performs the change and returns the
inverse command. Compound commands run their steps atomically: if a step raises,
the steps already applied are reverted before the error propagates, so a failed
command leaves the tree untouched.

Usage:
    inverse = SetAttribute(node, "fill", "red").apply()
    inverse.apply()  # node's fill is back to what it was
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from lxml import etree

from visualedit.dom.document import is_element


_TEXT_PROPERTIES = ("text", "tail")
_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


class Command:
    """A single reversible mutation."""

    def apply(self) -> "Command":
        raise NotImplementedError


def run_steps(steps: Sequence[Command]) -> "Batch":
    """Apply ``steps`` in order and return their combined inverse.

    On failure the already-applied steps are reverted (newest first) and the
    original exception is re-raised.
    """
    inverses: list[Command] = []
    try:
        for step in steps:
            inverses.append(step.apply())
    except Exception:
        for inverse in reversed(inverses):
            inverse.apply()
        raise
    return Batch(list(reversed(inverses)))


@dataclass
class Batch(Command):
    """Ordered group of commands applied as one unit."""

    commands: list[Command] = field(default_factory=list)

    def apply(self) -> "Batch":
        return run_steps(self.commands)


# ---------------------------------------------------------------------------
# Attributes
# ---------------------------------------------------------------------------


def _restore_attribute(element: etree._Element, name: str, previous: str | None) -> Command:
    if previous is None:
        return RemoveAttribute(element, name)
    return SetAttribute(element, name, previous)


@dataclass
class RestoreAttributes(Command):
    """Replace every attribute with ``items``, keeping their order."""

    element: etree._Element
    items: list[tuple[str, str]]

    def apply(self) -> Command:
        current = list(self.element.attrib.items())
        self.element.attrib.clear()
        for name, value in self.items:
            self.element.set(name, value)
        return RestoreAttributes(self.element, current)


@dataclass
class SetAttribute(Command):
    element: etree._Element
    name: str
    value: str

    def apply(self) -> Command:
        previous = self.element.get(self.name)
        self.element.set(self.name, self.value)
        return _restore_attribute(self.element, self.name, previous)


@dataclass
class RemoveAttribute(Command):
    element: etree._Element
    name: str

    def apply(self) -> Command:
        if self.element.get(self.name) is None:
            return RemoveAttribute(self.element, self.name)
        snapshot = list(self.element.attrib.items())
        del self.element.attrib[self.name]
        return RestoreAttributes(self.element, snapshot)


@dataclass
class SetProperty(Command):
    """Set an element's ``text`` or ``tail``."""

    element: etree._Element
    name: str
    value: str | None

    def apply(self) -> Command:
        if self.name not in _TEXT_PROPERTIES:
            raise ValueError(f"Unsupported property {self.name!r} (expected one of {_TEXT_PROPERTIES})")
        previous = getattr(self.element, self.name)
        setattr(self.element, self.name, self.value)
        return SetProperty(self.element, self.name, previous)


# ---------------------------------------------------------------------------
# Presentation (inline style)
# ---------------------------------------------------------------------------


def css_property_name(name: str) -> str:
    """``backgroundColor`` -> ``background-color``; CSS names pass through."""
    name = name.strip()
    if name.startswith("--"):
        return name  # custom properties are case-sensitive
    if "-" in name:
        return name.lower()
    return _CAMEL_RE.sub("-", name).lower()


def parse_style(style: str | None) -> dict[str, str]:
    """Parse an inline style attribute into ordered declarations."""
    declarations: dict[str, str] = {}
    if not style:
        return declarations
    for chunk in style.split(";"):
        if ":" not in chunk:
            continue
        prop, value = chunk.split(":", 1)
        prop, value = prop.strip(), value.strip()
        if prop and value:
            declarations[css_property_name(prop)] = value
    return declarations


def format_style(declarations: dict[str, str]) -> str:
    return "; ".join(f"{prop}: {value}" for prop, value in declarations.items())


@dataclass
class SetStyleProperty(Command):
    """Set (or with ``value=None``, remove) one inline style declaration."""

    element: etree._Element
    prop: str
    value: str | None

    def apply(self) -> Command:
        previous = self.element.get("style")
        declarations = parse_style(previous)
        prop = css_property_name(self.prop)
        if self.value is None or str(self.value).strip() == "":
            declarations.pop(prop, None)
        else:
            declarations[prop] = str(self.value).strip()

        style = format_style(declarations)
        if style:
            self.element.set("style", style)
            return _restore_attribute(self.element, "style", previous)
        return RemoveAttribute(self.element, "style").apply()


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------


def _check_insertable(parent: etree._Element, node: etree._Element) -> None:
    if not is_element(node):
        raise TypeError(f"Expected an element, got {type(node).__name__}")
    if node is parent or any(ancestor is node for ancestor in parent.iterancestors()):
        raise ValueError("Cannot insert a node into its own subtree")


@dataclass
class _Link(Command):
    """Raw insertion of a parentless node at a child index."""

    parent: etree._Element
    index: int
    node: etree._Element

    def apply(self) -> Command:
        self.parent.insert(self.index, self.node)
        return _Unlink(self.parent, self.node)


@dataclass
class _Unlink(Command):
    """Raw removal; lxml keeps any tail text on the removed node."""

    parent: etree._Element
    node: etree._Element

    def apply(self) -> Command:
        index = self.parent.index(self.node)
        self.parent.remove(self.node)
        return _Link(self.parent, index, self.node)


@dataclass
class DetachNode(Command):
    """Remove a node from its parent.

    Text that followed the node (its lxml ``tail``) stays in the document: it is
    merged into the previous sibling's tail, or the parent's text.
    """

    node: etree._Element

    def apply(self) -> Command:
        parent = self.node.getparent()
        if parent is None:
            raise ValueError("Cannot detach a node that has no parent")

        steps: list[Command] = []
        tail = self.node.tail
        if tail:
            previous = self.node.getprevious()
            if previous is not None:
                steps.append(SetProperty(previous, "tail", (previous.tail or "") + tail))
            else:
                steps.append(SetProperty(parent, "text", (parent.text or "") + tail))
            steps.append(SetProperty(self.node, "tail", None))
        steps.append(_Unlink(parent, self.node))
        return run_steps(steps)


@dataclass
class InsertNode(Command):
    """Insert ``node`` under ``parent``, moving it if it is already attached.

    Position is resolved after the node has been detached from its old place:
    ``before``/``after`` name a sibling, ``index`` a child position, and with
    none of them the node is appended.
    """

    parent: etree._Element
    node: etree._Element
    index: int | None = None
    before: etree._Element | None = None
    after: etree._Element | None = None

    def apply(self) -> Command:
        _check_insertable(self.parent, self.node)
        for ref in (self.before, self.after):
            if ref is not None and ref.getparent() is not self.parent:
                raise ValueError("Reference node is not a child of the insertion parent")
        if self.node is self.before or self.node is self.after:
            raise ValueError("Cannot insert a node relative to itself")

        return run_steps([_DetachIfAttached(self.node), _Place(self)])


@dataclass
class _DetachIfAttached(Command):
    node: etree._Element

    def apply(self) -> Command:
        if self.node.getparent() is None:
            return Batch()
        return DetachNode(self.node).apply()


@dataclass
class _Place(Command):
    insert: InsertNode

    def apply(self) -> Command:
        placement = self.insert
        parent = placement.parent
        if placement.before is not None:
            index = parent.index(placement.before)
        elif placement.after is not None:
            index = parent.index(placement.after) + 1
        elif placement.index is not None:
            index = placement.index
        else:
            index = len(parent)
        return _Link(parent, index, placement.node).apply()


@dataclass
class MoveNode(Command):
    """Reorder a node among its siblings."""

    node: etree._Element
    index: int

    def apply(self) -> Command:
        parent = self.node.getparent()
        if parent is None:
            raise ValueError("Cannot move a node that has no parent")
        return InsertNode(parent, self.node, index=self.index).apply()


@dataclass
class ReplaceNode(Command):
    """Replace ``old`` with one or more nodes, in order."""

    old: etree._Element
    new_nodes: list[etree._Element]

    def apply(self) -> Command:
        parent = self.old.getparent()
        if parent is None:
            raise ValueError("Cannot replace a node that has no parent")
        if any(node is self.old for node in self.new_nodes):
            raise ValueError("Cannot replace a node with itself")

        steps: list[Command] = [InsertNode(parent, node, before=self.old) for node in self.new_nodes]
        steps.append(DetachNode(self.old))
        return run_steps(steps)
