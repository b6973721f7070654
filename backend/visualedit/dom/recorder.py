"""Mutation recorder — a handle over a live node that logs an inverse for every change.

Edit scripts never see lxml elements. They get an ``ElementHandle`` whose
mutating methods each build one command from ``visualedit.dom.commands`` and
record it on a ``Transaction``. Navigation (``parent``, ``children``, ``find``)
returns handles bound to the same transaction, so changes made anywhere in the
tree through a handle are undone together.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from lxml import etree

from visualedit.dom.commands import (
    Command,
    DetachNode,
    InsertNode,
    MoveNode,
    RemoveAttribute,
    ReplaceNode,
    SetAttribute,
    SetProperty,
    SetStyleProperty,
    css_property_name,
    parse_style,
)
from visualedit.dom.document import NAMESPACES, is_element, local_name, make_element, markup_of, parse_fragment
from visualedit.engine.errors import RollbackError

logger = logging.getLogger(__name__)

_ADJACENT_POSITIONS = ("beforebegin", "afterbegin", "beforeend", "afterend")


class Transaction:
    """Ordered log of inverse commands for the mutations made through one recorder."""

    def __init__(self) -> None:
        self._inverses: list[Command] = []

    def record(self, command: Command) -> None:
        # apply() is atomic: nothing is logged for a command that raised, and it changed nothing
        inverse = command.apply()
        self._inverses.append(inverse)

    def __len__(self) -> int:
        return len(self._inverses)

    def undo(self) -> None:
        """Replay the inverses newest-first. The log is drained, so a second undo is a no-op."""
        errors: list[Exception] = []
        while self._inverses:
            inverse = self._inverses.pop()
            try:
                inverse.apply()
            except Exception as e:
                logger.warning("Inverse %s failed during undo: %s", type(inverse).__name__, e)
                errors.append(e)
        if errors:
            raise RollbackError(f"{len(errors)} inverse operation(s) failed during undo: {errors[0]}") from errors[0]


class CompositeTransaction:
    """Per-node transactions of one request, undone as a unit (last node first)."""

    def __init__(self, transactions: list[Transaction] | None = None) -> None:
        self.transactions: list[Transaction] = list(transactions or [])

    def add(self, transaction: Transaction) -> None:
        self.transactions.append(transaction)

    def __len__(self) -> int:
        return sum(len(t) for t in self.transactions)

    def undo(self) -> None:
        errors: list[Exception] = []
        while self.transactions:
            transaction = self.transactions.pop()
            try:
                transaction.undo()
            except RollbackError as e:
                errors.append(e)
        if errors:
            raise RollbackError(str(errors[0])) from errors[0]


class MutationRecorder:
    """Wraps a live node; ``element`` is the handle scripts mutate, ``undo()`` reverts them."""

    def __init__(self, node: etree._Element) -> None:
        self.node = node
        self.transaction = Transaction()
        self.element = ElementHandle(node, self.transaction)

    def undo(self) -> None:
        self.transaction.undo()


def _attribute_name(name: str) -> str:
    """Resolve ``xlink:href`` style prefixes to lxml's ``{namespace}href``."""
    if ":" in name and not name.startswith("{"):
        prefix, local = name.split(":", 1)
        namespace = NAMESPACES.get(prefix)
        if namespace:
            return f"{{{namespace}}}{local}"
    return name


def _keyword_attribute(name: str) -> str:
    # create("rect", class_="x", stroke_width=2) -> class="x" stroke-width="2"
    return name.rstrip("_").replace("_", "-")


class ElementHandle:
    """Recording view of one element. The object edit scripts receive as ``el``."""

    __slots__ = ("_node", "_transaction")

    def __init__(self, node: etree._Element, transaction: Transaction) -> None:
        self._node = node
        self._transaction = transaction

    def __repr__(self) -> str:
        return f"<ElementHandle {local_name(self._node)}>"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ElementHandle) and other._node is self._node

    def __hash__(self) -> int:
        return id(self._node)

    # -- reading ------------------------------------------------------------

    @property
    def tag(self) -> str:
        return local_name(self._node)

    @property
    def attrib(self) -> dict[str, str]:
        return dict(self._node.attrib)

    def get(self, name: str, default: str | None = None) -> str | None:
        return self._node.get(_attribute_name(name), default)

    def has_attribute(self, name: str) -> bool:
        return self._node.get(_attribute_name(name)) is not None

    @property
    def markup(self) -> str:
        return markup_of(self._node)

    @property
    def text_content(self) -> str:
        return "".join(self._node.itertext())

    @property
    def parent(self) -> "ElementHandle | None":
        parent = self._node.getparent()
        return self._wrap(parent) if parent is not None else None

    @property
    def children(self) -> list["ElementHandle"]:
        return [self._wrap(child) for child in self._node if is_element(child)]

    @property
    def next_sibling(self) -> "ElementHandle | None":
        sibling = self._node.getnext()
        while sibling is not None and not is_element(sibling):
            sibling = sibling.getnext()
        return self._wrap(sibling) if sibling is not None else None

    @property
    def previous_sibling(self) -> "ElementHandle | None":
        sibling = self._node.getprevious()
        while sibling is not None and not is_element(sibling):
            sibling = sibling.getprevious()
        return self._wrap(sibling) if sibling is not None else None

    def __len__(self) -> int:
        return len(self.children)

    def __iter__(self) -> Iterator["ElementHandle"]:
        return iter(self.children)

    def __getitem__(self, index: int) -> "ElementHandle":
        return self.children[index]

    def index(self, child: "ElementHandle") -> int:
        """Position of ``child`` among the raw child nodes (the index ``insert``/``move`` use)."""
        return self._node.index(self._unwrap(child))

    def find(self, path: str) -> "ElementHandle | None":
        found = self._node.find(path, namespaces=NAMESPACES)
        return self._wrap(found) if found is not None else None

    def findall(self, path: str) -> list["ElementHandle"]:
        return [self._wrap(node) for node in self._node.findall(path, namespaces=NAMESPACES)]

    def xpath(self, expr: str) -> list[Any]:
        result = self._node.xpath(expr, namespaces=NAMESPACES)
        if not isinstance(result, list):
            return result
        return [self._wrap(item) if is_element(item) else str(item) for item in result]

    # -- factories ----------------------------------------------------------

    def create(self, tag: str, attrib: dict[str, Any] | None = None, text: str | None = None, **attrs: Any) -> "ElementHandle":
        """New detached element in this element's namespace. Insert it to make it visible."""
        merged = {k: str(v) for k, v in (attrib or {}).items()}
        merged.update({_keyword_attribute(k): str(v) for k, v in attrs.items()})
        node = make_element(self._node, tag, merged)
        if text is not None:
            node.text = text
        return self._wrap(node)

    def parse(self, markup: str) -> list["ElementHandle"]:
        return [self._wrap(node) for node in parse_fragment(markup, self._node)]

    # -- attributes and properties -------------------------------------------

    def set(self, name: str, value: Any) -> None:
        self._record(SetAttribute(self._node, _attribute_name(name), str(value)))

    def remove_attribute(self, name: str) -> None:
        self._record(RemoveAttribute(self._node, _attribute_name(name)))

    @property
    def text(self) -> str | None:
        return self._node.text

    @text.setter
    def text(self, value: str | None) -> None:
        self._record(SetProperty(self._node, "text", None if value is None else str(value)))

    @property
    def tail(self) -> str | None:
        return self._node.tail

    @tail.setter
    def tail(self, value: str | None) -> None:
        self._record(SetProperty(self._node, "tail", None if value is None else str(value)))

    @property
    def style(self) -> "StyleMap":
        return StyleMap(self)

    @property
    def classes(self) -> "ClassList":
        return ClassList(self)

    @property
    def dataset(self) -> "Dataset":
        return Dataset(self)

    # -- structure ----------------------------------------------------------

    def append(self, *nodes: Any) -> None:
        for node in self._unwrap_many(nodes):
            self._record(InsertNode(self._node, node))

    def prepend(self, *nodes: Any) -> None:
        for offset, node in enumerate(self._unwrap_many(nodes)):
            self._record(InsertNode(self._node, node, index=offset))

    def insert(self, index: int, node: Any) -> None:
        for offset, item in enumerate(self._unwrap_many([node])):
            self._record(InsertNode(self._node, item, index=index + offset))

    def insert_before(self, node: Any, reference: "ElementHandle | None") -> None:
        nodes = self._unwrap_many([node])
        if reference is None:
            for item in nodes:
                self._record(InsertNode(self._node, item))
            return
        ref = self._unwrap(reference)
        for item in nodes:
            self._record(InsertNode(self._node, item, before=ref))

    def after(self, *nodes: Any) -> None:
        parent = self._require_parent()
        anchor = self._node
        for node in self._unwrap_many(nodes):
            self._record(InsertNode(parent, node, after=anchor))
            anchor = node

    def before(self, *nodes: Any) -> None:
        parent = self._require_parent()
        for node in self._unwrap_many(nodes):
            self._record(InsertNode(parent, node, before=self._node))

    def insert_adjacent_markup(self, position: str, markup: str) -> list["ElementHandle"]:
        """Parse ``markup`` and insert it like the DOM's insertAdjacentHTML."""
        position = position.lower()
        if position not in _ADJACENT_POSITIONS:
            raise ValueError(f"Unknown position {position!r} (expected one of {_ADJACENT_POSITIONS})")
        handles = self.parse(markup)
        if position == "beforebegin":
            self.before(*handles)
        elif position == "afterbegin":
            self.prepend(*handles)
        elif position == "beforeend":
            self.append(*handles)
        else:
            self.after(*handles)
        return handles

    def remove_child(self, child: "ElementHandle") -> None:
        node = self._own_child(child)
        self._record(DetachNode(node))

    def replace_child(self, new: Any, old: "ElementHandle") -> None:
        node = self._own_child(old)
        self._record(ReplaceNode(node, self._unwrap_many([new])))

    def move(self, child: "ElementHandle", index: int) -> None:
        node = self._own_child(child)
        self._record(MoveNode(node, index))

    def remove(self) -> None:
        self._record(DetachNode(self._node))

    def replace_with(self, *nodes: Any) -> None:
        self._record(ReplaceNode(self._node, self._unwrap_many(nodes)))

    # -- internals ----------------------------------------------------------

    def _record(self, command: Command) -> None:
        self._transaction.record(command)

    def _wrap(self, node: etree._Element) -> "ElementHandle":
        return ElementHandle(node, self._transaction)

    def _require_parent(self) -> etree._Element:
        parent = self._node.getparent()
        if parent is None:
            raise ValueError(f"<{self.tag}> has no parent")
        return parent

    def _own_child(self, child: "ElementHandle") -> etree._Element:
        node = self._unwrap(child)
        if node.getparent() is not self._node:
            raise ValueError(f"<{local_name(node)}> is not a child of <{self.tag}>")
        return node

    def _unwrap(self, value: Any) -> etree._Element:
        if isinstance(value, ElementHandle):
            return value._node
        if is_element(value):
            return value
        raise TypeError(f"Expected an element, got {type(value).__name__}")

    def _unwrap_many(self, values: Any) -> list[etree._Element]:
        nodes: list[etree._Element] = []
        for value in values:
            if isinstance(value, str):
                nodes.extend(parse_fragment(value, self._node))
            else:
                nodes.append(self._unwrap(value))
        return nodes


class StyleMap:
    """Inline style of an element. ``el.style["color"] = "red"`` or ``el.style.backgroundColor = "red"``."""

    __slots__ = ("_handle",)

    def __init__(self, handle: ElementHandle) -> None:
        object.__setattr__(self, "_handle", handle)

    def _declarations(self) -> dict[str, str]:
        return parse_style(self._handle._node.get("style"))

    def __getitem__(self, prop: str) -> str:
        return self._declarations().get(css_property_name(prop), "")

    def get(self, prop: str, default: str | None = None) -> str | None:
        return self._declarations().get(css_property_name(prop), default)

    def __setitem__(self, prop: str, value: Any) -> None:
        self._handle._record(SetStyleProperty(self._handle._node, prop, None if value is None else str(value)))

    def __delitem__(self, prop: str) -> None:
        self._handle._record(SetStyleProperty(self._handle._node, prop, None))

    def __contains__(self, prop: str) -> bool:
        return css_property_name(prop) in self._declarations()

    def items(self) -> list[tuple[str, str]]:
        return list(self._declarations().items())

    def __getattr__(self, name: str) -> str:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            raise AttributeError(name)
        self[name] = value

    def __delattr__(self, name: str) -> None:
        del self[name]


class ClassList:
    """Class tokens of an element; each change records one ``class`` attribute mutation."""

    __slots__ = ("_handle",)

    def __init__(self, handle: ElementHandle) -> None:
        self._handle = handle

    def _tokens(self) -> list[str]:
        return (self._handle._node.get("class") or "").split()

    def _write(self, tokens: list[str]) -> None:
        node = self._handle._node
        if tokens == self._tokens():
            return
        if tokens:
            self._handle._record(SetAttribute(node, "class", " ".join(tokens)))
        else:
            self._handle._record(RemoveAttribute(node, "class"))

    def __contains__(self, name: str) -> bool:
        return name in self._tokens()

    def __iter__(self) -> Iterator[str]:
        return iter(self._tokens())

    def __len__(self) -> int:
        return len(self._tokens())

    def add(self, *names: str) -> None:
        tokens = self._tokens()
        tokens.extend(name for name in dict.fromkeys(names) if name not in tokens)
        self._write(tokens)

    def remove(self, *names: str) -> None:
        self._write([token for token in self._tokens() if token not in names])

    def toggle(self, name: str, force: bool | None = None) -> bool:
        present = name in self._tokens()
        want = (not present) if force is None else force
        if want and not present:
            self.add(name)
        elif not want and present:
            self.remove(name)
        return want

    def replace(self, old: str, new: str) -> bool:
        tokens = self._tokens()
        if old not in tokens:
            return False
        replaced: list[str] = []
        for token in tokens:
            candidate = new if token == old else token
            if candidate not in replaced:
                replaced.append(candidate)
        self._write(replaced)
        return True


class Dataset:
    """``data-*`` attributes. ``el.dataset["userId"]`` reads ``data-user-id``."""

    __slots__ = ("_handle",)

    def __init__(self, handle: ElementHandle) -> None:
        self._handle = handle

    @staticmethod
    def _attribute(key: str) -> str:
        return "data-" + css_property_name(key)

    def __getitem__(self, key: str) -> str:
        value = self._handle._node.get(self._attribute(key))
        if value is None:
            raise KeyError(key)
        return value

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._handle._node.get(self._attribute(key), default)

    def __setitem__(self, key: str, value: Any) -> None:
        self._handle._record(SetAttribute(self._handle._node, self._attribute(key), str(value)))

    def __delitem__(self, key: str) -> None:
        if self._attribute(key) not in self._handle._node.attrib:
            raise KeyError(key)
        self._handle._record(RemoveAttribute(self._handle._node, self._attribute(key)))

    def __contains__(self, key: str) -> bool:
        return self._attribute(key) in self._handle._node.attrib

    def items(self) -> list[tuple[str, str]]:
        return [
            (name[len("data-"):], value)
            for name, value in self._handle._node.attrib.items()
            if name.startswith("data-")
        ]
