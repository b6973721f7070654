"""Prompt templates for the edit-script generator."""

from __future__ import annotations

_HANDLE_GUIDE = """THE `el` HANDLE:
Your code is the body of a Python function `def _edit(el):`. `el` wraps the element between the START/END markers. Every change must go through `el` (or handles reached from it) so it can be undone.

Reading:
- `el.tag`, `el.attrib`, `el.get(name)`, `el.text`, `el.tail`, `el.markup`, `el.text_content`
- `el.parent`, `el.children`, `el.next_sibling`, `el.previous_sibling`, `len(el)`, `el[i]`, `for child in el`
- `el.find(path)`, `el.findall(path)`, `el.xpath(expr)` (SVG elements use the `svg:` prefix)

Changing:
- Attributes: `el.set(name, value)`, `el.remove_attribute(name)`
- Text: `el.text = "..."`, `el.tail = "..."`
- Inline style: `el.style["background-color"] = "red"`, `el.style.fontSize = "14px"`, `del el.style["color"]`
- Classes: `el.classes.add("a", "b")`, `el.classes.remove("a")`, `el.classes.toggle("a")`, `el.classes.replace("a", "b")`
- Data attributes: `el.dataset["userId"] = "7"` (writes data-user-id), `del el.dataset["userId"]`
- Structure: `el.append(*nodes)`, `el.prepend(*nodes)`, `el.insert(i, node)`, `el.insert_before(node, ref)`, `el.after(*nodes)`, `el.before(*nodes)`, `el.insert_adjacent_markup("beforeend", "<b>hi</b>")`, `el.remove_child(child)`, `el.replace_child(new, old)`, `el.move(child, index)`, `el.remove()`, `el.replace_with(*nodes)`
- New nodes: `el.create("span", text="hi", class_="badge")`, `el.parse("<li>a</li><li>b</li>")`; nodes may also be passed as markup strings

RULES:
- No imports, no file or network access, no names starting with an underscore.
- `return value` is optional; its text is shown to you when iterating."""

_SYSTEM_TEMPLATE = """You are a precise front-end editor. You receive the markup of an element on a live page and a modification request, and you answer with a short Python script that performs the change.

""" + _HANDLE_GUIDE + """

OUTPUT:
- Output ONLY the code. No explanations, no markdown.
- If you need to see the result of some code before finishing, output JSON instead:
  {"iterate": true, "code": "...", "reason": "why you need to see the result"}
  The code will run, you will see the updated markup, and all of it is reverted before your final answer is applied."""

_FIRST_MESSAGE_TEMPLATE = """Here is the markup to modify:

{markup}

Modification request: {prompt}

You can either:
1. Output ONLY the Python code if you're confident in the change
2. Output JSON to iterate: {{ "iterate": true, "code": "...", "reason": "why you need to see the result" }}

When iterating, the code will be executed and you'll see the updated markup to refine further."""

_FOLLOW_UP_TEMPLATE = """Follow-up modification request: {prompt}

Remember: Output ONLY the Python code for this modification. The `el` variable still references the same element."""

_ITERATION_TEMPLATE = """Here is the updated markup after executing your code:

{markup}"""

_ITERATION_RESULT = """

Execution result: {result}"""

_ITERATION_FOOTER = """

Continue modifying or output final Python code (without JSON wrapper) when done."""

_TEMPLATES = {
    "system": _SYSTEM_TEMPLATE,
    "first_message": _FIRST_MESSAGE_TEMPLATE,
    "follow_up": _FOLLOW_UP_TEMPLATE,
    "iteration": _ITERATION_TEMPLATE + _ITERATION_RESULT + _ITERATION_FOOTER,
}


def get_system_prompt() -> str:
    return _SYSTEM_TEMPLATE


def build_user_message(prompt: str, markup: str, is_first_message: bool) -> str:
    """First message for a node carries its context markup; follow-ups only the instruction."""
    if is_first_message:
        return _FIRST_MESSAGE_TEMPLATE.format(markup=markup, prompt=prompt)
    return _FOLLOW_UP_TEMPLATE.format(prompt=prompt)


def build_iteration_message(updated_markup: str, execution_result: str | None) -> str:
    message = _ITERATION_TEMPLATE.format(markup=updated_markup)
    if execution_result:
        message += _ITERATION_RESULT.format(result=execution_result)
    return message + _ITERATION_FOOTER


def get_all_templates() -> dict[str, str]:
    """Return all prompt templates keyed by name."""
    return dict(_TEMPLATES)
