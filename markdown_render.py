"""Restricted markdown rendering for AI-authored text.

This is not a markdown parser. It recognises a handful of line-level and inline
markers and produces a small node tree whose text leaves are already escaped.
``to_html`` only ever emits the tags listed in ``ALLOWED_TAGS``, so whatever the
model writes can be shown with ``unsafe_allow_html`` without injecting markup.

Pipeline order matters:

1. ``<`` and ``>`` are escaped before anything else looks at the text.
2. Fenced code blocks are cut out and kept verbatim.
3. Inline code spans, then bold, then italic.
4. ``#``/``##``/``###`` headings and ``* `` list items, line by line.
5. Remaining line breaks become ``br`` nodes.
6. Consecutive list items share one ``ul``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Union

ALLOWED_TAGS = frozenset({"pre", "code", "strong", "em", "h1", "h2", "h3", "ul", "li", "br"})

FENCE_RE = re.compile(r"```(.*?)```", re.DOTALL)
CODE_SPAN_RE = re.compile(r"`([^`\n]+)`")
BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
ITALIC_RE = re.compile(r"\*(.+?)\*")
HEADING_RE = re.compile(r"^(#{1,3}) (.*)$")
LIST_ITEM_RE = re.compile(r"^\* (.*)$")


@dataclass
class Node:
    tag: str
    children: list[Inline] = field(default_factory=list)


Inline = Union[str, Node]


def escape_tags(text: str) -> str:
    return text.replace("<", "&lt;").replace(">", "&gt;")


def _split_by(pattern: re.Pattern[str], text: str, wrap) -> list[Inline]:
    parts: list[Inline] = []
    pos = 0
    for match in pattern.finditer(text):
        if match.start() > pos:
            parts.append(text[pos:match.start()])
        parts.append(wrap(match.group(1)))
        pos = match.end()
    if pos < len(text):
        parts.append(text[pos:])
    return parts


def _italic(text: str) -> list[Inline]:
    return _split_by(ITALIC_RE, text, lambda inner: Node("em", [inner]))


def _emphasis(text: str) -> list[Inline]:
    parts: list[Inline] = []
    for part in _split_by(BOLD_RE, text, lambda inner: Node("strong", _italic(inner))):
        if isinstance(part, str):
            parts.extend(_italic(part))
        else:
            parts.append(part)
    return parts


def render_inline(text: str) -> list[Inline]:
    parts: list[Inline] = []
    for part in _split_by(CODE_SPAN_RE, text, lambda inner: Node("code", [inner])):
        if isinstance(part, str):
            parts.extend(_emphasis(part))
        else:
            parts.append(part)
    return parts


def _render_lines(chunk: str) -> list[Inline]:
    # Each block is either a block Node or a list of inline parts for one line.
    blocks: list[Node | list[Inline]] = []
    current_list: Node | None = None
    for line in chunk.split("\n"):
        item = LIST_ITEM_RE.match(line)
        if item:
            if current_list is None:
                current_list = Node("ul")
                blocks.append(current_list)
            current_list.children.append(Node("li", render_inline(item.group(1))))
            continue
        current_list = None

        heading = HEADING_RE.match(line)
        if heading:
            blocks.append(Node(f"h{len(heading.group(1))}", render_inline(heading.group(2))))
        else:
            blocks.append(render_inline(line))

    out: list[Inline] = []
    for index, block in enumerate(blocks):
        # Every line break between blocks survives; list items were merged above.
        if index:
            out.append(Node("br"))
        if isinstance(block, Node):
            out.append(block)
        else:
            out.extend(part for part in block if part != "")
    return out


def render_markdown(text: str | None) -> list[Inline]:
    """Render AI text into a list of escaped strings and ``Node`` elements."""
    escaped = escape_tags(text or "")
    nodes: list[Inline] = []
    pos = 0
    for match in FENCE_RE.finditer(escaped):
        before = escaped[pos:match.start()]
        if before.endswith("\n"):
            before = before[:-1]
        if pos > 0 and before.startswith("\n"):
            before = before[1:]
        if before:
            nodes.extend(_render_lines(before))

        code = match.group(1)
        if code.startswith("\n"):
            code = code[1:]
        if code.endswith("\n"):
            code = code[:-1]
        nodes.append(Node("pre", [Node("code", [code])]))
        pos = match.end()

    rest = escaped[pos:]
    if pos > 0 and rest.startswith("\n"):
        rest = rest[1:]
    if rest:
        nodes.extend(_render_lines(rest))
    return nodes


def to_html(nodes: list[Inline]) -> str:
    parts: list[str] = []
    for node in nodes:
        if isinstance(node, str):
            parts.append(node)
        elif node.tag not in ALLOWED_TAGS:
            # Unknown tags are dropped, their content kept.
            parts.append(to_html(node.children))
        elif node.tag == "br":
            parts.append("<br>")
        else:
            parts.append(f"<{node.tag}>{to_html(node.children)}</{node.tag}>")
    return "".join(parts)


def render_html(text: str | None) -> str:
    return to_html(render_markdown(text))
