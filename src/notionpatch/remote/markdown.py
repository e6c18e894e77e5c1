"""Markdown <-> Notion block conversion.

Markdown is parsed with markdown-it-py (CommonMark plus strikethrough) and
the token stream is mapped onto Notion blocks: paragraphs, headings 1-3,
bulleted/numbered/to-do lists, quotes, fenced code, images and dividers.
Inline bold, italic, strikethrough, code and links become rich-text
annotations.

Rendering goes the other way and escapes Markdown-significant text, so a
rendered block parses back to the same rendering. Blocks Markdown cannot
hold are left out of the rendering (see ``is_markdown_block``); callers
that rewrite a page must leave those blocks alone.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from markdown_it import MarkdownIt
from markdown_it.token import Token

logger = logging.getLogger(__name__)

RICH_TEXT_LIMIT = 2000
INDENT = "  "

_LIST_TYPES = ("bulleted_list_item", "numbered_list_item", "to_do")
# Block types whose children render as an indented list.
_NESTING_TYPES = _LIST_TYPES + ("toggle",)
_HEADING_PREFIX = {"heading_1": "# ", "heading_2": "## ", "heading_3": "### "}
_TEXT_TYPES = {"paragraph", "quote", "callout", "code", *_HEADING_PREFIX, *_NESTING_TYPES}
_MARKDOWN_TYPES = _TEXT_TYPES | {"divider", "image"}

_MARKS = {"strong": "bold", "em": "italic", "s": "strikethrough"}
_WRAPPERS = (("bold", "**"), ("italic", "_"), ("strikethrough", "~~"))

_TODO_RE = re.compile(r"^\[([ xX])\](?:[ \t]+|$)", re.DOTALL)
_ESCAPE_RE = re.compile(r"[\\`*\[\]<~]|&(?=#?\w+;)|(?<![^\W_])_|_(?![^\W_])")
_LINE_START_RE = re.compile(
    r"^([ \t]*)(#+(?=[ \t]|$)|>|[-+](?=[ \t]|$)|=+[ \t]*$|-+[ \t]*$)", re.MULTILINE
)
_ORDERED_START_RE = re.compile(r"^([ \t]*\d{1,9})([.)])(?=[ \t]|$)", re.MULTILINE)

_PARSER = MarkdownIt("commonmark", {"html": False}).enable("strikethrough")

Segment = Tuple[str, Dict[str, bool], Optional[str]]


def extract_title(markdown: str) -> str:
    """First ``# `` heading, or ``"Untitled"``."""
    tokens = _PARSER.parse(markdown)
    for token, inline in zip(tokens, tokens[1:]):
        if token.type == "heading_open" and token.tag == "h1":
            return inline.content.strip() or "Untitled"
    return "Untitled"


# --- Inline: rich text -> Markdown ---


def _escape(text: str) -> str:
    return _ESCAPE_RE.sub(lambda m: "\\" + m.group(0), text)


def _escape_line_starts(text: str) -> str:
    text = _LINE_START_RE.sub(r"\1\\\2", text)
    return _ORDERED_START_RE.sub(r"\1\\\2", text)


def _code_span(text: str) -> str:
    longest = max((len(run) for run in re.findall(r"`+", text)), default=0)
    fence = "`" * (longest + 1)
    pad = " " if text[0] == "`" or text[-1] == "`" else ""
    return f"{fence}{pad}{text}{pad}{fence}"


def _link_target(href: str) -> str:
    if re.search(r"[\s()<>]", href):
        return "<" + href.replace("<", "%3C").replace(">", "%3E") + ">"
    return href


def _segment_parts(segment: Mapping[str, Any]) -> Tuple[str, Tuple[str, ...], Optional[str]]:
    text = segment.get("plain_text")
    if text is None:
        text = (segment.get("text") or {}).get("content", "")
    ann = segment.get("annotations") or {}
    marks = tuple(name for name in ("code", "bold", "italic", "strikethrough") if ann.get(name))
    href = segment.get("href") or ((segment.get("text") or {}).get("link") or {}).get("url")
    return text, marks, href


def _render_segment(text: str, marks: Tuple[str, ...], href: Optional[str]) -> str:
    core = text.strip()
    if not core:
        return text
    lead = text[: len(text) - len(text.lstrip())]
    trail = text[len(text.rstrip()):]

    core = _code_span(core) if "code" in marks else _escape(core)
    for name, marker in _WRAPPERS:
        if name in marks:
            core = f"{marker}{core}{marker}"
    if href:
        core = f"[{core}]({_link_target(href)})"
    return f"{lead}{core}{trail}"


def rich_text_to_markdown(rich_text: Sequence[Mapping[str, Any]]) -> str:
    merged: List[List[Any]] = []
    for segment in rich_text or []:
        text, marks, href = _segment_parts(segment)
        if merged and merged[-1][1:] == [marks, href]:
            merged[-1][0] += text
        else:
            merged.append([text, marks, href])
    return _escape_line_starts("".join(_render_segment(*part) for part in merged))


# --- Inline: Markdown -> rich text ---


def _plain_text(tokens: Sequence[Token]) -> str:
    parts: List[str] = []
    for token in tokens:
        if token.type in ("text", "text_special", "code_inline"):
            parts.append(token.content)
        elif token.type in ("softbreak", "hardbreak"):
            parts.append("\n")
        elif token.children:
            parts.append(_plain_text(token.children))
    return "".join(parts)


def _inline_segments(tokens: Sequence[Token]) -> List[Segment]:
    segments: List[Segment] = []
    depth: Dict[str, int] = {}
    links: List[str] = []

    def add(text: str, **extra: bool) -> None:
        if not text:
            return
        annotations = {name: True for name, count in depth.items() if count}
        annotations.update(extra)
        link = links[-1] if links else None
        if segments and segments[-1][1:] == (annotations, link):
            segments[-1] = (segments[-1][0] + text, annotations, link)
        else:
            segments.append((text, annotations, link))

    for token in tokens:
        kind = token.type
        if kind in ("text", "text_special"):
            add(token.content)
        elif kind in ("softbreak", "hardbreak"):
            add("\n")
        elif kind == "code_inline":
            add(token.content, code=True)
        elif kind == "link_open":
            links.append(str(token.attrGet("href") or ""))
        elif kind == "link_close":
            links.pop()
        elif kind == "image":
            # an image inside running text becomes a link to it
            src = str(token.attrGet("src") or "")
            links.append(src)
            add(_plain_text(token.children or []) or src)
            links.pop()
        elif kind.endswith("_open") and kind[:-5] in _MARKS:
            mark = _MARKS[kind[:-5]]
            depth[mark] = depth.get(mark, 0) + 1
        elif kind.endswith("_close") and kind[:-6] in _MARKS:
            depth[_MARKS[kind[:-6]]] -= 1
    return segments


def _text_object(content: str, annotations: Mapping[str, bool], link: Optional[str]) -> Dict[str, Any]:
    obj: Dict[str, Any] = {
        "type": "text",
        "text": {"content": content, "link": {"url": link} if link else None},
    }
    if annotations:
        obj["annotations"] = dict(annotations)
    return obj


def _to_rich_text(segments: Sequence[Segment]) -> List[Dict[str, Any]]:
    rich: List[Dict[str, Any]] = []
    for content, annotations, link in segments:
        for i in range(0, len(content), RICH_TEXT_LIMIT):
            rich.append(_text_object(content[i : i + RICH_TEXT_LIMIT], annotations, link))
    return rich


def markdown_to_rich_text(text: str, *, inline: bool = True) -> List[Dict[str, Any]]:
    """Inline Markdown to Notion rich text. ``inline=False`` keeps text literal."""
    if not inline:
        return _to_rich_text([(text, {}, None)])
    tokens = _PARSER.parseInline(text)
    return _to_rich_text(_inline_segments(tokens[0].children or []) if tokens else [])


# --- Blocks -> Markdown ---


def _children(block: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    """Nested blocks, read from a block tree or from a request body."""
    if block.get("children"):
        return block["children"]
    body = block.get(block.get("type", ""))
    if not isinstance(body, Mapping):
        return []
    return body.get("children") or []


def _rich_text(block: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    body = block.get(block.get("type", "")) or {}
    return body.get("rich_text") or []


def _block_lines(block: Mapping[str, Any]) -> List[str]:
    """Block text as tidy Markdown lines: stripped, without blank lines."""
    text = rich_text_to_markdown(_rich_text(block))
    return [line.strip() for line in text.split("\n") if line.strip()]


def is_markdown_block(block: Mapping[str, Any]) -> bool:
    """Whether *block* survives a trip through Markdown.

    Sub-pages, tables, embeds and other types have no Markdown form, nor do
    empty paragraphs or children under anything but a list item or toggle.
    A list item is only as convertible as all of its descendants.
    """
    btype = block.get("type", "")
    if btype not in _MARKDOWN_TYPES:
        return False
    if btype == "image" and (block.get("image") or {}).get("type") not in ("external", "file"):
        return False
    children = _children(block)
    if block.get("has_children") and not children:
        return False
    if btype == "paragraph" and not children and not _block_lines(block):
        return False
    if children:
        if btype not in _NESTING_TYPES:
            return False
        return all(
            child.get("type") in _NESTING_TYPES and is_markdown_block(child)
            for child in children
        )
    return True


def _render_block(block: Mapping[str, Any], number: int) -> List[str]:
    btype = block.get("type", "")
    body = block.get(btype) or {}

    if btype == "paragraph":
        return _block_lines(block)
    if btype in _HEADING_PREFIX:
        return [_HEADING_PREFIX[btype] + " ".join(_block_lines(block))]
    if btype in _NESTING_TYPES:
        if btype == "numbered_list_item":
            marker = f"{number}. "
        elif btype == "to_do":
            marker = "- [x] " if body.get("checked") else "- [ ] "
        else:
            marker = "- "
        lines = _block_lines(block) or [""]
        return [(marker + lines[0]).rstrip(), *(INDENT + line for line in lines[1:])]
    if btype in ("quote", "callout"):
        text = rich_text_to_markdown(_rich_text(block))
        if btype == "callout":
            icon = (body.get("icon") or {}).get("emoji")
            text = f"{icon} {text}" if icon else text
        return ["> " + line.strip() if line.strip() else ">" for line in text.split("\n")]
    if btype == "code":
        language = body.get("language") or ""
        if language == "plain text":
            language = ""
        code = "".join(_segment_parts(seg)[0] for seg in _rich_text(block))
        fences = re.findall(r"^[ \t]*(`{3,})", code, re.MULTILINE)
        longest = max((len(run) for run in fences), default=2)
        fence = "`" * (longest + 1)
        return [f"{fence}{language}", *code.split("\n"), fence]
    if btype == "divider":
        return ["---"]
    # image
    source = body.get(body.get("type", "external")) or {}
    caption = " ".join(rich_text_to_markdown(body.get("caption") or []).split())
    return [f"![{caption}]({_link_target(source.get('url', ''))})"]


def _render_tree(block: Mapping[str, Any], number: int, prefix: str) -> List[str]:
    lines = [prefix + line if line else line for line in _render_block(block, number)]
    # children sit under the item text, past the list marker
    if block.get("type") == "numbered_list_item":
        prefix += " " * len(f"{number}. ")
    else:
        prefix += INDENT
    child_number = 0
    for child in _children(block):
        child_number = child_number + 1 if child.get("type") == "numbered_list_item" else 0
        lines.extend(_render_tree(child, child_number, prefix))
    return lines


def render_blocks(blocks: Sequence[Mapping[str, Any]]) -> List[Optional[str]]:
    """Markdown for each top-level block; ``None`` where Markdown cannot hold it."""
    rendered: List[Optional[str]] = []
    number = 0
    for block in blocks:
        if not is_markdown_block(block):
            rendered.append(None)
            continue
        number = number + 1 if block.get("type") == "numbered_list_item" else 0
        rendered.append("\n".join(_render_tree(block, number, "")))
    return rendered


def join_rendered(parts: Sequence[Tuple[str, str]]) -> str:
    """Join ``(block type, markdown)`` pairs into one document."""
    out: List[str] = []
    previous = None
    for btype, text in parts:
        if previous is not None:
            adjacent = previous in _NESTING_TYPES and btype in _NESTING_TYPES
            out.append("\n" if adjacent else "\n\n")
        out.append(text)
        previous = btype
    return "".join(out)


def blocks_to_markdown(blocks: Sequence[Mapping[str, Any]]) -> str:
    """Render Notion blocks (children nested under ``"children"``) as Markdown."""
    parts: List[Tuple[str, str]] = []
    for block, text in zip(blocks, render_blocks(blocks)):
        if text is None:
            logger.debug(
                "Leaving %s block %s out of the Markdown.", block.get("type"), block.get("id", "?")
            )
            continue
        parts.append((block.get("type", ""), text))
    return join_rendered(parts)


# --- Markdown -> blocks ---


def _block(
    btype: str,
    rich_text: List[Dict[str, Any]],
    children: Optional[List[Dict[str, Any]]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"rich_text": rich_text, **extra}
    if children:
        body["children"] = children
    return {"object": "block", "type": btype, btype: body}


def _image_block(token: Token) -> Dict[str, Any]:
    return {
        "object": "block",
        "type": "image",
        "image": {
            "type": "external",
            "external": {"url": str(token.attrGet("src") or "")},
            "caption": markdown_to_rich_text(_plain_text(token.children or []), inline=False),
        },
    }


def _paragraph(inline: Token) -> Dict[str, Any]:
    parts = [t for t in inline.children or [] if t.type != "text" or t.content.strip()]
    if len(parts) == 1 and parts[0].type == "image":
        return _image_block(parts[0])
    return _block("paragraph", _to_rich_text(_inline_segments(inline.children or [])))


def _code(token: Token) -> Dict[str, Any]:
    content = token.content[:-1] if token.content.endswith("\n") else token.content
    info = token.info.strip().split()
    return {
        "object": "block",
        "type": "code",
        "code": {
            "rich_text": markdown_to_rich_text(content, inline=False),
            "language": info[0].lower() if info else "plain text",
        },
    }


def _quote(inner: List[Dict[str, Any]]) -> Dict[str, Any]:
    rich: List[Dict[str, Any]] = []
    rest: List[Dict[str, Any]] = []
    for block in inner:
        if block["type"] == "paragraph" and not rest:
            if rich:
                rich.append(_text_object("\n\n", {}, None))
            rich.extend(block["paragraph"]["rich_text"])
        else:
            rest.append(block)
    return _block("quote", rich, rest)


def _parse_list(tokens: List[Token], pos: int, closing: str, ordered: bool) -> Tuple[List[Dict[str, Any]], int]:
    items: List[Dict[str, Any]] = []
    while tokens[pos].type != closing:
        pos += 1  # list_item_open
        btype = "numbered_list_item" if ordered else "bulleted_list_item"
        extra: Dict[str, Any] = {}
        rich: List[Dict[str, Any]] = []
        if tokens[pos].type == "paragraph_open":
            inline = tokens[pos + 1]
            todo = None if ordered else _TODO_RE.match(inline.content)
            if todo:
                btype, extra = "to_do", {"checked": todo.group(1).lower() == "x"}
                rich = markdown_to_rich_text(inline.content[todo.end():])
            else:
                rich = _to_rich_text(_inline_segments(inline.children or []))
            pos += 3

        inner, pos = _parse_blocks(tokens, pos, "list_item_close")
        children: List[Dict[str, Any]] = []
        for block in inner:
            # later paragraphs of a loose item continue its text
            if block["type"] == "paragraph" and not children:
                rich = rich + [_text_object("\n", {}, None)] + block["paragraph"]["rich_text"]
            else:
                children.append(block)
        items.append(_block(btype, rich, children, **extra))
    return items, pos + 1


def _parse_blocks(tokens: List[Token], pos: int, closing: Optional[str]) -> Tuple[List[Dict[str, Any]], int]:
    blocks: List[Dict[str, Any]] = []
    while pos < len(tokens):
        token = tokens[pos]
        kind = token.type
        if kind == closing:
            return blocks, pos + 1

        if kind == "heading_open":
            level = min(int(token.tag[1:]), 3)
            blocks.append(_block(
                f"heading_{level}", _to_rich_text(_inline_segments(tokens[pos + 1].children or []))
            ))
            pos += 3
        elif kind == "paragraph_open":
            blocks.append(_paragraph(tokens[pos + 1]))
            pos += 3
        elif kind in ("fence", "code_block"):
            blocks.append(_code(token))
            pos += 1
        elif kind == "hr":
            blocks.append({"object": "block", "type": "divider", "divider": {}})
            pos += 1
        elif kind == "blockquote_open":
            inner, pos = _parse_blocks(tokens, pos + 1, "blockquote_close")
            blocks.append(_quote(inner))
        elif kind in ("bullet_list_open", "ordered_list_open"):
            ordered = kind == "ordered_list_open"
            items, pos = _parse_list(tokens, pos + 1, kind.replace("_open", "_close"), ordered)
            blocks.extend(items)
        else:
            logger.debug("Ignoring Markdown token %s.", kind)
            pos += 1
    return blocks, pos


def markdown_to_blocks(markdown: str) -> List[Dict[str, Any]]:
    """Parse Markdown into Notion block request objects."""
    blocks, _ = _parse_blocks(_PARSER.parse(markdown), 0, None)
    return blocks
