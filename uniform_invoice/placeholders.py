"""``{{placeholder}}`` compilation and substitution for WordprocessingML parts.

Word splits the text of a paragraph into runs at every formatting or editing
boundary, so ``{{CompanyName}}`` can arrive as ``{{Com`` + ``pany`` +
``Name}}`` in three ``<w:t>`` elements. Tags are therefore found in the joined
text of each paragraph and mapped back to the text nodes they cover; the
replacement is written into the node where the tag starts.

Supported tags::

    {{name}}    value of ``name``
    {{#name}}   start of a section shown when ``name`` is truthy
    {{^name}}   start of a section shown when ``name`` is falsy
    {{/name}}   end of a section

A section whose start and end tags each fill a whole paragraph is a
paragraph loop: the two tag paragraphs are dropped and the section covers the
paragraphs between them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Set, Tuple

from lxml import etree

from .errors import PlaceholderError, TemplateSyntaxError

logger = logging.getLogger(__name__)

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
W_P = f"{{{W_NS}}}p"
W_T = f"{{{W_NS}}}t"
W_BR = f"{{{W_NS}}}br"
W_TC = f"{{{W_NS}}}tc"
XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"

OPEN_DELIMITER = "{{"
CLOSE_DELIMITER = "}}"
CONTEXT_RADIUS = 30

VALUE = "value"
SECTION = "section"
INVERTED = "inverted"
SECTION_END = "end"

_SECTION_PREFIXES = {"#": SECTION, "^": INVERTED, "/": SECTION_END}

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=False)


@dataclass
class Tag:
    kind: str
    name: str
    raw: str
    paragraph: int
    start: int
    end: int


@dataclass
class Paragraph:
    element: etree._Element
    nodes: List[etree._Element]
    text: str

    @classmethod
    def from_element(cls, element: etree._Element) -> "Paragraph":
        nodes = [node for node in element.iter(W_T) if _owning_paragraph(node) is element]
        return cls(element, nodes, "".join(node.text or "" for node in nodes))


@dataclass
class Section:
    start: Tag
    end: Tag

    @property
    def name(self) -> str:
        return self.start.name


@dataclass
class _RenderPlan:
    removed: Dict[int, List[Tuple[int, int]]] = field(default_factory=dict)
    values: Dict[int, Dict[int, str]] = field(default_factory=dict)
    dropped: Set[int] = field(default_factory=set)

    def remove(self, paragraph: int, start: int, end: int) -> None:
        if end > start:
            self.removed.setdefault(paragraph, []).append((start, end))

    def is_removed(self, paragraph: int, position: int) -> bool:
        return any(start <= position < end for start, end in self.removed.get(paragraph, ()))


def _owning_paragraph(node: etree._Element) -> Optional[etree._Element]:
    for ancestor in node.iterancestors(W_P):
        return ancestor
    return None


def _excerpt(text: str, position: int) -> str:
    return text[max(0, position - CONTEXT_RADIUS) : position + CONTEXT_RADIUS]


def _classify(raw: str, paragraph: int, start: int) -> Tuple[Optional[Tag], Optional[PlaceholderError]]:
    body = raw[len(OPEN_DELIMITER) : -len(CLOSE_DELIMITER)].strip()
    kind = VALUE
    if body[:1] in _SECTION_PREFIXES:
        kind = _SECTION_PREFIXES[body[:1]]
        body = body[1:].strip()
    if not body and kind != SECTION_END:
        return None, PlaceholderError("empty_tag", f'The tag "{raw}" has no name')
    return Tag(kind, body, raw, paragraph, start, start + len(raw)), None


def scan_tags(text: str, paragraph: int = 0) -> Tuple[List[Tag], List[PlaceholderError]]:
    """Find the tags of one paragraph's text, collecting delimiter problems."""
    tags: List[Tag] = []
    errors: List[PlaceholderError] = []
    position = 0
    open_at: Optional[int] = None
    last_close_end: Optional[int] = None

    while True:
        next_open = text.find(OPEN_DELIMITER, position)
        next_close = text.find(CLOSE_DELIMITER, position)
        if next_open == -1 and next_close == -1:
            break

        if next_close == -1 or (next_open != -1 and next_open < next_close):
            if open_at is not None:
                fragment = text[open_at : next_open + len(OPEN_DELIMITER) + CONTEXT_RADIUS]
                fragment = fragment.split(CLOSE_DELIMITER)[0]
                errors.append(
                    PlaceholderError(
                        "duplicate_open_tag",
                        f'The tag beginning with "{fragment}" has duplicate open tags',
                        _excerpt(text, open_at),
                    )
                )
            open_at = next_open
            position = next_open + len(OPEN_DELIMITER)
            continue

        close_end = next_close + len(CLOSE_DELIMITER)
        if open_at is None:
            tail_start = text.rfind(OPEN_DELIMITER, 0, next_close)
            fragment = text[max(tail_start, 0, next_close - CONTEXT_RADIUS) : close_end]
            if last_close_end == next_close:
                errors.append(
                    PlaceholderError(
                        "duplicate_close_tag",
                        f'The tag ending with "{fragment}" has duplicate close tags',
                        _excerpt(text, next_close),
                    )
                )
            else:
                errors.append(
                    PlaceholderError(
                        "unopened_tag",
                        f'The tag ending with "{fragment}" is unopened',
                        _excerpt(text, next_close),
                    )
                )
        else:
            tag, error = _classify(text[open_at:close_end], paragraph, open_at)
            if tag is not None:
                tags.append(tag)
            if error is not None:
                error.context = _excerpt(text, open_at)
                errors.append(error)
            open_at = None
        last_close_end = close_end
        position = close_end

    if open_at is not None:
        errors.append(
            PlaceholderError(
                "unclosed_tag",
                f'The tag beginning with "{text[open_at : open_at + CONTEXT_RADIUS]}" is unclosed',
                _excerpt(text, open_at),
            )
        )
    return tags, errors


def match_sections(tags: List[Tag], paragraphs: List[Paragraph]) -> Tuple[List[Section], List[PlaceholderError]]:
    sections: List[Section] = []
    errors: List[PlaceholderError] = []
    stack: List[Tag] = []

    for tag in tags:
        if tag.kind in (SECTION, INVERTED):
            stack.append(tag)
            continue
        if tag.kind != SECTION_END:
            continue
        context = _excerpt(paragraphs[tag.paragraph].text, tag.start)
        if not stack:
            errors.append(PlaceholderError("unopened_loop", f'The loop with tag "{tag.raw}" is unopened', context))
            continue
        opening = stack.pop()
        if tag.name and tag.name != opening.name:
            errors.append(
                PlaceholderError(
                    "closing_tag_does_not_match_opening_tag",
                    f'The tag "{opening.name}" is closed by the tag "{tag.name}"',
                    context,
                )
            )
            continue
        sections.append(Section(opening, tag))

    for tag in stack:
        errors.append(
            PlaceholderError(
                "unclosed_loop",
                f'The loop with tag "{tag.raw}" is unclosed',
                _excerpt(paragraphs[tag.paragraph].text, tag.start),
            )
        )
    return sections, errors


def _is_truthy(value: object) -> bool:
    if isinstance(value, str):
        return value != ""
    return bool(value)


def _field_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class CompiledPart:
    """A parsed XML part whose placeholders have been located and checked."""

    def __init__(self, name: str, root: etree._Element, paragraphs: List[Paragraph], tags: List[Tag], sections: List[Section]) -> None:
        self.name = name
        self.root = root
        self.paragraphs = paragraphs
        self.tags = tags
        self.sections = sections

    def render(self, fields: Mapping[str, object]) -> bytes:
        plan = _RenderPlan()
        for section in self.sections:
            self._plan_section(plan, section, fields)

        for tag in self.tags:
            if tag.kind != VALUE:
                continue
            if tag.paragraph in plan.dropped or plan.is_removed(tag.paragraph, tag.start):
                continue
            if tag.name not in fields:
                logger.debug("Placeholder %r in %s has no value; rendering it empty", tag.name, self.name)
            plan.values.setdefault(tag.paragraph, {})[tag.start] = _field_text(fields.get(tag.name))
            plan.remove(tag.paragraph, tag.start, tag.end)

        for index, paragraph in enumerate(self.paragraphs):
            if index not in plan.dropped and (index in plan.removed or index in plan.values):
                self._rewrite(paragraph, plan.removed.get(index, []), plan.values.get(index, {}))
        for index in sorted(plan.dropped):
            self._drop(self.paragraphs[index].element)

        return etree.tostring(self.root, xml_declaration=True, encoding="UTF-8", standalone=True)

    def _fills_paragraph(self, tag: Tag) -> bool:
        return self.paragraphs[tag.paragraph].text.strip() == tag.raw

    def _plan_section(self, plan: _RenderPlan, section: Section, fields: Mapping[str, object]) -> None:
        start, end = section.start, section.end
        shown = _is_truthy(fields.get(section.name))
        if start.kind == INVERTED:
            shown = not shown

        if start.paragraph == end.paragraph:
            if shown:
                plan.remove(start.paragraph, start.start, start.end)
                plan.remove(end.paragraph, end.start, end.end)
            else:
                plan.remove(start.paragraph, start.start, end.end)
            return

        between = range(start.paragraph + 1, end.paragraph)
        if self._fills_paragraph(start) and self._fills_paragraph(end):
            plan.dropped.update((start.paragraph, end.paragraph))
            if not shown:
                plan.dropped.update(between)
            return

        if shown:
            plan.remove(start.paragraph, start.start, start.end)
            plan.remove(end.paragraph, end.start, end.end)
        else:
            plan.remove(start.paragraph, start.start, len(self.paragraphs[start.paragraph].text))
            plan.dropped.update(between)
            plan.remove(end.paragraph, 0, end.end)

    def _rewrite(self, paragraph: Paragraph, removed: List[Tuple[int, int]], values: Dict[int, str]) -> None:
        offset = 0
        for node in paragraph.nodes:
            original = node.text or ""
            pieces: List[str] = []
            for index, char in enumerate(original):
                position = offset + index
                if position in values:
                    pieces.append(values[position])
                if any(start <= position < end for start, end in removed):
                    continue
                pieces.append(char)
            offset += len(original)

            text = "".join(pieces)
            if text == original:
                continue
            node.set(XML_SPACE, "preserve")
            self._write_lines(node, text.split("\n"))

    @staticmethod
    def _write_lines(node: etree._Element, lines: List[str]) -> None:
        node.text = lines[0]
        parent = node.getparent()
        if parent is None:
            return
        anchor = node
        for line in lines[1:]:
            brk = etree.Element(W_BR)
            anchor.addnext(brk)
            text_node = etree.Element(W_T)
            text_node.set(XML_SPACE, "preserve")
            text_node.text = line
            brk.addnext(text_node)
            anchor = text_node

    @staticmethod
    def _drop(element: etree._Element) -> None:
        parent = element.getparent()
        if parent is None:
            return
        parent.remove(element)
        # A table cell must keep at least one paragraph.
        if parent.tag == W_TC and parent.find(W_P) is None:
            parent.append(etree.Element(W_P))


def compile_part(name: str, xml: bytes) -> CompiledPart:
    try:
        root = etree.fromstring(xml, _PARSER)
    except etree.XMLSyntaxError as exc:
        raise TemplateSyntaxError(
            [PlaceholderError("malformed_xml", f"The part {name} is not well-formed XML: {exc}")]
        ) from exc

    paragraphs = [Paragraph.from_element(element) for element in root.iter(W_P)]
    tags: List[Tag] = []
    errors: List[PlaceholderError] = []
    for index, paragraph in enumerate(paragraphs):
        if OPEN_DELIMITER not in paragraph.text and CLOSE_DELIMITER not in paragraph.text:
            continue
        found, problems = scan_tags(paragraph.text, index)
        tags.extend(found)
        errors.extend(problems)

    sections, section_errors = match_sections(tags, paragraphs)
    errors.extend(section_errors)
    if errors:
        raise TemplateSyntaxError(errors)
    return CompiledPart(name, root, paragraphs, tags, sections)
