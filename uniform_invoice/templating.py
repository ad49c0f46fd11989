"""Fill ``{{placeholders}}`` in a .docx letter template and build an HTML preview."""

from __future__ import annotations

import base64
import html
import io
import json
import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Tuple

import mammoth
from lxml import etree

from .config import LOGO_ALT_TEXT
from .errors import (
    HeaderImageRecoveryFailure,
    InvalidArchive,
    TemplateError,
    TemplateRenderError,
    TemplateSyntaxError,
)
from .package import BODY_PART, HEADER_PART, HEADER_RELS_PART, DocumentPackage
from .placeholders import CompiledPart, compile_part

logger = logging.getLogger(__name__)

R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
PACKAGE_RELS_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
R_EMBED = f"{{{R_NS}}}embed"
R_ID = f"{{{R_NS}}}id"
VML_IMAGEDATA = "{urn:schemas-microsoft-com:vml}imagedata"
RELATIONSHIP = f"{{{PACKAGE_RELS_NS}}}Relationship"

# Editors sometimes double the delimiters when a tag is pasted over itself.
_DOUBLED_OPEN_RE = re.compile(r"\{\{\{\{")
_DOUBLED_CLOSE_RE = re.compile(r"\}\}\}\}")

LOGO_STYLE = "float: right; max-width: 180px; height: auto; margin-left: 24px; margin-bottom: 12px;"
CLEAR_FLOAT = '<div style="clear: both;"></div>'
CONTEXT_LIMIT = 50

CORRUPTED_FILE_MESSAGE = "The file appears to be corrupted or not a valid DOCX file."
DUPLICATE_TAG_HINT = (
    "\n\n💡 Possible Fix: This often happens when tags are copy-pasted or edited heavily in Word, "
    "causing hidden formatting issues.\n\n"
    "Try this:\n"
    "1. Delete the problematic tags entirely.\n"
    "2. Re-type them manually (e.g. {{CompanyName}}).\n"
    "3. Ensure you don't have double brackets like '{{{{...}}}}'."
)

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


@dataclass
class RenderedOutput:
    html: str
    document: bytes
    logo: Optional[str] = None
    messages: List[str] = field(default_factory=list)
    repaired: bool = False


def repair_doubled_delimiters(xml: str) -> str:
    return _DOUBLED_CLOSE_RE.sub("}}", _DOUBLED_OPEN_RE.sub("{{", xml))


def _repair_body(package: DocumentPackage) -> bool:
    try:
        original = package.read_text(BODY_PART)
        cleaned = repair_doubled_delimiters(original)
        if cleaned == original:
            return False
        package.write(BODY_PART, cleaned)
    except (KeyError, UnicodeDecodeError) as exc:
        logger.warning("Failed to auto-clean template: %s", exc)
        return False
    logger.warning("Auto-fixed duplicate brackets in template")
    return True


def compile_template(package: DocumentPackage) -> List[CompiledPart]:
    """Compile every templated part, reporting the problems of all parts together."""
    parts: List[CompiledPart] = []
    errors: List[TemplateError] = []
    for name in package.template_parts():
        try:
            parts.append(compile_part(name, package.read(name)))
        except TemplateSyntaxError as exc:
            errors.extend(exc.errors)
    if errors:
        raise TemplateSyntaxError(errors)
    return parts


def _to_html(document: bytes) -> Tuple[str, List[str]]:
    result = mammoth.convert_to_html(io.BytesIO(document))
    messages = [message.message for message in result.messages]
    if messages:
        logger.warning("HTML conversion warnings: %s", messages)
    return result.value, messages


def _parse_xml(content: bytes) -> etree._Element:
    try:
        return etree.fromstring(content, _PARSER)
    except etree.XMLSyntaxError as exc:
        raise HeaderImageRecoveryFailure(f"Header part is not well-formed XML: {exc}") from exc


def _first_image_relationship(header: etree._Element) -> Optional[str]:
    for element in header.iter(etree.Element):
        rel_id = element.get(R_EMBED)
        if rel_id:
            return rel_id
    for element in header.iter(VML_IMAGEDATA):
        rel_id = element.get(R_ID)
        if rel_id:
            return rel_id
    return None


def _relationship_target(relationships: etree._Element, rel_id: str) -> Optional[str]:
    for relationship in relationships.iter(RELATIONSHIP):
        if relationship.get("Id") != rel_id:
            continue
        if relationship.get("TargetMode") == "External":
            raise HeaderImageRecoveryFailure(f"Relationship {rel_id} points outside the package")
        return relationship.get("Target")
    return None


def _candidate_paths(target: str) -> List[str]:
    if target.startswith("/"):
        return [target.lstrip("/")]
    resolved = posixpath.normpath(posixpath.join(posixpath.dirname(HEADER_PART), target))
    stripped = "word/" + target.replace("../", "", 1)
    return [resolved] if resolved == stripped else [resolved, stripped]


def image_mime_type(path: str) -> str:
    extension = posixpath.splitext(path)[1].lstrip(".").lower() or "png"
    if extension in ("jpg", "jpeg"):
        return "image/jpeg"
    return f"image/{extension}"


def extract_header_logo(package: DocumentPackage) -> Optional[str]:
    """Return the first image of the page header as a data URI.

    The HTML converter ignores headers, so a letterhead logo has to be
    fetched from the header part directly.
    """
    header = package.get(HEADER_PART)
    relationships = package.get(HEADER_RELS_PART)
    if header is None or relationships is None:
        return None

    rel_id = _first_image_relationship(_parse_xml(header))
    if rel_id is None:
        return None
    target = _relationship_target(_parse_xml(relationships), rel_id)
    if target is None:
        raise HeaderImageRecoveryFailure(f"Header relationship {rel_id} is not declared")

    for path in _candidate_paths(target):
        image = package.get(path)
        if image is not None:
            encoded = base64.b64encode(image).decode("ascii")
            return f"data:{image_mime_type(path)};base64,{encoded}"
    raise HeaderImageRecoveryFailure(f"Header image {target} is missing from the package")


def compose_preview(body_html: str, logo: Optional[str], alt: str = LOGO_ALT_TEXT) -> str:
    logo_html = ""
    if logo:
        logo_html = f'<img src="{html.escape(logo)}" alt="{html.escape(alt)}" style="{LOGO_STYLE}" />'
    return logo_html + body_html + CLEAR_FLOAT


def _format_issue(error: Any) -> Optional[str]:
    if getattr(error, "id", None) == "multi_error":
        return None
    explanation = getattr(error, "explanation", None) or str(error)
    context = getattr(error, "context", None)
    suffix = f' (near "...{context[:CONTEXT_LIMIT]}...")' if context else ""
    return f"• {explanation}{suffix}"


def _unique(lines: Iterable[Optional[str]]) -> List[str]:
    seen: List[str] = []
    for line in lines:
        if line and line not in seen:
            seen.append(line)
    return seen


def describe_error(error: BaseException) -> str:
    """Turn any render failure into one message a template author can act on."""
    nested = getattr(error, "errors", None) or []
    issues = _unique(_format_issue(item) for item in nested)
    if issues:
        message = "Template Issues Found:\n" + "\n".join(issues)
        if any("duplicate open tags" in line or "duplicate close tags" in line for line in issues):
            message += DUPLICATE_TAG_HINT
        return message

    if str(error) == "Multi error":
        details = getattr(error, "properties", None) or {"type": type(error).__name__}
        return f"Multi error occurred. Details: {json.dumps(details, ensure_ascii=False, default=str)}"
    if isinstance(error, InvalidArchive):
        return CORRUPTED_FILE_MESSAGE
    return f"Processing Failed: {error}"


def _render(template: bytes, fields: Mapping[str, object]) -> RenderedOutput:
    package = DocumentPackage.from_bytes(template)
    repaired = _repair_body(package)

    for part in compile_template(package):
        package.write(part.name, part.render(fields))
    document = package.to_bytes()

    body_html, messages = _to_html(document)

    logo: Optional[str] = None
    try:
        logo = extract_header_logo(DocumentPackage.from_bytes(document))
    except Exception as exc:
        logger.warning("Could not extract header image: %s", exc)

    return RenderedOutput(
        html=compose_preview(body_html, logo),
        document=document,
        logo=logo,
        messages=messages,
        repaired=repaired,
    )


def render_template(template: bytes, fields: Mapping[str, object]) -> RenderedOutput:
    """Fill a .docx template and convert it to an HTML preview.

    Raises ``TemplateRenderError`` carrying one human-readable message; the
    caller never receives a partial document.
    """
    try:
        return _render(template, fields)
    except Exception as exc:
        logger.error("Error processing document: %s", exc)
        kind = getattr(exc, "id", None) or "processing_error"
        raise TemplateRenderError(describe_error(exc), kind) from exc
