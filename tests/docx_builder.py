"""Builds minimal .docx packages in memory for the template tests."""

import io
import zipfile
from typing import Dict, Iterable, Optional, Sequence, Union

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"

CONTENT_TYPES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Default Extension="png" ContentType="image/png"/>'
    '<Default Extension="jpeg" ContentType="image/jpeg"/>'
    '<Override PartName="/word/document.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    "</Types>"
)

PACKAGE_RELS = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" '
    'Target="word/document.xml"/>'
    "</Relationships>"
)

DOCUMENT_RELS = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId9" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/header" '
    'Target="header1.xml"/>'
    "</Relationships>"
)

Paragraph = Union[str, Sequence[str]]

PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c63f8cfc0f01f0005000201e2214bc600000000"
    "49454e44ae426082"
)


def _escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def paragraph_xml(runs: Paragraph) -> str:
    """One <w:p>; a list of strings becomes one run per string."""
    if isinstance(runs, str):
        runs = [runs]
    body = "".join(f'<w:r><w:t xml:space="preserve">{_escape(run)}</w:t></w:r>' for run in runs)
    return f"<w:p>{body}</w:p>"


def document_xml(paragraphs: Iterable[Paragraph]) -> str:
    body = "".join(paragraph_xml(paragraph) for paragraph in paragraphs)
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<w:document xmlns:w="{W_NS}" xmlns:r="{R_NS}"><w:body>{body}</w:body></w:document>'
    )


def header_xml(rel_id: str = "rId1") -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<w:hdr xmlns:w="{W_NS}" xmlns:r="{R_NS}" '
        'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main">'
        "<w:p><w:r><w:drawing><a:graphic><a:graphicData>"
        f'<a:blip r:embed="{rel_id}"/>'
        "</a:graphicData></a:graphic></w:drawing></w:r></w:p>"
        "</w:hdr>"
    )


def header_rels_xml(rel_id: str = "rId1", target: str = "media/image1.png") -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
        f'<Relationship Id="{rel_id}" '
        'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/image" '
        f'Target="{target}"/>'
        "</Relationships>"
    )


def build_docx(
    paragraphs: Optional[Iterable[Paragraph]] = None,
    body: Optional[str] = None,
    extra: Optional[Dict[str, Union[str, bytes]]] = None,
) -> bytes:
    parts: Dict[str, Union[str, bytes]] = {
        "[Content_Types].xml": CONTENT_TYPES,
        "_rels/.rels": PACKAGE_RELS,
        "word/_rels/document.xml.rels": DOCUMENT_RELS,
        "word/document.xml": body if body is not None else document_xml(paragraphs or []),
    }
    parts.update(extra or {})

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in parts.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def build_docx_with_logo(paragraphs: Iterable[Paragraph], image_name: str = "image1.png") -> bytes:
    return build_docx(
        paragraphs,
        extra={
            "word/header1.xml": header_xml(),
            "word/_rels/header1.xml.rels": header_rels_xml(target=f"media/{image_name}"),
            f"word/media/{image_name}": PNG_BYTES,
        },
    )


def read_part(document: bytes, name: str) -> str:
    with zipfile.ZipFile(io.BytesIO(document)) as archive:
        return archive.read(name).decode("utf-8")
