"""In-memory view of a .docx package as an ordered path -> bytes store."""

from __future__ import annotations

import io
import re
import zipfile
import zlib
from collections import OrderedDict
from typing import Dict, List, Optional

from .errors import InvalidArchive, SerializationFailure

BODY_PART = "word/document.xml"
HEADER_PART = "word/header1.xml"
HEADER_RELS_PART = "word/_rels/header1.xml.rels"

_TEMPLATE_PART_RE = re.compile(r"^word/(?:document|header\d*|footer\d*)\.xml$")


class DocumentPackage:
    def __init__(self, entries: "OrderedDict[str, bytes]", infos: Dict[str, zipfile.ZipInfo]) -> None:
        self._entries = entries
        self._infos = infos

    @classmethod
    def from_bytes(cls, data: bytes) -> "DocumentPackage":
        entries: "OrderedDict[str, bytes]" = OrderedDict()
        infos: Dict[str, zipfile.ZipInfo] = {}
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                for info in archive.infolist():
                    if info.is_dir():
                        continue
                    entries[info.filename] = archive.read(info)
                    infos[info.filename] = info
        except (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, EOFError, NotImplementedError) as exc:
            raise InvalidArchive(f"Corrupted zip: {exc}") from exc

        if BODY_PART not in entries:
            raise InvalidArchive(f"Corrupted zip: missing {BODY_PART}")
        return cls(entries, infos)

    def get(self, name: str) -> Optional[bytes]:
        return self._entries.get(name)

    def read(self, name: str) -> bytes:
        try:
            return self._entries[name]
        except KeyError:
            raise KeyError(f"Package has no part {name!r}") from None

    def read_text(self, name: str) -> str:
        return self.read(name).decode("utf-8")

    def write(self, name: str, content: "bytes | str") -> None:
        if isinstance(content, str):
            content = content.encode("utf-8")
        self._entries[name] = content

    def template_parts(self) -> List[str]:
        """Body first, then headers and footers, in archive order."""
        others = [name for name in self._entries if name != BODY_PART and _TEMPLATE_PART_RE.match(name)]
        return [BODY_PART, *others]

    def to_bytes(self) -> bytes:
        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
                for name, content in self._entries.items():
                    original = self._infos.get(name)
                    if original is None:
                        archive.writestr(name, content)
                        continue
                    info = zipfile.ZipInfo(name, date_time=original.date_time)
                    info.compress_type = original.compress_type
                    info.external_attr = original.external_attr
                    archive.writestr(info, content)
        except (OSError, ValueError, zipfile.LargeZipFile, NotImplementedError) as exc:
            raise SerializationFailure(f"Could not write document package: {exc}") from exc
        return buffer.getvalue()
