from __future__ import annotations

import logging
import posixpath
import re
import warnings
import zipfile
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote

import fitz  # PyMuPDF
from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning
from docx import Document

from .errors import ExtractionFailed, SourceMaterialError, UnsupportedFormat
from .models import ExtractionResult

logger = logging.getLogger(__name__)

# OPF and container files are parsed with html.parser; lxml is not a dependency.
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

_BLOCK_TAGS = ["p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "tr", "blockquote", "section"]


class TextExtractor:
    """
    Abstract format adapter. Implementations turn raw bytes of exactly one
    family of formats into plain text plus advisory metadata. They must be
    stateless and touch nothing but the bytes they are given.
    """

    formats: Tuple[str, ...] = ()

    def extract(self, data: bytes) -> ExtractionResult:
        raise NotImplementedError


class PdfExtractor(TextExtractor):
    formats = ("pdf",)

    def extract(self, data: bytes) -> ExtractionResult:
        doc = fitz.open(stream=data, filetype="pdf")
        try:
            parts: List[str] = []
            for page in doc:
                page_text = (page.get_text() or "").strip()
                if page_text:
                    parts.append(page_text)
            info = doc.metadata or {}
            metadata: Dict[str, Any] = {"page_count": doc.page_count}
            if info.get("author"):
                metadata["author"] = info["author"]
            if info.get("title"):
                metadata["title"] = info["title"]
        finally:
            doc.close()
        return ExtractionResult(text="\n\n".join(parts), metadata=metadata)


class DocxExtractor(TextExtractor):
    formats = ("docx",)

    def extract(self, data: bytes) -> ExtractionResult:
        doc = Document(BytesIO(data))
        text = "\n".join(para.text for para in doc.paragraphs)
        metadata: Dict[str, Any] = {}
        props = doc.core_properties
        if props.author:
            metadata["author"] = props.author
        if props.title:
            metadata["title"] = props.title
        return ExtractionResult(text=text.strip(), metadata=metadata)


class PlainTextExtractor(TextExtractor):
    formats = ("txt", "text", "md")

    def extract(self, data: bytes) -> ExtractionResult:
        return ExtractionResult(text=data.decode("utf-8", errors="replace"))


def html_to_text(html: str) -> str:
    """
    Strip markup from an (X)HTML fragment. Block-level elements become line
    breaks so paragraph boundaries survive as blank lines.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["script", "style", "head"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")
    text = soup.get_text().replace("\xa0", " ")
    text = re.sub(r"[ \t]+", " ", text)
    text = "\n".join(line.strip() for line in text.splitlines())
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


class EpubExtractor(TextExtractor):
    """
    Unpacks an EPUB archive, walks the OPF spine in reading order and
    concatenates the plain text of every (X)HTML item.
    """

    formats = ("epub",)

    def extract(self, data: bytes) -> ExtractionResult:
        with zipfile.ZipFile(BytesIO(data)) as zf:
            names = set(zf.namelist())
            opf_path = self._find_opf_path(zf, names)
            opf = BeautifulSoup(zf.read(opf_path).decode("utf-8", errors="replace"), "html.parser")
            chapters: List[str] = []
            for member in self._spine_members(opf, opf_path, names):
                text = html_to_text(zf.read(member).decode("utf-8", errors="replace"))
                if text:
                    chapters.append(text)
        return ExtractionResult(text="\n\n".join(chapters), metadata=self._read_metadata(opf))

    @staticmethod
    def _find_opf_path(zf: zipfile.ZipFile, names: set) -> str:
        if "META-INF/container.xml" in names:
            container = BeautifulSoup(zf.read("META-INF/container.xml").decode("utf-8", errors="replace"), "html.parser")
            rootfile = container.find("rootfile")
            if rootfile and rootfile.get("full-path") in names:
                return rootfile["full-path"]
        for name in sorted(names):
            if name.endswith(".opf"):
                return name
        raise ExtractionFailed("No OPF package file found in EPUB archive")

    @staticmethod
    def _spine_members(opf: BeautifulSoup, opf_path: str, names: set) -> List[str]:
        opf_dir = posixpath.dirname(opf_path)
        manifest: Dict[str, str] = {}
        for item in opf.find_all("item"):
            href = item.get("href", "")
            media_type = item.get("media-type", "")
            if "html" in media_type or href.endswith((".html", ".xhtml", ".htm")):
                manifest[item.get("id", "")] = href

        # Auxiliary content (linear="no") is outside the reading order.
        hrefs = [
            manifest[ref["idref"]]
            for ref in opf.find_all("itemref")
            if ref.get("idref") in manifest and ref.get("linear", "yes").lower() != "no"
        ]
        if not hrefs:
            hrefs = list(manifest.values())

        members: List[str] = []
        for href in hrefs:
            href = unquote(href.split("#", 1)[0])
            member = posixpath.normpath(posixpath.join(opf_dir, href)) if opf_dir else href
            if member in names:
                members.append(member)
            elif href in names:
                members.append(href)
            else:
                logger.debug("Spine item %s missing from archive", href)
        return members

    @staticmethod
    def _read_metadata(opf: BeautifulSoup) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {}
        for key, tag_name in (
            ("author", "dc:creator"),
            ("title", "dc:title"),
            ("publisher", "dc:publisher"),
            ("language", "dc:language"),
        ):
            tag = opf.find(tag_name)
            if tag and tag.get_text(strip=True):
                metadata[key] = tag.get_text(strip=True)
        return metadata


class ExtractorRegistry:
    """
    Maps declared formats to extractors. Adding a format means registering
    another TextExtractor, not editing a dispatch switch.
    """

    def __init__(self, extractors: Iterable[TextExtractor] = ()):
        self._extractors: Dict[str, TextExtractor] = {}
        for extractor in extractors:
            self.register(extractor)

    @classmethod
    def default(cls) -> "ExtractorRegistry":
        return cls([PdfExtractor(), DocxExtractor(), PlainTextExtractor(), EpubExtractor()])

    def register(self, extractor: TextExtractor) -> None:
        for file_type in extractor.formats:
            self._extractors[file_type.lower()] = extractor

    def supports(self, file_type: str) -> bool:
        return (file_type or "").lower() in self._extractors

    def get(self, file_type: str) -> TextExtractor:
        extractor: Optional[TextExtractor] = self._extractors.get((file_type or "").lower())
        if extractor is None:
            raise UnsupportedFormat(file_type)
        return extractor

    def extract(self, data: bytes, file_type: str) -> ExtractionResult:
        extractor = self.get(file_type)
        try:
            return extractor.extract(data)
        except SourceMaterialError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ExtractionFailed(f"Failed to extract {file_type} content: {exc}") from exc
