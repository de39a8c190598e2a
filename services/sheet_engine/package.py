"""OOXML package access.

Holds the zip members of an open document in a thread-safe part store and
knows the handful of package-level parts the sheet engine touches:
relationships, content types, the workbook sheet list, shared strings,
the calculation chain and the cellXfs count in styles.
"""

from __future__ import annotations

import logging
import re
import threading
import zipfile
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, List, Optional, Tuple, Union
from xml.etree import ElementTree as ET
from xml.sax.saxutils import escape, quoteattr

from pydantic import BaseModel

from .errors import PackageError
from .worksheet_xml import NS, XML_DECLARATION, local_name, new_worksheet_xml

logger = logging.getLogger(__name__)

Source = Union[str, Path, bytes, BinaryIO]

WORKBOOK_PART = "xl/workbook.xml"
WORKBOOK_RELS_PART = "xl/_rels/workbook.xml.rels"
CONTENT_TYPES_PART = "[Content_Types].xml"
SHARED_STRINGS_PART = "xl/sharedStrings.xml"
STYLES_PART = "xl/styles.xml"
CALC_CHAIN_PART = "xl/calcChain.xml"

REL_OFFICE_DOCUMENT = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument"
REL_WORKSHEET = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/worksheet"
REL_STYLES = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/styles"
REL_SHARED_STRINGS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/sharedStrings"
REL_HYPERLINK = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/hyperlink"
REL_CALC_CHAIN = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/calcChain"

CT_WORKBOOK = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml"
CT_WORKSHEET = "application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"
CT_STYLES = "application/vnd.openxmlformats-officedocument.spreadsheetml.styles+xml"
CT_SHARED_STRINGS = "application/vnd.openxmlformats-officedocument.spreadsheetml.sharedStrings+xml"
CT_RELATIONSHIPS = "application/vnd.openxmlformats-package.relationships+xml"


# =============================================================================
# PART STORE
# =============================================================================

class PartStore:
    """Mapping of part name -> bytes, safe to share between threads."""

    def __init__(self, parts: Optional[Dict[str, bytes]] = None) -> None:
        self._parts: Dict[str, bytes] = dict(parts or {})
        self._lock = threading.RLock()

    def load(self, name: str) -> Optional[bytes]:
        with self._lock:
            return self._parts.get(name)

    def store(self, name: str, data: Optional[bytes]) -> None:
        with self._lock:
            self._parts[name] = data or b""

    def delete(self, name: str) -> None:
        with self._lock:
            self._parts.pop(name, None)

    def names(self) -> List[str]:
        with self._lock:
            return list(self._parts)

    def snapshot(self) -> Dict[str, bytes]:
        with self._lock:
            return dict(self._parts)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._parts

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())


def read_package(source: Source) -> PartStore:
    """Read every member of an xlsx package into a PartStore."""
    if isinstance(source, (bytes, bytearray)):
        source = BytesIO(bytes(source))
    try:
        with zipfile.ZipFile(source, "r") as zf:
            parts = {info.filename: zf.read(info.filename) for info in zf.infolist() if not info.is_dir()}
    except zipfile.BadZipFile as e:
        raise PackageError(f"not a valid xlsx package: {e}") from e
    if WORKBOOK_PART not in parts:
        raise PackageError(f"package has no {WORKBOOK_PART}")
    logger.info(f"[OPEN] Read package with {len(parts)} parts")
    return PartStore(parts)


def write_package(store: PartStore, target: Union[str, Path, BinaryIO]) -> None:
    parts = store.snapshot()
    ordered = [CONTENT_TYPES_PART] + sorted(n for n in parts if n != CONTENT_TYPES_PART)
    with zipfile.ZipFile(target, "w", zipfile.ZIP_DEFLATED) as zf:
        for name in ordered:
            if name in parts:
                zf.writestr(name, parts[name])
    logger.info(f"[SAVE] Wrote package with {len(parts)} parts")


# =============================================================================
# RELATIONSHIPS
# =============================================================================

class Relationship(BaseModel):
    id: str
    type: str
    target: str
    target_mode: Optional[str] = None


def rels_part_for(part: str) -> str:
    """xl/worksheets/sheet1.xml -> xl/worksheets/_rels/sheet1.xml.rels"""
    folder, _, name = part.rpartition("/")
    return f"{folder}/_rels/{name}.rels" if folder else f"_rels/{name}.rels"


def parse_relationships(xml_bytes: Optional[bytes]) -> List[Relationship]:
    rels: List[Relationship] = []
    if not xml_bytes:
        return rels
    root = ET.fromstring(xml_bytes)
    for rel in root:
        if not rel.tag.endswith("Relationship"):
            continue
        rels.append(Relationship(
            id=rel.get("Id", ""),
            type=rel.get("Type", ""),
            target=rel.get("Target", ""),
            target_mode=rel.get("TargetMode"),
        ))
    return rels


def serialize_relationships(rels: List[Relationship]) -> bytes:
    items = []
    for rel in rels:
        mode = f" TargetMode={quoteattr(rel.target_mode)}" if rel.target_mode else ""
        items.append(
            f"<Relationship Id={quoteattr(rel.id)} Type={quoteattr(rel.type)} "
            f"Target={quoteattr(rel.target)}{mode}/>"
        )
    body = f'<Relationships xmlns="{NS["rel"]}">' + "".join(items) + "</Relationships>"
    return XML_DECLARATION + b"\r\n" + body.encode("utf-8")


def next_relationship_id(rels: List[Relationship]) -> str:
    used = {rel.id for rel in rels}
    n = len(rels) + 1
    while f"rId{n}" in used:
        n += 1
    return f"rId{n}"


def resolve_target(source_part: str, target: str) -> str:
    """Resolve a relationship target relative to the part that owns it."""
    if target.startswith("/"):
        return target[1:]
    folder = source_part.rpartition("/")[0]
    parts = folder.split("/") if folder else []
    for piece in target.split("/"):
        if piece == "..":
            if parts:
                parts.pop()
        elif piece and piece != ".":
            parts.append(piece)
    return "/".join(parts)


# =============================================================================
# CONTENT TYPES
# =============================================================================

def add_content_type_override(store: PartStore, part: str, content_type: str) -> None:
    data = store.load(CONTENT_TYPES_PART) or b""
    text = data.decode("utf-8")
    part_name = "/" + part
    if f'PartName="{part_name}"' in text:
        return
    override = f"<Override PartName={quoteattr(part_name)} ContentType={quoteattr(content_type)}/>"
    if "</Types>" not in text:
        raise PackageError(f"{CONTENT_TYPES_PART} is missing or malformed")
    store.store(CONTENT_TYPES_PART, text.replace("</Types>", override + "</Types>").encode("utf-8"))


def remove_content_type_override(store: PartStore, part: str) -> None:
    data = store.load(CONTENT_TYPES_PART)
    if not data:
        return
    text = data.decode("utf-8")
    cleaned = re.sub(rf"<Override\b[^>]*PartName=\"/{re.escape(part)}\"[^>]*/>", "", text)
    if cleaned != text:
        store.store(CONTENT_TYPES_PART, cleaned.encode("utf-8"))


# =============================================================================
# WORKBOOK SHEETS
# =============================================================================

def sheet_entries(store: PartStore) -> List[Tuple[str, str, str]]:
    """Sheets in tab order as (name, relationship id, part path)."""
    data = store.load(WORKBOOK_PART)
    if not data:
        raise PackageError(f"package has no {WORKBOOK_PART}")
    wb_root = ET.fromstring(data)
    rels = {rel.id: rel for rel in parse_relationships(store.load(WORKBOOK_RELS_PART))}

    result: List[Tuple[str, str, str]] = []
    for el in wb_root.iter():
        if not el.tag.endswith("}sheet") and el.tag != "sheet":
            continue
        name = el.get("name")
        r_id = el.get(f"{{{NS['r']}}}id")
        if not name or not r_id or r_id not in rels:
            continue
        result.append((name, r_id, resolve_target(WORKBOOK_PART, rels[r_id].target)))
    return result


def add_sheet_entry(store: PartStore, name: str) -> str:
    """Register a new empty worksheet part and return its path."""
    entries = sheet_entries(store)
    rels = parse_relationships(store.load(WORKBOOK_RELS_PART))

    n = len(entries) + 1
    part = f"xl/worksheets/sheet{n}.xml"
    while part in store:
        n += 1
        part = f"xl/worksheets/sheet{n}.xml"

    r_id = next_relationship_id(rels)
    rels.append(Relationship(id=r_id, type=REL_WORKSHEET, target=f"worksheets/sheet{n}.xml"))
    store.store(WORKBOOK_RELS_PART, serialize_relationships(rels))

    wb_text = store.load(WORKBOOK_PART).decode("utf-8")
    sheet_ids = [int(v) for v in re.findall(r'sheetId="(\d+)"', wb_text)]
    sheet_id = max(sheet_ids, default=0) + 1
    entry = f'<sheet name={quoteattr(name)} sheetId="{sheet_id}" r:id="{r_id}"/>'
    if "</sheets>" in wb_text:
        wb_text = wb_text.replace("</sheets>", entry + "</sheets>", 1)
    elif "<sheets/>" in wb_text:
        wb_text = wb_text.replace("<sheets/>", f"<sheets>{entry}</sheets>", 1)
    else:
        raise PackageError(f"{WORKBOOK_PART} has no sheets element")
    store.store(WORKBOOK_PART, wb_text.encode("utf-8"))

    store.store(part, new_worksheet_xml())
    add_content_type_override(store, part, CT_WORKSHEET)
    return part


# =============================================================================
# SHARED STRINGS
# =============================================================================

class SharedStrings:
    """The shared string table, loaded once and appended to in place."""

    def __init__(self, original: Optional[bytes]) -> None:
        self._original = original or None
        self.texts: List[str] = []
        self._index: Dict[str, int] = {}
        self._added: List[str] = []
        if self._original:
            root = ET.fromstring(self._original)
            for si in root:
                if local_name(si.tag) != "si":
                    continue
                # Phonetic runs (rPh) are not part of the displayed text
                parts = []
                for child in si:
                    name = local_name(child.tag)
                    if name == "t":
                        parts.append(child.text or "")
                    elif name == "r":
                        parts.extend(t.text or "" for t in child if local_name(t.tag) == "t")
                text = "".join(parts)
                self._index.setdefault(text, len(self.texts))
                self.texts.append(text)

    @property
    def dirty(self) -> bool:
        return bool(self._added)

    def index_of(self, text: str) -> int:
        """Get or create a shared string index for a value."""
        if text in self._index:
            return self._index[text]
        index = len(self.texts)
        self.texts.append(text)
        self._index[text] = index
        self._added.append(text)
        return index

    def to_xml(self) -> bytes:
        items = []
        for text in self._added:
            space = ' xml:space="preserve"' if text != text.strip() else ""
            items.append(f"<si><t{space}>{escape(text)}</t></si>")
        count = len(self.texts)
        if self._original:
            xml = self._original.decode("utf-8")
            match = re.search(r"<((?:\w+:)?sst)\b([^>]*?)(/?)>", xml)
            if match is None:
                raise PackageError(f"{SHARED_STRINGS_PART} has no sst root")
            tag, closing = match.group(1), match.group(3)
            attrs = re.sub(r'\s(?:count|uniqueCount)="\d*"', "", match.group(2)).rstrip()
            open_tag = f'<{tag}{attrs} count="{count}" uniqueCount="{count}">'
            new_items = "".join(items)
            if closing:
                return (xml[:match.start()] + open_tag + new_items + f"</{tag}>" + xml[match.end():]).encode("utf-8")
            xml = xml[:match.start()] + open_tag + xml[match.end():]
            end = xml.rfind(f"</{tag}>")
            return (xml[:end] + new_items + xml[end:]).encode("utf-8")
        body = (
            f'<sst xmlns="{NS["main"]}" count="{count}" uniqueCount="{count}">'
            + "".join(items) + "</sst>"
        )
        return XML_DECLARATION + b"\r\n" + body.encode("utf-8")


def ensure_shared_strings_part(store: PartStore) -> None:
    """Wire a new sharedStrings part into the workbook rels and content types."""
    rels = parse_relationships(store.load(WORKBOOK_RELS_PART))
    if not any(rel.type == REL_SHARED_STRINGS for rel in rels):
        rels.append(Relationship(id=next_relationship_id(rels), type=REL_SHARED_STRINGS, target="sharedStrings.xml"))
        store.store(WORKBOOK_RELS_PART, serialize_relationships(rels))
    add_content_type_override(store, SHARED_STRINGS_PART, CT_SHARED_STRINGS)


def shared_strings_part(store: PartStore) -> str:
    for rel in parse_relationships(store.load(WORKBOOK_RELS_PART)):
        if rel.type == REL_SHARED_STRINGS:
            return resolve_target(WORKBOOK_PART, rel.target)
    return SHARED_STRINGS_PART


# =============================================================================
# CALCULATION CHAIN
# =============================================================================

def remove_calc_chain(store: PartStore) -> bool:
    """Drop the calculation chain so the consuming application rebuilds it.

    Its entries address formula cells by absolute reference and go stale
    whenever cells move.
    """
    rels = parse_relationships(store.load(WORKBOOK_RELS_PART))
    kept = [rel for rel in rels if rel.type != REL_CALC_CHAIN]
    found = CALC_CHAIN_PART in store or len(kept) != len(rels)
    if len(kept) != len(rels):
        store.store(WORKBOOK_RELS_PART, serialize_relationships(kept))
    store.delete(CALC_CHAIN_PART)
    remove_content_type_override(store, CALC_CHAIN_PART)
    return found


# =============================================================================
# STYLES
# =============================================================================

def cell_style_count(store: PartStore) -> int:
    """Number of <xf> records in cellXfs, i.e. valid cell style IDs."""
    data = store.load(STYLES_PART)
    if not data:
        return 0
    root = ET.fromstring(data)
    for el in root:
        if el.tag.endswith("cellXfs"):
            return sum(1 for xf in el if xf.tag.endswith("xf"))
    return 0


# =============================================================================
# BLANK PACKAGE
# =============================================================================

_ROOT_RELS = (
    f'<Relationships xmlns="{NS["rel"]}">'
    f'<Relationship Id="rId1" Type="{REL_OFFICE_DOCUMENT}" Target="xl/workbook.xml"/>'
    "</Relationships>"
)

_WORKBOOK = (
    f'<workbook xmlns="{NS["main"]}" xmlns:r="{NS["r"]}">'
    '<bookViews><workbookView/></bookViews>'
    '<sheets><sheet name="Sheet1" sheetId="1" r:id="rId1"/></sheets>'
    "</workbook>"
)

_WORKBOOK_RELS = (
    f'<Relationships xmlns="{NS["rel"]}">'
    f'<Relationship Id="rId1" Type="{REL_WORKSHEET}" Target="worksheets/sheet1.xml"/>'
    f'<Relationship Id="rId2" Type="{REL_STYLES}" Target="styles.xml"/>'
    "</Relationships>"
)

_STYLES = (
    f'<styleSheet xmlns="{NS["main"]}">'
    '<fonts count="1"><font><sz val="11"/><name val="Calibri"/><family val="2"/></font></fonts>'
    '<fills count="2"><fill><patternFill patternType="none"/></fill>'
    '<fill><patternFill patternType="gray125"/></fill></fills>'
    '<borders count="1"><border><left/><right/><top/><bottom/><diagonal/></border></borders>'
    '<cellStyleXfs count="1"><xf numFmtId="0" fontId="0" fillId="0" borderId="0"/></cellStyleXfs>'
    '<cellXfs count="1"><xf numFmtId="0" fontId="0" fillId="0" borderId="0" xfId="0"/></cellXfs>'
    '<cellStyles count="1"><cellStyle name="Normal" xfId="0" builtinId="0"/></cellStyles>'
    "</styleSheet>"
)

_CONTENT_TYPES = (
    f'<Types xmlns="{NS["ct"]}">'
    f'<Default Extension="rels" ContentType="{CT_RELATIONSHIPS}"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    f'<Override PartName="/xl/workbook.xml" ContentType="{CT_WORKBOOK}"/>'
    f'<Override PartName="/xl/worksheets/sheet1.xml" ContentType="{CT_WORKSHEET}"/>'
    f'<Override PartName="/xl/styles.xml" ContentType="{CT_STYLES}"/>'
    "</Types>"
)


def blank_package() -> PartStore:
    """A minimal package with one empty worksheet named Sheet1."""
    def doc(body: str) -> bytes:
        return XML_DECLARATION + b"\r\n" + body.encode("utf-8")

    return PartStore({
        CONTENT_TYPES_PART: doc(_CONTENT_TYPES),
        "_rels/.rels": doc(_ROOT_RELS),
        WORKBOOK_PART: doc(_WORKBOOK),
        WORKBOOK_RELS_PART: doc(_WORKBOOK_RELS),
        STYLES_PART: doc(_STYLES),
        "xl/worksheets/sheet1.xml": new_worksheet_xml(),
    })
