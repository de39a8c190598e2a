"""Worksheet XML <-> Worksheet model.

Parsing keeps the original root tag and every unmodelled child element as
raw XML, so serializing an unchanged worksheet loses nothing but
insignificant whitespace.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple
from xml.etree import ElementTree as ET

from .coordinates import (
    TOTAL_ROWS,
    cell_name_to_coordinates,
    column_number_to_name,
    coordinates_to_range_ref,
)
from .errors import InvalidRowNumberError
from .schemas import (
    AutoFilter,
    CellXML,
    ColumnInfo,
    Hyperlink,
    MergedCellRange,
    RawElement,
    RowXML,
    SheetFormat,
    Worksheet,
)


# =============================================================================
# NAMESPACES
# =============================================================================

NS = {
    "main": "http://schemas.openxmlformats.org/spreadsheetml/2006/main",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
    "mc": "http://schemas.openxmlformats.org/markup-compatibility/2006",
    "x14": "http://schemas.microsoft.com/office/spreadsheetml/2009/9/main",
    "x14ac": "http://schemas.microsoft.com/office/spreadsheetml/2009/9/ac",
    "xr": "http://schemas.microsoft.com/office/spreadsheetml/2014/revision",
    "xr2": "http://schemas.microsoft.com/office/spreadsheetml/2015/revision2",
    "xr3": "http://schemas.microsoft.com/office/spreadsheetml/2016/revision3",
    "rel": "http://schemas.openxmlformats.org/package/2006/relationships",
    "ct": "http://schemas.openxmlformats.org/package/2006/content-types",
}

# Register namespaces
for prefix, uri in NS.items():
    if prefix in ("rel", "ct"):
        continue
    ET.register_namespace(prefix if prefix != "main" else "", uri)

XML_DECLARATION = b'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'

DEFAULT_ROOT_OPEN = (
    f'<worksheet xmlns="{NS["main"]}" xmlns:r="{NS["r"]}">'
)

# Child order mandated by CT_Worksheet
WORKSHEET_CHILD_ORDER = [
    "sheetPr", "dimension", "sheetViews", "sheetFormatPr", "cols", "sheetData",
    "sheetCalcPr", "sheetProtection", "protectedRanges", "scenarios",
    "autoFilter", "sortState", "dataConsolidate", "customSheetViews",
    "mergeCells", "phoneticPr", "conditionalFormatting", "dataValidations",
    "hyperlinks", "printOptions", "pageMargins", "pageSetup", "headerFooter",
    "rowBreaks", "colBreaks", "customProperties", "cellWatches",
    "ignoredErrors", "smartTags", "drawing", "legacyDrawing",
    "legacyDrawingHF", "drawingHF", "picture", "oleObjects", "controls",
    "webPublishItems", "tableParts", "extLst",
]
_RANK = {tag: i for i, tag in enumerate(WORKSHEET_CHILD_ORDER)}


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def _bool_attr(el: ET.Element, name: str) -> bool:
    return el.get(name) in ("1", "true")


def _int_attr(el: ET.Element, name: str) -> Optional[int]:
    value = el.get(name)
    return int(value) if value not in (None, "") else None


def _float_attr(el: ET.Element, name: str) -> Optional[float]:
    value = el.get(name)
    return float(value) if value not in (None, "") else None


def _inner_xml(element: ET.Element) -> str:
    """Serialize an element's children, dropping redundant default-namespace declarations."""
    return "".join(element_xml(child) for child in element)


def element_xml(element: ET.Element) -> str:
    text = ET.tostring(element, encoding="unicode")
    # These are already declared on the root element
    text = text.replace(f' xmlns="{NS["main"]}"', "")
    text = text.replace(f" xmlns='{NS['main']}'", "")
    return text


def _extract_root_open(xml_bytes: bytes) -> Optional[str]:
    """Extract the original root element opening tag.

    ElementTree drops namespace declarations it does not see used, but
    Excel requires them (e.g. for mc:Ignorable), so the tag is copied as-is.
    """
    text = xml_bytes.decode("utf-8", errors="replace")
    text = re.sub(r"^\ufeff?\s*(<\?xml[^?]*\?>)?\s*", "", text)
    while text.startswith("<!--"):
        end = text.find("-->")
        text = text[end + 3:].lstrip() if end >= 0 else ""
    match = re.match(r"<([A-Za-z_][\w.\-]*)[^>]*?(/?)>", text)
    if not match or match.group(1) != "worksheet":
        return None
    tag = match.group(0)
    if match.group(2):
        tag = tag[:-2].rstrip() + ">"
    return tag


# =============================================================================
# PARSING
# =============================================================================

def _parse_cell(cell_el: ET.Element) -> CellXML:
    cell = CellXML(
        ref=cell_el.get("r"),
        style=_int_attr(cell_el, "s"),
        type=cell_el.get("t"),
        attrs={k: v for k, v in cell_el.attrib.items() if k not in ("r", "s", "t")},
    )
    for child in cell_el:
        name = local_name(child.tag)
        if name == "v":
            cell.value = child.text or ""
        elif name == "f":
            cell.formula = element_xml(child)
        elif name == "is":
            cell.inline_string = element_xml(child)
    return cell


def _parse_sheet_data(sheet_data_el: ET.Element) -> List[RowXML]:
    rows: List[RowXML] = []
    row_num = 0
    for row_el in sheet_data_el:
        if local_name(row_el.tag) != "row":
            continue
        row_num += 1
        r = row_el.get("r")
        if r is not None:
            if not r.isdigit() or not 1 <= int(r) <= TOTAL_ROWS:
                raise InvalidRowNumberError(r)
            row_num = int(r)
        row = RowXML(
            r=row_num,
            spans=row_el.get("spans"),
            style=_int_attr(row_el, "s"),
            custom_format=_bool_attr(row_el, "customFormat"),
            height=_float_attr(row_el, "ht"),
            custom_height=_bool_attr(row_el, "customHeight"),
            hidden=_bool_attr(row_el, "hidden"),
            outline_level=_int_attr(row_el, "outlineLevel") or 0,
            collapsed=_bool_attr(row_el, "collapsed"),
            attrs={
                k: v for k, v in row_el.attrib.items()
                if k not in ("r", "spans", "s", "customFormat", "ht", "customHeight",
                             "hidden", "outlineLevel", "collapsed")
            },
        )
        col_num = 0
        for cell_el in row_el:
            if local_name(cell_el.tag) != "c":
                continue
            cell = _parse_cell(cell_el)
            if cell.ref:
                col_num, _ = cell_name_to_coordinates(cell.ref)
            else:
                col_num += 1
                cell.ref = f"{column_number_to_name(col_num)}{row_num}"
            row.cells.append(cell)
        rows.append(row)
    return rows


def _parse_cols(cols_el: ET.Element) -> List[ColumnInfo]:
    cols: List[ColumnInfo] = []
    for col in cols_el:
        if local_name(col.tag) != "col":
            continue
        cols.append(ColumnInfo(
            min=int(col.get("min", 1)),
            max=int(col.get("max", col.get("min", 1))),
            width=_float_attr(col, "width"),
            style=_int_attr(col, "style"),
            hidden=_bool_attr(col, "hidden"),
            best_fit=_bool_attr(col, "bestFit"),
            custom_width=_bool_attr(col, "customWidth"),
            outline_level=_int_attr(col, "outlineLevel") or 0,
            collapsed=_bool_attr(col, "collapsed"),
            phonetic=_bool_attr(col, "phonetic"),
        ))
    return cols


def _parse_sheet_format(el: ET.Element) -> SheetFormat:
    known = ("baseColWidth", "defaultColWidth", "defaultRowHeight", "customHeight",
             "zeroHeight", "outlineLevelRow", "outlineLevelCol")
    return SheetFormat(
        base_col_width=_int_attr(el, "baseColWidth"),
        default_col_width=_float_attr(el, "defaultColWidth"),
        default_row_height=_float_attr(el, "defaultRowHeight") or 15.0,
        custom_height=_bool_attr(el, "customHeight"),
        zero_height=_bool_attr(el, "zeroHeight"),
        outline_level_row=_int_attr(el, "outlineLevelRow") or 0,
        outline_level_col=_int_attr(el, "outlineLevelCol") or 0,
        attrs={k: v for k, v in el.attrib.items() if k not in known},
    )


def parse_worksheet(xml_bytes: Optional[bytes]) -> Worksheet:
    """Parse worksheet XML into a Worksheet. Empty input gives an empty sheet."""
    if not xml_bytes or not xml_bytes.strip():
        return Worksheet()

    root = ET.fromstring(xml_bytes)
    ws = Worksheet(root_open=_extract_root_open(xml_bytes))
    rank = 0

    for child in root:
        name = local_name(child.tag)
        rank = _RANK.get(name, rank)
        if name == "dimension":
            ws.dimension = child.get("ref")
        elif name == "sheetFormatPr":
            ws.sheet_format = _parse_sheet_format(child)
        elif name == "cols":
            ws.cols.extend(_parse_cols(child))
        elif name == "sheetData":
            ws.sheet_data = _parse_sheet_data(child)
        elif name == "mergeCells":
            ws.merge_cells = [
                MergedCellRange(ref=m.get("ref"))
                for m in child if local_name(m.tag) == "mergeCell" and m.get("ref")
            ]
        elif name == "hyperlinks":
            for link in child:
                if local_name(link.tag) != "hyperlink" or not link.get("ref"):
                    continue
                ws.hyperlinks.append(Hyperlink(
                    ref=link.get("ref"),
                    r_id=link.get(f"{{{NS['r']}}}id"),
                    location=link.get("location"),
                    display=link.get("display"),
                    tooltip=link.get("tooltip"),
                ))
        elif name == "autoFilter" and child.get("ref"):
            ws.auto_filter = AutoFilter(ref=child.get("ref"), inner_xml=_inner_xml(child))
        else:
            ws.extra.append(RawElement(tag=name, xml=element_xml(child), rank=rank))

    return ws


# =============================================================================
# SERIALIZATION
# =============================================================================

def _fmt_float(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(float(value))


def _set(el: ET.Element, name: str, value) -> None:
    if value is None or value is False:
        return
    if value is True:
        el.set(name, "1")
    elif isinstance(value, float):
        el.set(name, _fmt_float(value))
    else:
        el.set(name, str(value))


def _cell_xml(cell: CellXML) -> str:
    el = ET.Element("c")
    _set(el, "r", cell.ref)
    _set(el, "s", cell.style)
    _set(el, "t", cell.type)
    for k, v in cell.attrs.items():
        el.set(k, v)
    parts = [cell.formula or ""]
    if cell.value is not None:
        v = ET.Element("v")
        v.text = cell.value
        parts.append(ET.tostring(v, encoding="unicode"))
    parts.append(cell.inline_string or "")
    inner = "".join(parts)
    head = ET.tostring(el, encoding="unicode")
    if not inner:
        return head
    return head[:-2].rstrip() + ">" + inner + "</c>"


def _row_xml(row: RowXML) -> str:
    el = ET.Element("row")
    _set(el, "r", row.r)
    _set(el, "spans", row.spans)
    _set(el, "s", row.style)
    _set(el, "customFormat", row.custom_format)
    _set(el, "ht", row.height)
    _set(el, "hidden", row.hidden)
    _set(el, "customHeight", row.custom_height)
    _set(el, "outlineLevel", row.outline_level or None)
    _set(el, "collapsed", row.collapsed)
    for k, v in row.attrs.items():
        el.set(k, v)
    head = ET.tostring(el, encoding="unicode")
    if not row.cells:
        return head
    return head[:-2].rstrip() + ">" + "".join(_cell_xml(c) for c in row.cells) + "</row>"


def _cols_xml(cols: List[ColumnInfo]) -> str:
    root = ET.Element("cols")
    for info in cols:
        col = ET.SubElement(root, "col")
        _set(col, "min", info.min)
        _set(col, "max", info.max)
        _set(col, "width", info.width)
        _set(col, "style", info.style)
        _set(col, "hidden", info.hidden)
        _set(col, "bestFit", info.best_fit)
        _set(col, "customWidth", info.custom_width)
        _set(col, "phonetic", info.phonetic)
        _set(col, "outlineLevel", info.outline_level or None)
        _set(col, "collapsed", info.collapsed)
    return ET.tostring(root, encoding="unicode")


def _sheet_format_xml(fmt: SheetFormat) -> str:
    el = ET.Element("sheetFormatPr")
    _set(el, "baseColWidth", fmt.base_col_width)
    _set(el, "defaultColWidth", fmt.default_col_width)
    _set(el, "defaultRowHeight", float(fmt.default_row_height))
    _set(el, "customHeight", fmt.custom_height)
    _set(el, "zeroHeight", fmt.zero_height)
    _set(el, "outlineLevelRow", fmt.outline_level_row or None)
    _set(el, "outlineLevelCol", fmt.outline_level_col or None)
    for k, v in fmt.attrs.items():
        el.set(k, v)
    return ET.tostring(el, encoding="unicode")


def _hyperlinks_xml(links: List[Hyperlink]) -> str:
    root = ET.Element("hyperlinks")
    for link in links:
        el = ET.SubElement(root, "hyperlink")
        _set(el, "ref", link.ref)
        if link.r_id:
            el.set(f"{{{NS['r']}}}id", link.r_id)
        _set(el, "location", link.location)
        _set(el, "tooltip", link.tooltip)
        _set(el, "display", link.display)
    return ET.tostring(root, encoding="unicode")


def compute_dimension_ref(ws: Worksheet) -> Optional[str]:
    """Bounding box of the parsed cells, or None for an empty sheet."""
    bounds: Optional[Tuple[int, int, int, int]] = None
    for row in ws.sheet_data:
        for cell in row.cells:
            col, r = cell_name_to_coordinates(cell.ref)
            if bounds is None:
                bounds = (col, r, col, r)
            else:
                bounds = (min(bounds[0], col), min(bounds[1], r),
                          max(bounds[2], col), max(bounds[3], r))
    if bounds is None:
        return None
    if bounds[:2] == bounds[2:]:
        return f"{column_number_to_name(bounds[0])}{bounds[1]}"
    return coordinates_to_range_ref(*bounds)


def serialize_worksheet(ws: Worksheet) -> bytes:
    """Serialize a Worksheet back to XML bytes.

    The dimension is recomputed from the cells so the stored hint always
    matches the data.
    """
    ws.dimension = compute_dimension_ref(ws) or "A1"

    children: List[Tuple[int, int, str]] = []

    def add(tag: str, xml: str) -> None:
        children.append((_RANK[tag], len(children), xml))

    add("dimension", f'<dimension ref="{ws.dimension}"/>')
    if ws.sheet_format is not None:
        add("sheetFormatPr", _sheet_format_xml(ws.sheet_format))
    if ws.cols:
        add("cols", _cols_xml(sorted(ws.cols, key=lambda c: c.min)))
    rows = sorted(ws.sheet_data, key=lambda r: r.r or 0)
    add("sheetData", "<sheetData>" + "".join(_row_xml(r) for r in rows) + "</sheetData>")
    if ws.auto_filter is not None:
        el = ET.Element("autoFilter", ref=ws.auto_filter.ref)
        head = ET.tostring(el, encoding="unicode")
        if ws.auto_filter.inner_xml:
            head = head[:-2].rstrip() + ">" + ws.auto_filter.inner_xml + "</autoFilter>"
        add("autoFilter", head)
    if ws.merge_cells:
        merges = "".join(f'<mergeCell ref="{m.ref}"/>' for m in ws.merge_cells)
        add("mergeCells", f'<mergeCells count="{len(ws.merge_cells)}">{merges}</mergeCells>')
    if ws.hyperlinks:
        add("hyperlinks", _hyperlinks_xml(ws.hyperlinks))
    for raw in ws.extra:
        children.append((raw.rank, len(children), raw.xml))

    children.sort(key=lambda item: (item[0], item[1]))
    root_open = ws.root_open or DEFAULT_ROOT_OPEN
    body = "".join(xml for _, _, xml in children)
    return XML_DECLARATION + b"\r\n" + (root_open + body + "</worksheet>").encode("utf-8")


def new_worksheet_xml() -> bytes:
    return serialize_worksheet(Worksheet(sheet_format=SheetFormat()))
