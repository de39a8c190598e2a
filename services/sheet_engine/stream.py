"""Incremental token cursor over worksheet XML.

The cursor feeds an in-memory worksheet buffer to ``XMLPullParser`` one
chunk at a time and hands back one completed <row> element at a time.
Each row is detached from the partial tree once the caller is done with
it, so memory stays bounded by the largest row rather than the sheet.
"""

from __future__ import annotations

from typing import Iterator, List, Optional, Sequence, Tuple
from xml.etree import ElementTree as ET

from .coordinates import TOTAL_ROWS, cell_name_to_coordinates
from .errors import InvalidRowNumberError, PackageError

DEFAULT_CHUNK_SIZE = 1 << 16


def local_name(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


class TokenCursor:
    """Pull-based decoder over a byte buffer.

    Not safe for concurrent use. ``events()`` and ``next_row()`` share one
    position, so a cursor can be advanced across many calls.
    """

    def __init__(self, data: Optional[bytes], chunk_size: Optional[int] = None) -> None:
        self._data = memoryview(data or b"")
        self._pos = 0
        self._chunk_size = chunk_size or DEFAULT_CHUNK_SIZE
        self._parser = ET.XMLPullParser(events=("start", "end"))
        self._closed = False
        self._stack: List[ET.Element] = []
        self._row_num = 0
        self._event_iter: Optional[Iterator[Tuple[str, ET.Element]]] = None

    @property
    def position(self) -> int:
        """Bytes of the buffer handed to the parser so far."""
        return self._pos

    def _pull(self) -> Iterator[Tuple[str, ET.Element]]:
        while True:
            for event, element in self._parser.read_events():
                if event == "start":
                    self._stack.append(element)
                else:
                    self._stack.pop()
                yield event, element
            if self._closed:
                return
            if self._pos >= len(self._data):
                try:
                    self._parser.close()
                except ET.ParseError as e:
                    raise PackageError(f"malformed worksheet XML: {e}") from e
                self._closed = True
                continue
            end = self._pos + self._chunk_size
            try:
                self._parser.feed(bytes(self._data[self._pos:end]))
            except ET.ParseError as e:
                raise PackageError(f"malformed worksheet XML: {e}") from e
            self._pos = min(end, len(self._data))

    def events(self) -> Iterator[Tuple[str, ET.Element]]:
        if not self._data:
            return iter(())
        if self._event_iter is None:
            self._event_iter = self._pull()
        return self._event_iter

    def next_row(self) -> Optional[Tuple[int, ET.Element]]:
        """Advance to the next complete <row> and return (row number, element).

        Rows without an ``r`` attribute are numbered after the previous row.
        The element returned last is released on the following call.
        """
        for event, element in self.events():
            name = local_name(element.tag)
            if event == "start" and name == "row":
                self._row_num += 1
                r = element.get("r")
                if r is not None:
                    if not r.isdigit() or not 1 <= int(r) <= TOTAL_ROWS:
                        raise InvalidRowNumberError(r)
                    self._row_num = int(r)
            elif event == "end" and name == "row":
                self._release(element)
                return self._row_num, element
        return None

    def _release(self, element: ET.Element) -> None:
        if self._stack:
            parent = self._stack[-1]
            if len(parent) and parent[0] is element:
                del parent[0]
            elif element in list(parent):
                parent.remove(element)

    def rows(self) -> Iterator[Tuple[int, ET.Element]]:
        while True:
            item = self.next_row()
            if item is None:
                return
            yield item


# =============================================================================
# CELL DECODING
# =============================================================================

def row_cells(row_el: ET.Element, row_num: int) -> List[Tuple[int, ET.Element]]:
    """Cells of a row as (column number, <c> element), in document order.

    Cells without an ``r`` attribute take the column after the previous cell.
    """
    cells: List[Tuple[int, ET.Element]] = []
    col = 0
    for cell_el in row_el:
        if local_name(cell_el.tag) != "c":
            continue
        ref = cell_el.get("r")
        if ref is not None:
            col, _ = cell_name_to_coordinates(ref)
        else:
            col += 1
        cells.append((col, cell_el))
    return cells


def _text_of(element: Optional[ET.Element]) -> str:
    if element is None:
        return ""
    parts = []
    for el in element.iter():
        if local_name(el.tag) == "t" and el.text:
            parts.append(el.text)
    return "".join(parts)


def resolve_cell_text(
    cell_type: Optional[str],
    raw_value: Optional[str],
    inline_text: str,
    shared_strings: Sequence[str],
) -> str:
    """Map a stored cell to the string the iterators return."""
    if cell_type == "inlineStr":
        return inline_text
    if raw_value is None:
        return ""
    if cell_type == "s":
        try:
            index = int(raw_value)
        except ValueError:
            return raw_value
        if 0 <= index < len(shared_strings):
            return shared_strings[index]
        return raw_value
    if cell_type == "b":
        return "TRUE" if raw_value.strip() in ("1", "true") else "FALSE"
    return raw_value


def cell_text(cell_el: ET.Element, shared_strings: Sequence[str]) -> str:
    raw_value = None
    inline = None
    for child in cell_el:
        name = local_name(child.tag)
        if name == "v":
            raw_value = child.text or ""
        elif name == "is":
            inline = child
    return resolve_cell_text(cell_el.get("t"), raw_value, _text_of(inline), shared_strings)


def inline_string_text(inline_xml: Optional[str]) -> str:
    if not inline_xml:
        return ""
    return _text_of(ET.fromstring(inline_xml))
