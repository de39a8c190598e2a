"""API routes for XLSX worksheet access.

- Upload XLSX -> open as a Workbook held in memory
- Read sheets column by column or row by row
- Change column and row properties
- Insert and remove columns and rows
- Export back to XLSX
"""
from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel

from services.engine_config import get_engine_settings
from services.sheet_engine import SheetNotExistError, SpreadsheetError, Workbook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/spreadsheets", tags=["spreadsheets"])

# In-memory storage for open workbooks
_active_workbooks: dict[str, Workbook] = {}
_workbook_names: dict[str, str] = {}

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# =============================================================================
# MODELS
# =============================================================================

class ColumnUpdateRequest(BaseModel):
    """Column properties to change. Unset fields are left alone."""
    width: float | None = None
    visible: bool | None = None
    outline_level: int | None = None
    style: int | None = None


class RowUpdateRequest(BaseModel):
    """Row properties to change. Unset fields are left alone."""
    height: float | None = None
    visible: bool | None = None
    outline_level: int | None = None


# =============================================================================
# HELPERS
# =============================================================================

def _get_workbook(spreadsheet_id: str) -> Workbook:
    if spreadsheet_id not in _active_workbooks:
        raise HTTPException(404, "Spreadsheet not found")
    return _active_workbooks[spreadsheet_id]


def _http_error(e: SpreadsheetError) -> HTTPException:
    status = 404 if isinstance(e, SheetNotExistError) else 400
    return HTTPException(status, e.to_dict())


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/", response_model=dict)
async def upload_spreadsheet(file: UploadFile = File(...)):
    """Upload an XLSX file and open it."""
    if not file.filename:
        raise HTTPException(400, "No filename provided")

    if not file.filename.lower().endswith(".xlsx"):
        raise HTTPException(400, "Only .xlsx files are supported")

    settings = get_engine_settings()
    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(413, f"File exceeds {settings.max_upload_bytes} bytes")

    spreadsheet_id = f"{uuid.uuid4().hex[:8]}_{file.filename}"
    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    file_path = settings.upload_dir / spreadsheet_id
    file_path.write_bytes(content)

    try:
        workbook = Workbook.open(content)
    except SpreadsheetError as e:
        # Clean up on error
        if file_path.exists():
            file_path.unlink()
        raise _http_error(e) from e

    _active_workbooks[spreadsheet_id] = workbook
    _workbook_names[spreadsheet_id] = file.filename
    logger.info(f"[UPLOAD] {spreadsheet_id}: {len(content)} bytes")

    return {"id": spreadsheet_id, "filename": file.filename, "sheets": workbook.sheet_names}


@router.get("/{spreadsheet_id}/sheets")
async def list_sheets(spreadsheet_id: str):
    """List sheets with their populated bounding box."""
    workbook = _get_workbook(spreadsheet_id)
    try:
        sheets = []
        for name in workbook.sheet_names:
            dimension = workbook.get_dimension(name)
            sheets.append({"name": name, **dimension.model_dump()})
    except SpreadsheetError as e:
        raise _http_error(e) from e
    return {"sheets": sheets}


@router.get("/{spreadsheet_id}/sheets/{sheet}/rows")
async def get_rows(spreadsheet_id: str, sheet: str):
    workbook = _get_workbook(spreadsheet_id)
    try:
        return {"sheet": sheet, "rows": workbook.get_rows(sheet)}
    except SpreadsheetError as e:
        raise _http_error(e) from e


@router.get("/{spreadsheet_id}/sheets/{sheet}/cols")
async def get_cols(spreadsheet_id: str, sheet: str):
    workbook = _get_workbook(spreadsheet_id)
    try:
        return {"sheet": sheet, "cols": workbook.get_cols(sheet)}
    except SpreadsheetError as e:
        raise _http_error(e) from e


@router.get("/{spreadsheet_id}/sheets/{sheet}/columns/{col}")
async def get_column(spreadsheet_id: str, sheet: str, col: str):
    """Read the properties of one column."""
    workbook = _get_workbook(spreadsheet_id)
    try:
        return {
            "column": col,
            "width": workbook.get_col_width(sheet, col),
            "visible": workbook.get_col_visible(sheet, col),
            "outline_level": workbook.get_col_outline_level(sheet, col),
            "style": workbook.get_col_style(sheet, col),
        }
    except SpreadsheetError as e:
        raise _http_error(e) from e


@router.put("/{spreadsheet_id}/sheets/{sheet}/columns/{columns}")
async def update_columns(spreadsheet_id: str, sheet: str, columns: str, payload: ColumnUpdateRequest):
    """Change properties of a column or a range such as "F:V".

    Changes are applied in field order and are not rolled back if a later
    one fails.
    """
    workbook = _get_workbook(spreadsheet_id)
    try:
        if payload.width is not None:
            workbook.set_col_width(sheet, columns, None, payload.width)
        if payload.visible is not None:
            workbook.set_col_visible(sheet, columns, payload.visible)
        if payload.outline_level is not None:
            workbook.set_col_outline_level(sheet, columns, payload.outline_level)
        if payload.style is not None:
            workbook.set_col_style(sheet, columns, payload.style)
    except SpreadsheetError as e:
        raise _http_error(e) from e
    return {"success": True, "columns": columns}


@router.put("/{spreadsheet_id}/sheets/{sheet}/rows/{row}")
async def update_row(spreadsheet_id: str, sheet: str, row: int, payload: RowUpdateRequest):
    workbook = _get_workbook(spreadsheet_id)
    try:
        if payload.height is not None:
            workbook.set_row_height(sheet, row, payload.height)
        if payload.visible is not None:
            workbook.set_row_visible(sheet, row, payload.visible)
        if payload.outline_level is not None:
            workbook.set_row_outline_level(sheet, row, payload.outline_level)
        return {
            "success": True,
            "row": row,
            "height": workbook.get_row_height(sheet, row),
            "visible": workbook.get_row_visible(sheet, row),
            "outline_level": workbook.get_row_outline_level(sheet, row),
        }
    except SpreadsheetError as e:
        raise _http_error(e) from e


@router.post("/{spreadsheet_id}/sheets/{sheet}/columns/{col}/insert")
async def insert_column(spreadsheet_id: str, sheet: str, col: str):
    workbook = _get_workbook(spreadsheet_id)
    try:
        workbook.insert_col(sheet, col)
    except SpreadsheetError as e:
        raise _http_error(e) from e
    return {"success": True}


@router.post("/{spreadsheet_id}/sheets/{sheet}/columns/{col}/remove")
async def remove_column(spreadsheet_id: str, sheet: str, col: str):
    workbook = _get_workbook(spreadsheet_id)
    try:
        workbook.remove_col(sheet, col)
    except SpreadsheetError as e:
        raise _http_error(e) from e
    return {"success": True}


@router.post("/{spreadsheet_id}/sheets/{sheet}/rows/{row}/insert")
async def insert_row(spreadsheet_id: str, sheet: str, row: int):
    workbook = _get_workbook(spreadsheet_id)
    try:
        workbook.insert_row(sheet, row)
    except SpreadsheetError as e:
        raise _http_error(e) from e
    return {"success": True}


@router.post("/{spreadsheet_id}/sheets/{sheet}/rows/{row}/remove")
async def remove_row(spreadsheet_id: str, sheet: str, row: int):
    workbook = _get_workbook(spreadsheet_id)
    try:
        workbook.remove_row(sheet, row)
    except SpreadsheetError as e:
        raise _http_error(e) from e
    return {"success": True}


@router.post("/{spreadsheet_id}/export")
async def export_spreadsheet(spreadsheet_id: str):
    """Export the workbook, with all changes, as an XLSX file."""
    workbook = _get_workbook(spreadsheet_id)

    settings = get_engine_settings()
    settings.output_dir.mkdir(parents=True, exist_ok=True)
    output_filename = _workbook_names[spreadsheet_id]
    if output_filename.lower().endswith(".xlsx"):
        output_filename = output_filename[:-5]
    output_filename += "_copy.xlsx"
    output_path = settings.output_dir / f"{spreadsheet_id.split('_', 1)[0]}_{output_filename}"

    try:
        workbook.save(output_path)
    except SpreadsheetError as e:
        raise _http_error(e) from e
    logger.info(f"[EXPORT] {spreadsheet_id} -> {output_path}")

    return FileResponse(
        path=str(output_path),
        filename=output_filename,
        media_type=XLSX_MEDIA_TYPE,
    )
