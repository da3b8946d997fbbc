# main.py
from fastapi import FastAPI, UploadFile, File, Form, HTTPException
from fastapi.responses import StreamingResponse
import io
import json
import logging
import os
from typing import Any, Dict, Optional

from field_translate import FieldTypeRegistry
from pdf_convert import (
    GENERIC_FAILURE,
    ConversionOptions,
    ConversionResult,
    TemplateConversionError,
    TemplateInputError,
    convert_template,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="DocuSign Template to Fillable PDF")

JSON_CONTENT_TYPES = ("application/json", "text/json", "text/plain", "application/octet-stream")


async def _read_template(template: UploadFile) -> Dict[str, Any]:
    name = (template.filename or "").lower()
    if template.content_type not in JSON_CONTENT_TYPES and not name.endswith(".json"):
        raise HTTPException(status_code=400, detail="File must be a DocuSign template JSON export")
    raw = await template.read()
    try:
        return json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid template JSON: {e}")


def _parse_options(options_json: Optional[str]) -> ConversionOptions:
    if not options_json:
        return ConversionOptions()
    try:
        raw = json.loads(options_json)
        if not isinstance(raw, dict):
            raise ValueError("options_json must be a JSON object")
        return ConversionOptions.coerce(raw)
    except (ValueError, TemplateInputError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid options_json: {e}")


async def _convert(template: UploadFile, options_json: Optional[str]) -> ConversionResult:
    data = await _read_template(template)
    opts = _parse_options(options_json)
    try:
        return convert_template(data, opts)
    except TemplateInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TemplateConversionError:
        raise HTTPException(status_code=500, detail=GENERIC_FAILURE)
    except Exception:
        logger.exception("Unexpected conversion failure")
        raise HTTPException(status_code=500, detail=GENERIC_FAILURE)


@app.post("/convert")
async def convert(
    template: UploadFile = File(...),
    options_json: Optional[str] = Form(None)
):
    """
    Receive a DocuSign template export (JSON with base64 documents) and an
    optional JSON string of conversion options, e.g.
    {"includeSystemTabs": false, "showFieldNames": true, "maskHeaderHeight": 24}
    Returns the merged, fillable PDF for download.
    """
    result = await _convert(template, options_json)

    base = os.path.splitext(os.path.basename(template.filename or "template"))[0] or "template"
    headers = {
        "Content-Disposition": f'attachment; filename="{base}_fillable.pdf"',
        "X-Field-Count": str(result.counters.total()),
    }
    return StreamingResponse(io.BytesIO(result.pdf_bytes), media_type="application/pdf", headers=headers)


@app.post("/convert/report")
async def convert_report(
    template: UploadFile = File(...),
    options_json: Optional[str] = Form(None)
):
    """Same conversion, but return what happened to every tab instead of the PDF."""
    result = await _convert(template, options_json)
    return {
        "success": True,
        "pages": result.page_count,
        "documents": [
            {"documentId": m.document_id, "startPage": m.start_page + 1,
             "endPage": m.end_page + 1, "pageCount": m.page_count}
            for m in result.page_mappings
        ],
        "counters": result.counters.as_dict(),
        "outcomes": result.outcomes(),
        "tabs": [t.as_row() for t in result.tabs],
    }


@app.get("/field-types")
async def field_types():
    return {"fieldTypes": FieldTypeRegistry().get_all_configs()}


# Simple root
@app.get("/")
async def root():
    return {"message": "DocuSign Template to Fillable PDF API. POST a template JSON to /convert or /convert/report."}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
