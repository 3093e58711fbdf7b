from fastapi import FastAPI, UploadFile, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Optional
import uvicorn
import os
import sys
import logging
import uuid
from pathlib import Path
from dotenv import load_dotenv

# Add current directory to path to find the compression package
sys.path.insert(0, str(Path(__file__).parent))

from compression.compressor import CompressedImage, compress
from compression.errors import (
    DecodeError,
    InvalidInputError,
    InvalidOptionsError,
    UnsupportedMimeError,
)
from compression.options import CompressOptions

load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Image Compress API")

# Configure CORS
# Format: comma-separated list, e.g., "https://app.example.com,https://www.example.com"
allowed_origins_str = os.getenv("ALLOWED_ORIGINS", "")
if allowed_origins_str:
    allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]
else:
    allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Request-Id"],
    expose_headers=[
        "X-Request-Id",
        "X-Original-Size",
        "X-Compressed-Size",
        "X-Image-Width",
        "X-Image-Height",
    ],
)

# Upload limits
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", 20 * 1024 * 1024))  # 20MB default


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    return response


# Largest data URI text field accepted for a MAX_FILE_SIZE image (base64 inflates by 4/3)
MAX_DATA_URL_LENGTH = int(MAX_FILE_SIZE * 4 / 3) + 1024

OPTION_FIELDS = ("quality", "type", "size", "minWidth", "width", "height", "scale", "orientation")


async def _parse_compress_form(request: Request) -> tuple[Optional[UploadFile], Optional[str], dict]:
    """
    Read the multipart/urlencoded body: a `file` upload or a `data_url` field,
    plus the option fields. Parsed by hand so text fields may be as large as
    MAX_DATA_URL_LENGTH instead of Starlette's 1MB default.
    """
    form = await request.form(max_part_size=MAX_DATA_URL_LENGTH)
    file = form.get("file")
    if not isinstance(file, StarletteUploadFile):
        file = None
    data_url = form.get("data_url")
    if not isinstance(data_url, str):
        data_url = None
    form_options = {}
    for key in OPTION_FIELDS:
        value = form.get(key)
        if isinstance(value, str):
            form_options[key] = value
    return file, data_url, form_options


async def _read_source(file: Optional[UploadFile], data_url: Optional[str]) -> tuple[bytes | str, Optional[str]]:
    """Return (image, mime) from either an upload or a data URI form field."""
    if file is not None:
        file_bytes = await file.read()
        if not file_bytes:
            raise HTTPException(status_code=400, detail="Uploaded file is empty")
        if len(file_bytes) > MAX_FILE_SIZE:
            raise HTTPException(
                status_code=413,
                detail=f"Image too large. Maximum size: {MAX_FILE_SIZE / (1024*1024):.1f}MB"
            )
        # Generic content types carry no information; let the bytes be sniffed.
        content_type = file.content_type
        if not content_type or content_type == "application/octet-stream":
            content_type = None
        return file_bytes, content_type
    if data_url:
        # base64 inflates by 4/3
        if len(data_url) * 0.75 > MAX_FILE_SIZE:
            raise HTTPException(
                status_code=413,
                detail=f"Image too large. Maximum size: {MAX_FILE_SIZE / (1024*1024):.1f}MB"
            )
        return data_url, None
    raise HTTPException(status_code=400, detail="Either file or data_url is required")


async def _run_compress(request: Request) -> CompressedImage:
    try:
        file, data_url, form_options = await _parse_compress_form(request)
    except StarletteHTTPException as e:
        # Starlette reports an oversized form field as a 400
        if "maximum size" in str(e.detail):
            raise HTTPException(status_code=413, detail=str(e.detail))
        raise

    source, mime = await _read_source(file, data_url)
    try:
        options = CompressOptions.from_mapping(form_options)
        result = await compress(source, options, mime=mime)
    except (InvalidInputError, InvalidOptionsError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnsupportedMimeError as e:
        raise HTTPException(status_code=415, detail=str(e))
    except DecodeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"Error compressing image: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to compress image: {str(e)}")

    logger.info(
        f"Compressed image: {result.original_size} -> {result.size} bytes "
        f"({result.mime}, compressed={result.compressed})"
    )
    return result


def _result_headers(result: CompressedImage) -> dict:
    headers = {
        "X-Original-Size": str(result.original_size),
        "X-Compressed-Size": str(result.size),
    }
    if result.width is not None and result.height is not None:
        headers["X-Image-Width"] = str(result.width)
        headers["X-Image-Height"] = str(result.height)
    return headers


@app.get("/")
async def root():
    return {"message": "Image Compress API is running"}


@app.post("/api/compress")
async def compress_image(request: Request):
    """
    Compress an uploaded image (`file`) or a base64 data URI (`data_url`) and
    return the raw compressed bytes. Option fields: quality, type, size (KB),
    minWidth, width, height, scale, orientation. The original is returned
    when compression would not make it smaller.
    """
    result = await _run_compress(request)
    return Response(content=result.data, media_type=result.mime, headers=_result_headers(result))


@app.post("/api/compress/data-url")
async def compress_image_to_data_url(request: Request):
    """Same as /api/compress but answers with a JSON body holding a data URI."""
    result = await _run_compress(request)
    return {
        "data_url": result.to_data_url(),
        "mime": result.mime,
        "size": result.size,
        "original_size": result.original_size,
        "width": result.width,
        "height": result.height,
        "compressed": result.compressed,
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "").lower() in {"1", "true", "yes", "on"},
    )
