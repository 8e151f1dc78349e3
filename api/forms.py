"""
Decoding of book payloads.

Book creation and update accept either a multipart form, carrying the book
as a JSON string in the ``book`` field (or as flat form fields) plus an
optional ``image`` file, or a plain JSON body.
"""

import json
from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from starlette.datastructures import UploadFile

from catalog.exceptions import MalformedPayloadError
from catalog.service import ImageUpload

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def decode_book_json(raw: str) -> Dict[str, Any]:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(detail=f"book field is not valid JSON: {e}")
    if not isinstance(payload, dict):
        raise MalformedPayloadError(detail="book field must be a JSON object")
    return payload


async def read_image(value) -> Optional[ImageUpload]:
    # Browsers send an empty part when no file was chosen
    if not isinstance(value, UploadFile) or not value.filename:
        return None
    data = await value.read()
    return ImageUpload(data=data, content_type=value.content_type, filename=value.filename)


async def read_book_payload(request: Request) -> Tuple[Dict[str, Any], Optional[ImageUpload]]:
    """
    Extract the book fields and the optional cover from a request.

    Returns:
        Tuple of (book fields, uploaded image or None)

    Raises:
        MalformedPayloadError: body cannot be decoded
    """
    content_type = request.headers.get("content-type", "")

    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        image = await read_image(form.get("image"))

        raw_book = form.get("book")
        if isinstance(raw_book, str):
            return decode_book_json(raw_book), image

        payload = {
            key: value for key, value in form.multi_items()
            if key not in ("image", "book") and isinstance(value, str)
        }
        return payload, image

    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError as e:
            raise MalformedPayloadError(detail=f"body is not valid JSON: {e}")
        if not isinstance(payload, dict):
            raise MalformedPayloadError(detail="body must be a JSON object")
        return payload, None

    raise MalformedPayloadError(detail=f"unsupported content type: {content_type or 'none'}")
