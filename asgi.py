"""
asgi.py -- Application assembly for Skillink.

This is the ONLY file that imports from both api/ and web/. It joins the two
independent layers into a single ASGI app without coupling them to each other.
api/main.py knows nothing about web/; web/routes.py knows nothing about api/.

Run with:  uvicorn asgi:app --reload
"""

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.main import app, http_exception_handler
from web.routes import not_found_page
from web.routes import router as web_router

app.include_router(web_router, tags=["Web UI"])


@app.exception_handler(StarletteHTTPException)
async def html_aware_http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Unknown pages outside /api get the HTML 404; everything else keeps the JSON envelope."""
    if exc.status_code == 404 and not request.url.path.startswith("/api/"):
        return await run_in_threadpool(not_found_page, request)
    return await http_exception_handler(request, exc)
