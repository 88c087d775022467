"""
asgi.py -- Application assembly for Foundry Admin.

This is the ONLY file that imports from both api/ and web/. It joins the two
independent layers into a single ASGI app without coupling them to each other.
api/main.py knows nothing about web/; web/ knows nothing about api/.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from web.guard import admin_route_guard
from web.routes import router as web_router

# The edge guard wraps everything registered on the app, but only acts on /admin/*.
app.middleware("http")(admin_route_guard)

app.include_router(web_router, tags=["Web UI"])
