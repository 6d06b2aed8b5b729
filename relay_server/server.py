"""
Relay HTTP server.
Serves the chat API and a health check.
"""
from fastapi import FastAPI

from .api import router as api_router

app = FastAPI(title="Voice Chat Relay")
app.include_router(api_router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok", "component": "relay_server"}
