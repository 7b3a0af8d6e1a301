"""Server status endpoint."""


async def server_status() -> dict:
    """GET / - liveness check."""
    return {"status": "ok", "message": "lmbridge server is running"}
