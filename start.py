import os

import uvicorn


def run_fastapi():
    """Run the FastAPI backend."""
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        proxy_headers=True,
        workers=int(os.getenv("UVICORN_WORKERS", 1)),
    )


if __name__ == "__main__":
    print("[start] launching uvicorn...", flush=True)
    run_fastapi()
