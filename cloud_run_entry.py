#!/usr/bin/env python3
"""
Cloud Run entrypoint: serve the FastAPI app with uvicorn on $PORT.

Cloud Run injects PORT (default 8080). One worker per container; the
in-process KV backend is only safe in that configuration.
"""
import os

import uvicorn


def main():
    port = int(os.environ.get("PORT", "8080"))
    uvicorn.run(
        "mcm_snapshot.main:app",
        host="0.0.0.0",
        port=port,
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
