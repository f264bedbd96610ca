#!/usr/bin/env python3
"""
Streaks API launcher (uvicorn).

The daily batch job does not need the API; run it with
``python -m backend.workers.update_streaks``.
"""
import os
import sys

# Add workspace to path
workspace_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, workspace_root)


def main() -> int:
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    print(f"[healthlog] Streaks API on http://{host}:{port}")
    try:
        uvicorn.run("backend.main:app", host=host, port=port, reload=False, log_level="info", access_log=False)
    except KeyboardInterrupt:
        print("\n[healthlog] Shutting down...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
