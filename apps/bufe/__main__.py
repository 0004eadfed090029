"""
Run the büfe POS API with uvicorn.

Example:
  python -m apps.bufe --reload
"""
import os
import sys

import uvicorn


def main() -> None:
    reload = os.getenv("BUFE_RELOAD", "false").lower() == "true" or "--reload" in sys.argv[1:]
    host = os.getenv("BUFE_HOST", "0.0.0.0")
    port = int(os.getenv("BUFE_PORT", "8000"))
    uvicorn.run(
        "apps.bufe.app.main:app",
        host=host,
        port=port,
        reload=reload,
        reload_dirs=["apps", "libs"] if reload else None,
    )


if __name__ == "__main__":
    main()
