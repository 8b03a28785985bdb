# ASGI entrypoint: `uvicorn api.index:app` or any server that loads a module-level app.
# The repository root goes on sys.path so a source checkout runs without installing poolmon.

import os
import sys

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from poolmon.main import app  # noqa: E402

__all__ = ["app"]
