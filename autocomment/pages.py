import html
import logging
import os
from typing import Dict

from fastapi.responses import HTMLResponse, PlainTextResponse

log = logging.getLogger(__name__)

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
FRONTEND_DIR = os.path.join(ROOT, "frontend")


def render_page(name: str, replacements: Dict[str, str], frontend_dir: str = FRONTEND_DIR):
    """Serve ``frontend/<name>`` with every ``%%KEY%%`` replaced by its escaped value."""
    path = os.path.join(frontend_dir, name)
    try:
        with open(path, encoding="utf-8") as f:
            page = f.read()
    except OSError as e:
        log.error("Failed to read page %s: %s", path, e)
        return PlainTextResponse("Error loading HTML", status_code=500)
    for key, value in replacements.items():
        page = page.replace(f"%%{key}%%", html.escape(value, quote=True))
    return HTMLResponse(page)
