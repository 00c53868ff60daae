"""Development runner.
Usage: python run.py  (reads .env if present)
Set DEV_CREATE_ALL=1 to auto-create tables (development only).
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

from ems import create_app
from ems.db import create_all

load_dotenv()

app = create_app()

if os.getenv("DEV_CREATE_ALL", "0").lower() in ("1", "true", "yes"):
    with app.app_context():
        create_all()

if __name__ == "__main__":  # pragma: no cover
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "5000"))
    app.run(debug=True, host=host, port=port, threaded=True)
