from __future__ import annotations

from chorus.app.api.app import create_app

app = create_app()
