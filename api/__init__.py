"""
HTTP API for the legislative data bridge.

- routes/: FastAPI routers (system endpoints, generic store CRUD)
- services/: snapshot export/import/backup logic
- models.py: response bodies
- middleware.py: CORS and request logging
- deps.py: dependencies that hand the shared DataBridge to handlers
"""

APP_VERSION = "1.0.0"
