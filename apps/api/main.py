"""uvicorn entrypoint for the session relay.

    uvicorn main:app --app-dir apps/api

Building the app here keeps `relay.app` free of import-time settings reads;
tests construct their own apps with test verifiers and databases.
"""

from relay.app import add_request_id_middleware, create_app

app = create_app()
add_request_id_middleware(app)

__all__ = ["app"]
