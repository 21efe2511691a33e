"""
ASGI entry point for the relay hub.

Used by uvicorn (see server.main) / gunicorn. .env is loaded before the
app factory reads AppConfig from the environment.
"""

from dotenv import load_dotenv

load_dotenv()

from server.app import create_app  # pylint: disable=wrong-import-position

app = create_app()
