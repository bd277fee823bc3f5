"""ASGI entrypoint for the date nights API."""

from date_nights.api.app import create_app
from date_nights.containers import build_container

app = create_app(build_container())
