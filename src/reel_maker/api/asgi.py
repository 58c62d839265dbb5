"""ASGI entrypoint for the reel maker bot."""

from reel_maker.api.app import create_app
from reel_maker.containers import build_container

app = create_app(build_container())
