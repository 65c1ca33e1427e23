"""ASGI entrypoint for the checkout API."""

from marketplace_checkout.api.app import create_app
from marketplace_checkout.containers import build_container

app = create_app(build_container())
