"""Datasette plugin for AI-evaluated vendor product submissions and their catalog."""

from datasette_vendor_catalog.plugin import (
    extra_template_vars,
    register_routes,
    skip_csrf,
    startup,
)

__all__ = [
    "extra_template_vars",
    "register_routes",
    "skip_csrf",
    "startup",
]
