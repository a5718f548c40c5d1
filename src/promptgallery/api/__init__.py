"""Prompt Gallery — FastAPI REST API layer.

Modules
-------
main
    Application factory, route handlers, and the ``main()`` CLI entry point.
models
    Pydantic request bodies and response envelopes.
middleware
    Security headers, body-size limit, access logging, and rate limiting.
"""
