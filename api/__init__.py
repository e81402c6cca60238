"""
HTTP routers

Thin FastAPI layer: validates payloads, calls core managers and maps core
exceptions to HTTP status codes.
"""
