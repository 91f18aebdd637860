"""Request handlers, one module per operation.

Each module exposes ``async def handle(query, state) -> Result``. Handlers
receive an immutable PackageQuery and the AppState, and never raise for
expected upstream failures: those come back as NotFound or UpstreamError.
"""
