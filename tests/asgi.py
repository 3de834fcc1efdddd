"""
ASGI helpers for app tests
"""


def with_peer(app, host: str, port: int = 40000):
    """Wrap `app` so every HTTP request appears to come from host:port."""
    async def wrapped(scope, receive, send):
        if scope["type"] == "http":
            scope = dict(scope, client=(host, port))
        await app(scope, receive, send)
    return wrapped
