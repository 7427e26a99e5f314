__all__ = ("EdgeCacheError", "ClientError", "MalformedRequest", "DeniedRequest", "ClientDisconnect", "ParseError")


class EdgeCacheError(Exception): ...


class ClientError(EdgeCacheError):
    status_code: int = 400

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class MalformedRequest(ClientError):
    status_code = 400


class DeniedRequest(ClientError):
    status_code = 403


class ClientDisconnect(EdgeCacheError):
    """The client went away before its request body was complete."""


class ParseError(EdgeCacheError): ...
