"""Errors that end the run of a single account."""


class ApiShapeError(RuntimeError):
    """The API answered with data that does not have the expected shape.

    Raised for missing or malformed required fields and for unknown media
    types. The offending JSON is kept in ``payload`` so it can be dumped for
    inspection.
    """

    def __init__(self, message: str, payload: object = None):
        super().__init__(message)
        self.payload = payload


class AuthenticationError(RuntimeError):
    """The platform rejected the configured credentials."""
