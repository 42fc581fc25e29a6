class DriveGateError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(DriveGateError):
    status_code = 500


class InvalidRequestError(DriveGateError):
    status_code = 400


class AuthorizationError(DriveGateError):
    status_code = 403


class SigningError(DriveGateError):
    status_code = 500


class UpstreamError(DriveGateError):
    """Non-success response from the token endpoint, Drive or the broker."""

    status_code = 500

    def __init__(self, message: str, status: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class NetworkError(DriveGateError):
    status_code = 500


class RetryExhaustedError(DriveGateError):
    pass


class RecoveryError(DriveGateError):
    pass
