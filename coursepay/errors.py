class ConfigError(RuntimeError):
    """Startup configuration is missing or malformed."""


class CoursePayError(Exception):
    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class InvalidRequest(CoursePayError):
    status_code = 400
    error = "Invalid request"


class ProviderError(CoursePayError):
    status_code = 500
    error = "Failed to create checkout session"


class SignatureInvalid(CoursePayError):
    status_code = 400
    error = "Webhook Error"

    def __init__(self, message: str = "Webhook signature verification failed"):
        super().__init__(message)


class NotFound(CoursePayError):
    status_code = 404
    error = "Not found"
