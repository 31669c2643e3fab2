class RouteKitError(Exception):
    def __init__(self, message: str, handler_name: str = "Unknown Handler"):
        """
        General-purpose error for routekit.

        Args:
            message (str): The error message describing what went wrong.
            handler_name (str): The handler or route where the error occurred.
        """
        self.handler_name = handler_name
        super().__init__(f"[{handler_name}] {message}")


class HandlerLoadError(RouteKitError):
    """Exception raised when a handler module cannot be imported."""
    def __init__(self, message: str, handler_name: str = None):
        super().__init__(message, handler_name)


class TemplateError(RouteKitError):
    """Exception raised when a template cannot be read, compiled or rendered."""
    def __init__(self, message: str, handler_name: str = None):
        super().__init__(message, handler_name)


class ConfigurationError(RouteKitError):
    """Exception raised when server options are invalid"""
    def __init__(self, message: str, handler_name: str = None):
        super().__init__(message, handler_name)
