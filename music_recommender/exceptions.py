from sklearn.exceptions import NotFittedError


class ConfigurationError(ValueError):
    """Invalid evaluation settings, raised before any run starts."""


__all__ = ["ConfigurationError", "NotFittedError"]
