# astroflow/errors.py


class AstroflowError(Exception):
    pass


class ConfigurationError(AstroflowError, ValueError):
    """The workflow graph cannot be executed (e.g. it has no start node)."""


class ActionFailure(AstroflowError):
    """Raised by a device action when the device call fails."""

    def __init__(self, node_id: str, message: str):
        super().__init__(f"{node_id}: {message}")
        self.node_id = node_id
