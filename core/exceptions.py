"""
Core domain exceptions.

These exceptions are transport-agnostic. Channel failures live in
client.exceptions; everything about configuration, session state and the host
contract is raised from here.
"""


class CoreError(Exception):
    """Base exception for all core errors."""

    pass


class NotFoundError(CoreError):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class InvalidOperationError(CoreError):
    """Raised when an operation cannot be performed in the current state."""

    pass


class ConfigurationError(CoreError):
    """Raised when the client configuration is inconsistent."""

    pass


class ResolutionError(ConfigurationError):
    """Raised when no server executable reference can be formed."""

    pass


class CommandNotFoundError(NotFoundError):
    """Raised when executing a command nobody registered."""

    def __init__(self, name: str):
        super().__init__("Command", name)


class CommandAlreadyRegisteredError(InvalidOperationError):
    """Raised when registering a command name twice."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Command already registered: {name}")


class SessionError(InvalidOperationError):
    """Raised when a session operation is not possible in the manager's state."""

    pass
