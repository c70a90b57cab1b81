# classes/errors.py


class AgentError(Exception):
    pass


class ConfigurationError(AgentError):
    """Missing reasoning-backend credentials or similar. The pipeline does not start."""


class OperationError(AgentError, ValueError):
    """
    Failure of a single planned operation. Never aborts the plan:
    the execution engine turns it into one error result and moves on.
    """


class ArgumentParseError(OperationError):
    pass


class OperationValidationError(OperationError):
    pass


class InvalidIdentifierError(OperationValidationError):
    def __init__(self, label: str, value):
        self.label = label
        self.value = value
        super().__init__(f'Invalid {label}: "{value}". Expected a valid UUID format.')


class EntityNotFoundError(OperationError):
    pass


class ConstraintViolationError(OperationError):
    """Unique or foreign-key constraint rejected the write."""


class DuplicateEntityError(ConstraintViolationError):
    pass


class BackendError(AgentError):
    """
    Reasoning backend / network failure, classified for the caller.
    user_message is what the operator sees, detail keeps the technical reason.
    """

    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    UNKNOWN = "unknown"

    def __init__(self, category: str, user_message: str, detail: str):
        self.category = category
        self.user_message = user_message
        self.detail = detail
        super().__init__(f"{user_message}: {detail}")
