from __future__ import annotations


class ActionFlowError(Exception):
    """Base class for ActionFlow failures."""


class ConfigurationError(ActionFlowError):
    pass


class StoreNotLoadedError(ActionFlowError):
    pass


class LLMGatewayError(ActionFlowError):
    pass


class TransportError(LLMGatewayError):
    def __init__(self, provider: str, status_code: int, body: str) -> None:
        super().__init__(f"{provider} API error ({status_code}): {body}")
        self.provider = provider
        self.status_code = status_code
        self.body = body


class EnvelopeError(LLMGatewayError):
    pass


class ResponseParseError(LLMGatewayError):
    pass


class SchemaError(ActionFlowError):
    pass


class FlowError(ActionFlowError):
    """Single user-facing failure raised by a command flow."""


class PersistenceError(ActionFlowError):
    pass
