class ProviderError(Exception):
    """Raised when an AI provider call fails (network, non-2xx, empty answer)."""


class ProviderNotConfiguredError(ProviderError):
    """Raised when a provider call is attempted without OPENAI_API_KEY."""


class ResponseParseError(ProviderError):
    """Raised when a provider answer does not contain a usable JSON object."""
