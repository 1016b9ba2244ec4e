class ProviderError(Exception):
    """Base class for provider-level failures."""

class ProviderClientError(ProviderError):
    """
    Non-retryable: caller/config issue (malformed model id, unknown provider,
    missing credential, 4xx from the endpoint, etc.). The fix is change input/config.
    """

class ProviderTransientError(ProviderError):
    """
    Network or server side trouble: rate limits, timeouts, 5xx, dropped streams.
    Nothing in modelgate retries these; the caller decides.
    """

class MalformedIdentifier(ProviderClientError):
    """Model id does not follow '<provider>::<model>' or 'custom::<id>/<model>'."""

class UnknownProvider(ProviderClientError):
    pass

class ProviderNotFound(ProviderClientError):
    """Custom provider id with no matching registered provider."""

class MissingBaseUrl(ProviderClientError):
    pass

class MissingApiKey(ProviderClientError):
    pass

class UndeclaredToolCall(ProviderClientError):
    """Endpoint returned tool calls although the request declared no tools."""

class StreamTransportFailure(ProviderTransientError):
    """
    The response stream broke after it was opened. Text already forwarded to the
    caller stays delivered; the assistant turn must be treated as incomplete.
    """
