"""Exceptions raised inside the embedding pipeline.

None of these cross :meth:`InferenceClient.compute_embedding`; they are turned
into ``None`` there and into ``failed`` rows by the claim scheduler.
"""


class InferenceError(RuntimeError):
    """The provider call failed or returned something unusable."""

    def __init__(self, message: str, *, status: int | None = None, transient: bool = False):
        super().__init__(message)
        self.status = status
        self.transient = transient


class ProviderThrottled(InferenceError):
    """The provider answered 429; the limiter has entered its cooldown window."""

    def __init__(self, message: str = "Provider rate limit hit (HTTP 429)"):
        super().__init__(message, status=429, transient=False)


class ProviderCoolingDown(InferenceError):
    """A call was short-circuited because the cooldown window is still open."""

    def __init__(self, remaining: float):
        super().__init__(f"Provider cooldown active for another {remaining:.0f}s")
        self.remaining = remaining


class ImageUnavailable(InferenceError):
    """The image reference could not be resolved into bytes."""


__all__ = ["InferenceError", "ProviderThrottled", "ProviderCoolingDown", "ImageUnavailable"]
