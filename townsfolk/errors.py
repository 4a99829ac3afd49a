"""Exception types shared by the text-generation layer."""


class GenerationError(RuntimeError):
    """A text-generation call failed (network, timeout or provider error).

    Always recovered by the caller with a documented fallback value.
    """


class ParseFailure(ValueError):
    """A generated reply could not be parsed into the expected structure."""
