"""Error taxonomy for proc-usage."""


class UsageError(Exception):
    """Base class for all proc-usage errors."""


class ReadFailure(UsageError):
    """A metric source could not produce a value.

    Covers missing files, failed OS calls, denied access and entities that
    no longer exist.
    """


class ParseError(UsageError):
    """A kernel stat line was malformed."""

    def __init__(self, message: str, line: str) -> None:
        super().__init__(f"{message}: {line!r}")
        self.line = line


ParseFailure = ParseError


class PlatformUnsupported(UsageError):
    """No metric source exists for the running operating system."""


class SamplingError(UsageError):
    """A sampling round failed.

    Carries the human-readable causes instead of a partially filled result.
    """

    def __init__(self, causes: list[str], pid: int | None = None) -> None:
        self.causes = list(causes)
        self.pid = pid
        super().__init__("\n".join(self.causes))
