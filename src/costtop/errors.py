from collections.abc import Mapping

# response bodies are cut to this many characters in error messages
BODY_PREVIEW_CHARS = 200


def truncate_body(body: "str", limit: "int" = BODY_PREVIEW_CHARS) -> "str":
    if len(body) <= limit:
        return body
    return body[:limit] + "..."


class FetchError(Exception):
    """
    base class for every failure raised by the provider layer.
    """


class TransportError(FetchError):
    """
    TransportError covers network failures and non-success HTTP
    statuses. status_code is None when no response was received.
    """

    def __init__(
        self,
        message: "str",
        status_code: "int | None" = None,
        body: "str" = "",
    ) -> "None":
        self.status_code = status_code
        self.body = truncate_body(body)
        if status_code is not None:
            message = f"{message}: {status_code} - {self.body}"
        super().__init__(message)


class DecodeError(FetchError):
    """
    DecodeError is raised when a response body does not match the
    expected page shape.
    """

    def __init__(self, message: "str", body: "str" = "") -> "None":
        self.body = truncate_body(body)
        super().__init__(f"{message}: {self.body}" if self.body else message)


def _describe(failures: "Mapping[str, BaseException]") -> "str":
    return "; ".join(f"{name}: {error}" for name, error in failures.items())


class PartialFetchError(FetchError):
    """
    PartialFetchError records sub-resources that failed while at
    least one other sub-resource returned data. It is logged, never
    surfaced as the metric's error.
    """

    def __init__(self, failures: "Mapping[str, BaseException]") -> "None":
        self.failures = dict(failures)
        super().__init__(
            f"Some sources failed: {_describe(self.failures)}"
        )


class AllSourcesFailedError(FetchError):
    """
    AllSourcesFailedError is raised when no sub-resource produced
    data and at least one failed.
    """

    def __init__(self, failures: "Mapping[str, BaseException]") -> "None":
        self.failures = dict(failures)
        super().__init__(
            f"Failed to fetch usage from any endpoint: {_describe(self.failures)}"
        )
