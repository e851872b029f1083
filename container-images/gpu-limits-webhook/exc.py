class ApplicationError(Exception):
    """Base class for errors that end up in an admission response.

    The code attribute is reported as status.code when the error is turned
    into a denial.
    """

    code = 500


class DecodeError(ApplicationError):
    code = 400


class PolicyError(ApplicationError):
    code = 403


class MissingLimitsError(PolicyError):
    pass


class GpuRangeError(PolicyError):
    pass


class LimitExceededError(PolicyError):
    pass


class QuantityParseError(PolicyError):
    code = 500


class ProviderError(ApplicationError):
    pass


class NamespaceLookupError(ProviderError):
    pass
