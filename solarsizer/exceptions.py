class SolarSizerError(Exception): ...


class CanonError(SolarSizerError): ...


class ConfigError(SolarSizerError): ...


class NoSuitableParser(SolarSizerError):
    """No known meter export dialect matched the uploaded rows."""


class MalformedRow(SolarSizerError):
    """A single row could not be parsed; callers drop it and carry on."""


class UpstreamDataUnavailable(SolarSizerError):
    """The irradiance provider failed, timed out or returned unusable data."""


class OutOfRangeValue(SolarSizerError):
    """Non-positive or non-finite irradiance encountered in strict mode."""


class IncompatibleGranularity(SolarSizerError):
    """Aggregation was requested at a finer resolution than the source."""


def require(condition: bool, message: str, exc: type[SolarSizerError] = SolarSizerError):
    """Raise the given exception if condition is False."""
    if not condition:
        raise exc(message)
