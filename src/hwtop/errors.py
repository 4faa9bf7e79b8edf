"""Exception hierarchy for hwtop."""


class HwtopError(Exception):
    """Base error for hwtop."""


class AcquisitionError(HwtopError):
    """A raw counter reading could not be obtained from the host."""


class ParseError(AcquisitionError):
    """Pseudo-file or command output did not have the expected shape."""


class RemoteCommandError(AcquisitionError):
    """An SSH connection or remote command failed."""


class UnsupportedPlatformError(HwtopError):
    """No adapter exists for the local platform or the remote operating system."""


class ConfigError(HwtopError):
    """The configuration file is missing, unreadable or invalid."""
