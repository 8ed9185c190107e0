"""Exceptions and process exit statuses."""

# Exit statuses used by the command line entry point
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ALLOCATION = 12
EXIT_BAD_PARTITION = 22
EXIT_BAD_ARGUMENTS = 32


class Heat2DError(Exception):
    """Base class for errors raised by this package."""


class ConfigurationError(Heat2DError, ValueError):
    """Fatal startup configuration error.

    Raised for worker counts that cannot be decomposed, grids that do not
    divide evenly into blocks, and invalid command line arguments. Every
    rank raises the same error so the run terminates collectively.

    Parameters
    ----------
    message : str
        Human readable description.
    exit_status : int
        Process exit status the command line uses for this error.
    """

    def __init__(self, message: str, exit_status: int = EXIT_BAD_PARTITION):
        super().__init__(message)
        self.exit_status = exit_status

    def __reduce__(self):
        # Keep exit_status when the error is broadcast between ranks
        return (type(self), (str(self), self.exit_status))
