"""Error taxonomy for build-mode resolution.

Recoverable conditions (provider metadata absent, packaged CMake config
missing) are never raised. They are recorded as ``Diagnostic`` entries and
logged. Native build failures and link-set defects are raised and abort the
invocation with the underlying tool's output intact.
"""
from dataclasses import dataclass

METADATA_ABSENT = "metadata-absent"
CONFIG_DIRECTORY_MISSING = "config-directory-missing"
LIBRARY_DIRECTORY_UNKNOWN = "library-directory-unknown"
HEADERS_UNKNOWN = "headers-unknown"


@dataclass(frozen=True)
class Diagnostic:
    code: str
    level: str  # "info" | "warning"
    message: str


class NativeLinkError(Exception):
    """Base class for fatal resolution errors."""


class NativeBuildFailure(NativeLinkError):
    """The native build tool could not be started or exited non-zero."""

    def __init__(self, command, returncode, output=""):
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"Native build step failed (exit code {returncode}): {' '.join(self.command)}"
        )


class LinkFailure(NativeLinkError):
    """The emitted link set would produce duplicate or missing symbols."""
