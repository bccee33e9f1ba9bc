import functools
import click
import sys # Import sys for sys.exc_info()
from .cli_logger import logger
from .errors import NativeBuildFailure, NativeLinkError

def handle_exceptions(func):
    """A decorator to handle common exceptions for CLI commands.

    Fatal build errors always end the process with a non-zero status so the
    invoking build system aborts. Native tool output is relayed unmodified.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except click.Abort:
            logger.warning("\nCommand aborted by user.")
            sys.exit(1)
        except NativeBuildFailure as e:
            logger.error(f"Native build failed: {e}")
            logger.tool_output(e.output)
            sys.exit(e.returncode if e.returncode and e.returncode > 0 else 1)
        except NativeLinkError as e:
            logger.error(f"Error: {e}")
            sys.exit(1)
        except FileNotFoundError as e:
            logger.error(f"Error: File not found - {e}")
            logger.exception(*sys.exc_info()) # Log traceback for FileNotFoundError
            sys.exit(1)
        except click.ClickException:
            raise
        except Exception as e:
            logger.error(f"\nAn unexpected error occurred: {e}")
            logger.exception(*sys.exc_info())
            sys.exit(1)
    return wrapper
