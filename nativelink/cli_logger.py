import datetime
import sys
import traceback
import os
from colorama import Fore, Style, init

# Initialize Colorama
init(autoreset=True)

LOG_DIR = os.environ.get(
    "NATIVELINK_LOG_DIR",
    os.path.join(os.path.expanduser("~"), ".nativelink", "logs"),
)
os.makedirs(LOG_DIR, exist_ok=True)

class Logger:
    def __init__(self):
        self.log_file = os.path.join(
            LOG_DIR,
            f"nativelink_{datetime.datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        )
        # Quiet mode drops info, success and debug records from the console.
        self.quiet = False

    def _get_timestamp(self):
        return datetime.datetime.now().strftime("%H:%M:%S")

    def _log(self, level, message, color, stream=None, prefix="", show_timestamp=True, echo=True):
        # stdout carries command output (directives, paths, JSON); records go to stderr.
        stream = stream or sys.stderr
        if show_timestamp:
            timestamp = self._get_timestamp()
            log_message = f"[{timestamp}] [{level}] {prefix}{message}\n"
            if echo:
                print(f"{color}{Style.BRIGHT}[{timestamp}]{Style.RESET_ALL} {prefix}{message}{Style.RESET_ALL}", file=stream)
        else:
            log_message = f"[{level}] {prefix}{message}\n"
            if echo:
                print(f"{color}{prefix}{message}{Style.RESET_ALL}", file=stream)

        with open(self.log_file, "a") as f:
            f.write(log_message)

    def info(self, message):
        self._log("INFO", message, Fore.CYAN, echo=not self.quiet)

    def step_info(self, message, indent=0):
        prefix = " " * indent
        self._log("", message, Fore.CYAN, prefix=prefix, show_timestamp=False, echo=not self.quiet)

    def success(self, message):
        self._log("SUCCESS", message, Fore.GREEN, prefix=f"{Style.BRIGHT}✓ {Style.RESET_ALL}{Fore.GREEN}", echo=not self.quiet)

    def warning(self, message):
        self._log("WARNING", message, Fore.YELLOW,
                  prefix=f"{Style.BRIGHT}⚠ {Style.RESET_ALL}{Fore.YELLOW}")

    def error(self, message):
        self._log("ERROR", message, Fore.RED,
                  prefix=f"{Style.BRIGHT}✖ {Style.RESET_ALL}{Fore.RED}")

    def debug(self, message):
        # Debug records always reach the log file; the console only sees them with BUILD_DEBUG set.
        self._log("DEBUG", message, Fore.WHITE + Style.DIM, echo="BUILD_DEBUG" in os.environ and not self.quiet)

    # -------- Directive stream --------
    def directive(self, line):
        """Print one directive line for the outer build system, uncoloured."""
        print(line, file=sys.stdout)
        sys.stdout.flush()
        with open(self.log_file, "a") as f:
            f.write(f"[DIRECTIVE] {line}\n")

    # -------- Tool output --------
    def tool_output(self, output, stream=None):
        """Relay a native tool's diagnostic text unmodified."""
        if not output:
            return
        stream = stream or sys.stderr
        stream.write(output if output.endswith("\n") else output + "\n")
        with open(self.log_file, "a") as f:
            for line in output.splitlines():
                f.write(f"[TOOL] {line}\n")

    # -------- Exception logging --------
    def exception(self, exc_type, exc_value, exc_traceback):
        self.error(f"An unhandled exception occurred: {exc_value}")
        formatted_lines = traceback.format_exception(exc_type, exc_value, exc_traceback)
        for line in formatted_lines:
            for sub_line in line.splitlines():
                if sub_line.strip():
                    self._log("TRACEBACK", f">> {sub_line}", Fore.RED)


# ---------------- Helper ----------------
logger = Logger()

def get_latest_log_file():
    """Return the path to the latest log file."""
    log_files = [os.path.join(LOG_DIR, f) for f in os.listdir(LOG_DIR) if f.endswith(".log")]
    if not log_files:
        return None
    return max(log_files, key=os.path.getctime)
