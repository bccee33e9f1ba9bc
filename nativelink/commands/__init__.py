from .init import init
from .build import build
from .plan import plan
from .link import link
from .include_paths import include_paths
from .config import config
from .doctor import doctor
from .log import log
from .version import version

__all__ = [
    "init",
    "build",
    "plan",
    "link",
    "include_paths",
    "config",
    "doctor",
    "log",
    "version",
]
