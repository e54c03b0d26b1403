"""Fault rules for file-system hook points and their injection."""

from __future__ import annotations

import json
import logging
import os
import posixpath
import random as _random_module
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_HOOK_POINTS: tuple[str, ...] = (
    "read",
    "write",
    "mkdir",
    "rmdir",
    "opendir",
    "fsync",
    "flush",
    "release",
    "truncate",
    "getattr",
    "chown",
    "utimens",
    "allocate",
    "getlk",
    "setlk",
    "setlkw",
    "statfs",
    "readlink",
    "symlink",
    "create",
    "access",
    "link",
    "mknod",
    "rename",
    "unlink",
    "getxattr",
    "listxattr",
    "removexattr",
    "setxattr",
)

INJECT_PATH = "/inject"
RECOVER_PATH = "/recover"

_UINT32_LIMIT = 2**32
# Linux errno range from E2BIG up to (but excluding) EXFULL.
_RANDOM_ERRNO_LOW = 0x7
_RANDOM_ERRNO_HIGH = 0x36


def _uint32(name: str, value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {name!r} must be an unsigned integer, got {value!r}")
    if not 0 <= value < _UINT32_LIMIT:
        raise ValueError(f"field {name!r} out of range: {value!r}")
    return value


def _string(name: str, value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a string, got {value!r}")
    return value


def _boolean(name: str, value: Any) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {name!r} must be a boolean, got {value!r}")
    return value


def _methods(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field 'methods' must be a list, got {value!r}")
    return [_string("methods", item) for item in value]


@dataclass
class InjectMessage:
    """A fault rule: which methods, under which path, and what to do."""

    methods: list[str] = field(default_factory=list)
    path: str = ""
    delay: int = 0
    percent: int = 0
    random: bool = False
    errno: int = 0

    def to_json(self) -> str:
        return json.dumps(
            {
                "methods": list(self.methods),
                "path": self.path,
                "delay": self.delay,
                "percent": self.percent,
                "random": self.random,
                "errno": self.errno,
            }
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> InjectMessage:
        """Decode a message; field names match case-insensitively, unknown ones are ignored."""
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValueError(f"invalid inject message: {exc}") from exc
        message = cls()
        if data is None:
            return message
        if not isinstance(data, dict):
            raise ValueError("inject message must be a JSON object")
        for key, value in data.items():
            name = key.lower()
            if name == "methods":
                message.methods = _methods(value)
            elif name == "path":
                message.path = _string("path", value)
            elif name in ("delay", "percent", "errno"):
                setattr(message, name, _uint32(name, value))
            elif name == "random":
                message.random = _boolean("random", value)
        return message


class FaultRegistry:
    """Thread-safe table of the active fault rule for each method."""

    def __init__(self) -> None:
        self._rules: dict[str, InjectMessage] = {}
        self._lock = threading.Lock()

    def inject(self, message: InjectMessage) -> None:
        """Activate the rule for every method it names."""
        with self._lock:
            for method in message.methods:
                self._rules[method] = message

    def recover(self) -> None:
        """Drop the rules of all default hook points."""
        with self._lock:
            for method in DEFAULT_HOOK_POINTS:
                self._rules.pop(method, None)

    def lookup(self, method: str) -> InjectMessage | None:
        with self._lock:
            return self._rules.get(method)


def random_errno(rng: Any = None) -> int:
    """Pick a random Linux errno between E2BIG and EXFULL."""
    source = _random_module if rng is None else rng
    return source.randrange(_RANDOM_ERRNO_HIGH - _RANDOM_ERRNO_LOW) + _RANDOM_ERRNO_LOW


def probable(percentage: int, rng: Any = None) -> bool:
    """Return True with roughly the given percentage of probability."""
    source = _random_module if rng is None else rng
    return source.randrange(99) < percentage


def _join(*parts: str) -> str:
    present = [part for part in parts if part]
    if not present:
        return ""
    joined = posixpath.normpath("/".join(present))
    if joined.startswith("//"):
        joined = "/" + joined.lstrip("/")
    return joined


class FaultInjector:
    """Applies registered fault rules to file-system operations under a mount point."""

    def __init__(
        self,
        mount_point: str,
        registry: FaultRegistry,
        *,
        rng: Any = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.mount_point = mount_point
        self.registry = registry
        self._rng = rng
        self._sleep = sleep

    def inject_fault(self, relative_path: str, method: str) -> None:
        """Apply the rule for `method` to the path; raise OSError if it injects an error."""
        logger.info("do inject fault, method=%s relative_path=%s", method, relative_path)
        message = self.registry.lookup(method)
        if message is None:
            return
        if message.path:
            actual_path = _join(self.mount_point, relative_path)
            if not actual_path.startswith(message.path):
                logger.info(
                    "the rule path %s does not contain the actual path %s",
                    message.path,
                    actual_path,
                )
                return
        if message.percent > 0 and not probable(message.percent, self._rng):
            return
        code = 0
        if message.errno != 0:
            code = message.errno
        elif message.random:
            code = random_errno(self._rng)
        if message.delay > 0:
            self._sleep(message.delay / 1000)
        if code:
            raise OSError(code, os.strerror(code))

    def check(self, method: str, *args: str) -> None:
        """Run the hook for an operation on each of its paths, in order."""
        for path in args:
            self.inject_fault(path, method)

    def release(self, path: str) -> None:
        """Release hook: delays still apply, but errors are never reported."""
        try:
            self.inject_fault(path, "release")
        except OSError:
            pass