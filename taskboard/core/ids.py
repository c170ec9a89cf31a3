import itertools
import os
import re
import struct
import time

OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")

# 5 random bytes per process, 3-byte rolling counter
_process_unique = os.urandom(5)
_counter = itertools.count(int.from_bytes(os.urandom(3), "big"))


def new_object_id() -> str:
    """Return a 24-hex-character identifier.

    Layout: 4-byte creation second, 5 process-unique bytes, 3-byte counter,
    so identifiers generated later sort after earlier ones.
    """
    seconds = int(time.time()) & 0xFFFFFFFF
    count = next(_counter) & 0xFFFFFF
    raw = struct.pack(">I", seconds) + _process_unique + count.to_bytes(3, "big")
    return raw.hex()


def is_object_id(value: str | None) -> bool:
    return bool(value) and OBJECT_ID_RE.match(value) is not None
