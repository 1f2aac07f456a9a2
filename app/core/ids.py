import re
import uuid

_WS = re.compile(r"\s+")


def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def slugify(s: str) -> str:
    # "Navi  Mumbai" -> "navi-mumbai"; punctuation is kept as-is
    return _WS.sub("-", (s or "").strip().lower())
