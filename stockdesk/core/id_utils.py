import re
import uuid

import shortuuid

_SLUG_STRIP_RE = re.compile(r"[^A-Z0-9]+")


def generate_id() -> str:
    return str(uuid.uuid4())


def generate_shortuuid() -> str:
    return shortuuid.uuid()


def generate_voucher_number() -> str:
    token = shortuuid.ShortUUID(alphabet="23456789ABCDEFGHJKLMNPQRSTUVWXYZ").random(length=8)
    return f"VCH-{token}"


def slugify_code(value: str, *, max_length: int = 64) -> str:
    slug = _SLUG_STRIP_RE.sub("-", value.strip().upper()).strip("-")
    return slug[:max_length].rstrip("-")
