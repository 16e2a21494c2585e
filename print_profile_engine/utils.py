import re
import uuid


def format_duration(seconds: float) -> str:
    """Format seconds as "1h 30m" or "45m"."""
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes = remainder // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def extract_extension(filename: str) -> str:
    """Lowercased extension without the dot; "" when there is none."""
    last_dot = filename.rfind(".")
    if 0 < last_dot < len(filename) - 1:
        return filename[last_dot + 1:].lower()
    return ""


def is_3mf_file(filename: str) -> bool:
    return filename.lower().endswith(".3mf")


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower())
    return slug.strip("-") or "file"


def create_stored_filename(original_name: str, default_ext: str = "3mf") -> str:
    """
    Turn a user-supplied filename into a unique, storage-safe one.

    "My Benchy (v2).3MF" -> "my-benchy-v2-1a2b3c4d.3mf"
    """
    name = original_name.strip() or "file"
    ext = extract_extension(name)
    base = name[: -(len(ext) + 1)] if ext else name
    suffix = uuid.uuid4().hex[:8]
    return f"{slugify(base)}-{suffix}.{ext or default_ext}"
