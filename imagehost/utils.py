import re
import uuid
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

DEFAULT_FILENAME = "image.bin"


def parse_file_size(size_str: str) -> int:
    """Parse file size string with units (B, KB, MB, GB) to bytes.

    Examples:
        "10485760" -> 10485760 bytes
        "10mb" or "10MB" -> 10485760 bytes
        "500kb" or "500KB" -> 512000 bytes
    """
    size_str = str(size_str).strip()

    # Check if it's just a number (bytes)
    if size_str.isdigit():
        return int(size_str)

    # Parse with units
    match = re.match(r'^(\d+(?:\.\d+)?)\s*(b|kb|mb|gb)$', size_str, re.IGNORECASE)
    if not match:
        raise ValueError(f"Invalid file size format: {size_str}")

    value = float(match.group(1))
    unit = match.group(2).lower()

    multipliers = {
        'b': 1,
        'kb': 1024 ** 1,
        'mb': 1024 ** 2,
        'gb': 1024 ** 3
    }

    return int(value * multipliers[unit])

def parse_time(time_str: str) -> float:
    """Parse time string with units (s, m, h) to seconds.

    Examples:
        "2" -> 2 seconds
        "0.5" -> 0.5 seconds
        "1m" or "1M" -> 60 seconds
        "1h" or "1H" -> 3600 seconds
    """
    time_str = str(time_str).strip()

    # Check if it's just a number (seconds)
    if re.fullmatch(r'\d+(?:\.\d+)?', time_str):
        return float(time_str)

    # Parse with units
    match = re.match(r'^(\d+(?:\.\d+)?)\s*(s|m|h)$', time_str, re.IGNORECASE)
    if not match:
        raise ValueError(f"Invalid time format: {time_str}")

    value = float(match.group(1))
    unit = match.group(2).lower()

    multipliers = {
        's': 1,
        'm': 60,        # minutes to seconds
        'h': 3600,      # hours to seconds
    }

    return value * multipliers[unit]

def parse_bind_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` (IPv6 hosts in brackets) into its parts."""
    address = address.strip()
    match = re.match(r'^\[?([^\]]*?)\]?:(\d{1,5})$', address)
    if not match:
        raise ValueError(f"Invalid bind address: {address}")
    port = int(match.group(2))
    if not 0 < port < 65536:
        raise ValueError(f"Invalid port in bind address: {address}")
    return match.group(1) or "0.0.0.0", port

def safe_filename(filename: str | None) -> str:
    """Reduce a client-supplied filename to its final path component."""
    if not filename:
        return DEFAULT_FILENAME
    name = PurePosixPath(filename.replace("\\", "/")).name
    if not name or name in ('.', '..'):
        return DEFAULT_FILENAME
    return name

def filename_from_url(url: str) -> str:
    """Last path segment of *url*, or the default filename."""
    path = unquote(urlparse(url).path)
    return safe_filename(path.rsplit("/", 1)[-1])

def storage_filename(filename: str | None) -> str:
    """Backend filename: a random prefix keeps uploads from colliding."""
    return f"{uuid.uuid4()}_{safe_filename(filename)}"

def format_bytes(n: float) -> str:
    """Human-readable byte size."""
    for unit in ("B", "KB", "MB", "GB"):
        if n < 1024:
            return f"{n:.1f} {unit}" if n != int(n) else f"{int(n)} {unit}"
        n /= 1024
    return f"{n:.1f} TB"
