import time
from pathlib import PurePosixPath


def is_truthy(value) -> bool:
    """Metadata and form flags arrive as strings; treat the usual spellings as True."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def default_gif_name() -> str:
    """pgn2gif_<epoch millis>, the name used when the caller does not pick one."""
    return f"pgn2gif_{int(time.time() * 1000)}"


def swap_prefix(key: str, new_prefix: str, new_suffix: str | None = None) -> str:
    """gifs/a/b.gif -> videos/a/b.mp4: replace the top-level folder and optionally the extension."""
    path = PurePosixPath(key)
    rest = PurePosixPath(*path.parts[1:]) if len(path.parts) > 1 else path
    if new_suffix is not None:
        rest = rest.with_suffix(new_suffix)
    return f"{new_prefix}{rest}"
