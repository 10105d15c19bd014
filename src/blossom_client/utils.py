"""Utility functions for blossom-client."""


def humanize_size(size: float) -> str:
    """Convert bytes to human-readable format."""
    if size < 1024:
        return f"{int(size)} B"
    size /= 1024
    for unit in ["KB", "MB", "GB"]:
        if size < 1024.:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"
