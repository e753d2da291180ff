"""
SHA-256 checksums for backup artifacts.
"""

import hashlib

# 64KB read buffer
CHUNK_SIZE = 64 * 1024


def calculate_checksum(path: str, chunk_size: int = CHUNK_SIZE) -> str:
    """
    Calculate the SHA-256 checksum of a file without loading it into memory.

    Args:
        path: Path to the file
        chunk_size: Number of bytes read per iteration

    Returns:
        Lowercase hex digest

    Raises:
        OSError: If the file cannot be read
    """
    hasher = hashlib.sha256()

    with open(path, 'rb') as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            hasher.update(chunk)

    return hasher.hexdigest()
