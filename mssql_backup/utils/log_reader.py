"""
Reads the service log file back into structured entries for the log viewer.
"""

import os
import re
from collections import deque
from typing import List, Dict, Optional

# Matches the file handler format set up in configure_logging()
LOG_LINE_PATTERN = re.compile(
    r'^\[(?P<timestamp>[^\]]+)\] (?P<level>[A-Z]+) \[(?P<module>[^\]]+)\] (?P<message>.*)$'
)

# Tail of the active log file read per request
TAIL_BYTES = 1024 * 1024


def parse_log_lines(lines) -> List[Dict[str, str]]:
    """
    Parse log lines into entries.

    Lines that do not start a new entry (tracebacks, multi-line messages)
    are appended to the previous entry's message.

    Args:
        lines: Iterable of log lines

    Returns:
        List of dicts with 'timestamp', 'level', 'module' and 'message' keys
    """
    entries = []

    for line in lines:
        line = line.rstrip('\n')
        match = LOG_LINE_PATTERN.match(line)
        if match:
            entries.append(match.groupdict())
        elif entries and line:
            entries[-1]['message'] += '\n' + line

    return entries


def _tail_lines(log_path: str, max_bytes: int) -> List[str]:
    """Return the complete lines within the last max_bytes of a file."""
    with open(log_path, 'rb') as f:
        f.seek(0, os.SEEK_END)
        start = max(0, f.tell() - max_bytes)
        # One byte before the window tells whether it starts mid-line
        f.seek(max(0, start - 1))
        data = f.read()

    partial = False
    if start > 0:
        partial = data[:1] != b'\n'
        data = data[1:]

    lines = data.decode('utf-8', errors='replace').splitlines()
    if partial and lines:
        lines = lines[1:]
    return lines


def read_log_entries(
    log_path: str,
    limit: int = 200,
    level: Optional[str] = None,
    max_bytes: int = TAIL_BYTES
) -> List[Dict[str, str]]:
    """
    Read the most recent entries from a log file.

    Only the active log file is read, and only its last max_bytes; rotated
    files (.1 to .10) are not shown.

    Args:
        log_path: Path to the log file
        limit: Maximum number of entries returned
        level: Only return entries of this level (e.g. 'ERROR')
        max_bytes: How much of the end of the file to read

    Returns:
        List of entries, oldest first; empty if the file does not exist
    """
    if not os.path.exists(log_path):
        return []

    entries = parse_log_lines(_tail_lines(log_path, max_bytes))

    if level:
        entries = [entry for entry in entries if entry['level'] == level.upper()]

    return list(deque(entries, maxlen=limit))
