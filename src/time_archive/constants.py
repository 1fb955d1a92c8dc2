from typing import Iterable, List, Optional, Union

# Stored integer codes; keep existing values stable, the rules table holds them.
UNIT_DAY = 0
UNIT_WEEK = 1
UNIT_MONTH = 2
UNIT_YEAR = 3
UNIT_MINUTE = 4
UNIT_HOUR = 5

UNIT_NAMES = {
    UNIT_MINUTE: "minute",
    UNIT_HOUR: "hour",
    UNIT_DAY: "day",
    UNIT_WEEK: "week",
    UNIT_MONTH: "month",
    UNIT_YEAR: "year",
}

MODE_CTIME = 0
MODE_MTIME = 1

MODE_NAMES = {
    MODE_CTIME: "creation",
    MODE_MTIME: "modification",
}

ARCHIVE_FOLDER = ".archive"
FOLDER_SUFFIX = "_folder"

# Auto-upload targets of the mobile and desktop clients.
DEFAULT_PROTECTED_FOLDERS = [
    "Camera",
    "Photos",
    "Documents",
    "Screenshots",
    "Videos",
    "Downloads",
    "DCIM",
    "Pictures",
    "Images",
    "SofortUpload",
]

PERMISSION_READ = 1
PERMISSION_UPDATE = 2
PERMISSION_CREATE = 4
PERMISSION_DELETE = 8
PERMISSION_SHARE = 16
PERMISSION_ALL = 31

SHARE_TYPE_USER = 0
SHARE_TYPE_GROUP = 1
SHARE_TYPE_LINK = 3
DIRECT_SHARE_TYPES = (SHARE_TYPE_USER, SHARE_TYPE_GROUP, SHARE_TYPE_LINK)

FAVORITE_TAG_NAMES = ("$user!favorite", "favorite")


def unit_from_name(value: Union[str, int]) -> Optional[int]:
    if isinstance(value, int):
        return value if value in UNIT_NAMES else None
    lowered = value.strip().lower().rstrip("s")
    if lowered.isdigit():
        return unit_from_name(int(lowered))
    for code, name in UNIT_NAMES.items():
        if name == lowered:
            return code
    return None


def mode_from_name(value: Union[str, int]) -> Optional[int]:
    if isinstance(value, int):
        return value if value in MODE_NAMES else None
    lowered = value.strip().lower()
    if lowered.isdigit():
        return mode_from_name(int(lowered))
    aliases = {
        "creation": MODE_CTIME,
        "ctime": MODE_CTIME,
        "upload": MODE_CTIME,
        "modification": MODE_MTIME,
        "mtime": MODE_MTIME,
    }
    return aliases.get(lowered)


def protected_folders(configured: Union[str, Iterable[str], None] = None) -> List[str]:
    """Default protected folder names followed by configured extras, deduplicated."""
    if configured is None:
        return list(DEFAULT_PROTECTED_FOLDERS)
    if isinstance(configured, str):
        extras = configured.split(",")
    else:
        extras = [str(item) for item in configured]
    merged: List[str] = []
    for name in [*DEFAULT_PROTECTED_FOLDERS, *extras]:
        cleaned = name.strip()
        if cleaned and cleaned not in merged:
            merged.append(cleaned)
    return merged
