import plistlib
import shutil
import sys
from pathlib import Path
from typing import Optional

from .scheduler import DEFAULT_INTERVAL_SECONDS

DEFAULT_LAUNCHD_LABEL = "org.time-archive.run-due"
DEFAULT_STDOUT_PATH = Path("/tmp/time-archive.run-due.out")
DEFAULT_STDERR_PATH = Path("/tmp/time-archive.run-due.err")


def resolve_program_path(raw: Optional[str]) -> Optional[Path]:
    if raw:
        path = Path(raw).expanduser()
        if path.exists():
            return path.resolve()
        return None
    detected = shutil.which("time-archive")
    if detected:
        return Path(detected).resolve()
    argv0 = Path(sys.argv[0]).expanduser()
    if argv0.exists():
        return argv0.resolve()
    return None


def render_launchd_plist(
    *,
    program: Path,
    label: str = DEFAULT_LAUNCHD_LABEL,
    interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
    config_path: Optional[Path] = None,
    stdout_path: Optional[Path] = DEFAULT_STDOUT_PATH,
    stderr_path: Optional[Path] = DEFAULT_STDERR_PATH,
    run_at_load: bool = False,
) -> str:
    args = [str(program), "run-due"]
    payload = {
        "Label": label,
        "ProgramArguments": args,
        "StartInterval": int(interval_seconds),
        "RunAtLoad": bool(run_at_load),
    }
    if config_path is not None:
        payload["EnvironmentVariables"] = {"TIME_ARCHIVE_CONFIG": str(config_path)}
    if stdout_path is not None:
        payload["StandardOutPath"] = str(stdout_path)
    if stderr_path is not None:
        payload["StandardErrorPath"] = str(stderr_path)

    return plistlib.dumps(payload, fmt=plistlib.FMT_XML, sort_keys=False).decode("utf-8")
