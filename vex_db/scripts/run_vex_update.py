"""
Run one incremental update of the Red Hat VEX feed.

Reads the fingerprint left by the previous run, fetches what changed since,
transforms it and writes the result as JSON lines: one object per
vulnerability, then one {"deleted": "<name>"} object per withdrawn advisory.
The new fingerprint is stored only once the parse succeeded, so a failed run
is simply retried from the same point next time.
"""

import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional, TextIO

from ..config.settings import settings
from ..models import Vulnerability
from ..sources.base.exceptions import ConfigException, VulnSourceException
from ..sources.redhat_vex.fingerprint import FingerprintError
from ..sources.redhat_vex.updater import UpdaterFactory

logger = logging.getLogger(__name__)


def load_fingerprint(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return ""


def save_fingerprint(path: Path, fingerprint: str):
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(fingerprint + "\n", encoding="utf-8")
    tmp.replace(path)


def write_records(out: TextIO, vulns: List[Vulnerability], deleted: List[str]):
    for vuln in vulns:
        out.write(json.dumps(vuln.to_dict(), sort_keys=True) + "\n")
    for name in deleted:
        out.write(json.dumps({"deleted": name}) + "\n")


def run_update(url: str, state_file: Path, output: Optional[Path] = None,
               compressed_file_timeout=None, cancel: Optional[threading.Event] = None) -> int:
    """
    Fetch, parse and emit one batch

    Returns:
        Process exit code
    """
    try:
        factory = UpdaterFactory.from_settings(settings)
        factory.configure({
            'url': url,
            'compressed_file_timeout': compressed_file_timeout or settings.VEX_COMPRESSED_FILE_TIMEOUT,
        })
    except ConfigException as e:
        logger.error(f"❌ Configuration error: {e}")
        return 2
    updater = factory.create()[0]

    previous = load_fingerprint(state_file)
    logger.info(f"🔍 Starting {updater.name} update from {updater.url}"
                f" ({'incremental' if previous else 'full load'})")

    try:
        spool, fingerprint = updater.fetch(previous, cancel)
        with spool:
            vulns, deleted = updater.delta_parse(spool)
    except FingerprintError as e:
        logger.error(f"❌ Corrupt state file {state_file}: {e}")
        return 2
    except VulnSourceException as e:
        logger.error(f"❌ Update failed: {e}")
        return 1

    if output is not None:
        with open(output, "w", encoding="utf-8") as f:
            write_records(f, vulns, deleted)
    else:
        write_records(sys.stdout, vulns, deleted)

    save_fingerprint(state_file, fingerprint)
    logger.info(f"✅ {len(vulns)} vulnerabilities, {len(deleted)} deletions; fingerprint saved")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run an incremental update of the Red Hat VEX feed.")
    parser.add_argument(
        "--url",
        default=settings.VEX_URL,
        help="Base URL the VEX files are published under"
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        default=Path(settings.STATE_FILE),
        help="File holding the fingerprint between runs"
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write JSON lines here instead of stdout"
    )
    parser.add_argument(
        "--timeout",
        default=None,
        help="Archive download deadline, seconds or a duration like 2m"
    )
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging level"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )

    cancel = threading.Event()

    def _interrupt(signum, frame):
        logger.warning("interrupted, cancelling fetch")
        cancel.set()

    signal.signal(signal.SIGINT, _interrupt)

    return run_update(args.url, args.state_file, args.output, args.timeout, cancel)


if __name__ == "__main__":
    sys.exit(main())
