# /tree_mirror.py
"""
Tree Mirror (no UI)
- Mirrors a source folder into a replica folder, one way, on a fixed interval.
- Every pass re-reads both trees from disk; nothing is cached between passes.
- Same-named files are compared by size, then by a full-content digest (MD5 by default).
- Files and folders in the replica that are not in the source are deleted.
- Optional gitignore-style ignore rules (--ignore); ignored entries are treated as absent.
- Remembers last settings across restarts via ~/.tree_mirror/config.json
- Styled console output:
  - COPY / OVERWRITE green
  - DELETE / RMDIR orange
  - MKDIR light brown
  - errors red
  - file paths white
  - folder paths light brown
- Log file is always plain (no color codes).

Usage
  pip install pathspec colorama
  tree-mirror --source "/src" --replica "/dst" --interval 10 --log-file sync.log
  tree-mirror --source "/src" --replica "/dst" --no-overwrite --ignore "*.tmp" --once
"""

from __future__ import annotations

import argparse
import hashlib
import json
import logging
import shutil
import signal
import sys
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from colorama import init as colorama_init
from pathspec import PathSpec

APP_DIR = Path.home() / ".tree_mirror"
CONFIG_PATH = APP_DIR / "config.json"

DEFAULT_INTERVAL_SEC = 10
DEFAULT_LOG_FILE = Path("tree_mirror.log")
HASH_CHUNK_SIZE = 1024 * 1024


# -------------------------
# Console styling
# -------------------------

class Ansi:
    RESET = "\x1b[0m"
    RED = "\x1b[31m"
    GREEN = "\x1b[32m"
    ORANGE = "\x1b[38;5;208m"
    WHITE = "\x1b[97m"
    LIGHT_BROWN = "\x1b[33m"


ACTION_COLORS = {
    "COPY": Ansi.GREEN,
    "OVERWRITE": Ansi.GREEN,
    "DELETE": Ansi.ORANGE,
    "RMDIR": Ansi.ORANGE,
    "MKDIR": Ansi.LIGHT_BROWN,
}


def _supports_color(stream) -> bool:
    try:
        return hasattr(stream, "isatty") and stream.isatty()
    except Exception:
        return False


class ColorizingFormatter(logging.Formatter):
    def __init__(self, use_color: bool, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        if not self.use_color:
            return base

        if record.levelno >= logging.ERROR:
            return f"{Ansi.RED}{base}{Ansi.RESET}"

        action = getattr(record, "action", None)
        is_dir = getattr(record, "is_dir", None)
        path_text = getattr(record, "path_text", None)

        action_color = ACTION_COLORS.get(action or "", "")
        if action_color and action in base:
            base = base.replace(action, f"{action_color}{action}{Ansi.RESET}", 1)

        if path_text and path_text in base:
            pcolor = Ansi.LIGHT_BROWN if is_dir else Ansi.WHITE
            base = base.replace(path_text, f"{pcolor}{path_text}{Ansi.RESET}")

        return base


def setup_logger(log_file: Path, name: str = "tree_mirror") -> logging.Logger:
    log_file = log_file.expanduser()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.propagate = False

    if logger.handlers:
        return logger

    colorama_init()

    fmt = "%(asctime)s | %(levelname)s | %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"

    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
    fh.setLevel(logging.INFO)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(logging.INFO)
    ch.setFormatter(ColorizingFormatter(use_color=_supports_color(sys.stdout), fmt=fmt, datefmt=datefmt))

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.info("Logging to: %s", log_file)
    return logger


def log_action(
    logger: logging.Logger,
    action: str,
    message: str,
    path: Optional[Path] = None,
    is_dir: Optional[bool] = None,
    level: int = logging.INFO,
) -> None:
    """
    Append one event to the log. A failing handler is ignored so that a broken
    log destination never interrupts a sync pass.
    """
    try:
        extra = {"action": action}
        if path is not None:
            extra["path_text"] = str(path)
            extra["is_dir"] = bool(is_dir) if is_dir is not None else path.is_dir()
        logger.log(level, f"{action} | {message}", extra=extra)
    except Exception:
        pass


# -------------------------
# Config / CLI
# -------------------------

class ConfigError(ValueError):
    """The effective configuration cannot be used to start syncing."""


@dataclass(frozen=True)
class SyncConfig:
    source_dir: Path
    replica_dir: Path
    interval_sec: int = DEFAULT_INTERVAL_SEC
    overwrite: bool = True
    log_file: Path = DEFAULT_LOG_FILE
    ignore_patterns: tuple[str, ...] = ()


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Mirror one folder into another on a fixed interval.")
    p.add_argument("--source", type=str, default=None, help="Folder to mirror from (never modified).")
    p.add_argument("--replica", type=str, default=None, help="Folder to keep in sync with the source.")
    p.add_argument("--interval", type=int, default=None, help="Seconds between sync passes.")
    p.add_argument("--log-file", type=str, default=None, help="File to append the sync log to.")
    p.add_argument(
        "--overwrite",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Overwrite replica files whose content differs from the source (default: on).",
    )
    p.add_argument(
        "--ignore",
        action="append",
        default=None,
        metavar="PATTERN",
        help="Gitignore-style pattern to leave out of the replica. Repeatable.",
    )
    p.add_argument("--once", action="store_true", help="Run a single pass and exit.")
    return p.parse_args(argv)


def load_config_file() -> dict:
    try:
        if CONFIG_PATH.exists():
            return json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        pass
    return {}


def save_config_file(cfg: SyncConfig) -> None:
    APP_DIR.mkdir(parents=True, exist_ok=True)
    payload = {
        "source": str(cfg.source_dir),
        "replica": str(cfg.replica_dir),
        "interval_sec": cfg.interval_sec,
        "overwrite": cfg.overwrite,
        "log_file": str(cfg.log_file),
        "ignore": list(cfg.ignore_patterns),
    }
    CONFIG_PATH.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def build_effective_config(args: argparse.Namespace) -> SyncConfig:
    """Command-line values win over the saved config file, which wins over defaults."""
    saved = load_config_file()

    source = args.source or saved.get("source")
    replica = args.replica or saved.get("replica")
    if not source:
        raise ConfigError("Source folder is required (--source).")
    if not replica:
        raise ConfigError("Replica folder is required (--replica).")

    interval = args.interval if args.interval is not None else saved.get("interval_sec", DEFAULT_INTERVAL_SEC)
    overwrite = args.overwrite if args.overwrite is not None else saved.get("overwrite", True)
    log_file = args.log_file or saved.get("log_file") or str(DEFAULT_LOG_FILE)
    ignore = args.ignore if args.ignore is not None else saved.get("ignore", [])

    if isinstance(interval, float) and interval.is_integer():
        interval = int(interval)
    if isinstance(interval, bool) or not isinstance(interval, int):
        raise ConfigError(f"Interval must be a whole number of seconds, got {interval!r}.")

    return SyncConfig(
        source_dir=Path(source),
        replica_dir=Path(replica),
        interval_sec=interval,
        overwrite=bool(overwrite),
        log_file=Path(log_file),
        ignore_patterns=tuple(ignore),
    )


def _is_subpath(child: Path, parent: Path) -> bool:
    try:
        child.resolve().relative_to(parent.resolve())
        return True
    except ValueError:
        return False


def validate_config(cfg: SyncConfig) -> SyncConfig:
    """Check a config before the engine is built and return it with resolved roots."""
    if cfg.interval_sec <= 0:
        raise ConfigError(f"Interval must be a positive number of seconds, got {cfg.interval_sec}.")

    source = cfg.source_dir.expanduser().resolve()
    replica = cfg.replica_dir.expanduser().resolve()

    if not source.exists() or not source.is_dir():
        raise ConfigError(f"Source folder does not exist or is not a folder: {source}")
    if source == replica:
        raise ConfigError("Source and replica folders must be different.")
    if _is_subpath(replica, source):
        raise ConfigError("Replica folder must NOT be inside source folder (would cause loops).")
    if _is_subpath(source, replica):
        raise ConfigError("Source folder must NOT be inside replica folder (it would be deleted).")

    return replace(cfg, source_dir=source, replica_dir=replica)


# -------------------------
# Ignore + filesystem helpers
# -------------------------

class IgnoreMatcher:
    def __init__(self, source_root: Path, patterns: list[str] | tuple[str, ...]):
        self.source_root = source_root
        self.spec = PathSpec.from_lines("gitwildmatch", patterns)

    def is_ignored(self, path: Path, is_dir: bool) -> bool:
        if not self.spec.patterns:
            return False
        try:
            rel = path.relative_to(self.source_root)
        except ValueError:
            return False
        rel_posix = rel.as_posix()
        if is_dir and not rel_posix.endswith("/"):
            rel_posix += "/"
        return self.spec.match_file(rel_posix)


def list_entries(directory: Path) -> tuple[dict[str, Path], dict[str, Path], dict[str, Path]]:
    """
    Split the immediate children of directory into (files, dirs, links) keyed by name.
    Symbolic links go to links whatever they point at, and are never classed as files or dirs.
    """
    files: dict[str, Path] = {}
    dirs: dict[str, Path] = {}
    links: dict[str, Path] = {}
    for child in directory.iterdir():
        if child.is_symlink():
            links[child.name] = child
        elif child.is_dir():
            dirs[child.name] = child
        elif child.is_file():
            files[child.name] = child
    return files, dirs, links


# Each helper returns the OSError it hit, or None on success.

def _copy_file(src: Path, dst: Path) -> Optional[OSError]:
    try:
        shutil.copy2(src, dst)
    except OSError as e:
        return e
    return None


def _remove_file(path: Path) -> Optional[OSError]:
    try:
        path.unlink()
    except OSError as e:
        return e
    return None


def _make_dir(path: Path) -> Optional[OSError]:
    try:
        path.mkdir()
    except OSError as e:
        return e
    return None


def _remove_tree(path: Path) -> Optional[OSError]:
    try:
        shutil.rmtree(path)
    except OSError as e:
        return e
    return None


# -------------------------
# Content comparison
# -------------------------

def file_digest(path: Path, algorithm: str = "md5", chunk_size: int = HASH_CHUNK_SIZE) -> str:
    h = hashlib.new(algorithm)
    with path.open("rb") as f:
        while True:
            b = f.read(chunk_size)
            if not b:
                break
            h.update(b)
    return h.hexdigest()


class ContentComparator:
    """
    Decides whether two existing regular files have byte-identical content.

    Different sizes short-circuit to False without reading either file.
    Otherwise the whole of each file is digested and the digests compared;
    a digest collision is the only way to get a wrong True.
    """

    def __init__(self, algorithm: str = "md5", chunk_size: int = HASH_CHUNK_SIZE):
        hashlib.new(algorithm)  # unknown algorithm fails here, not mid-pass
        self.algorithm = algorithm
        self.chunk_size = chunk_size

    def equal(self, a: Path, b: Path) -> bool:
        if a.stat().st_size != b.stat().st_size:
            return False
        return file_digest(a, self.algorithm, self.chunk_size) == file_digest(b, self.algorithm, self.chunk_size)


# -------------------------
# Sync engine
# -------------------------

@dataclass
class PassReport:
    copied: int = 0
    overwritten: int = 0
    deleted: int = 0
    dirs_created: int = 0
    dirs_removed: int = 0
    errors: int = 0

    @property
    def changed(self) -> bool:
        return any((self.copied, self.overwritten, self.deleted, self.dirs_created, self.dirs_removed))

    def summary(self) -> str:
        return (
            f"copied={self.copied} overwritten={self.overwritten} deleted={self.deleted} "
            f"dirs_created={self.dirs_created} dirs_removed={self.dirs_removed} errors={self.errors}"
        )


class IntervalTicker:
    """Sleeps until the next tick is due, waking early if a stop is requested."""

    def wait(self, stop_event: threading.Event, delay: float) -> None:
        stop_event.wait(delay)


class SyncEngine:
    def __init__(
        self,
        config: SyncConfig,
        logger: logging.Logger,
        comparator: Optional[ContentComparator] = None,
        ignore: Optional[IgnoreMatcher] = None,
    ):
        self.config = config
        self.logger = logger
        self.comparator = comparator or ContentComparator()
        self.ignore = ignore or IgnoreMatcher(config.source_dir, config.ignore_patterns)

    def run(self, stop_event: threading.Event, ticker: Optional[IntervalTicker] = None) -> None:
        """
        Run a pass, wait out the rest of the interval, repeat until stop_event is set.

        The stop event is only looked at between passes; a pass in progress
        always runs to completion. An exception escaping a pass is logged and
        the loop carries on with the next tick.
        """
        ticker = ticker or IntervalTicker()
        interval = float(self.config.interval_sec)
        log_action(
            self.logger,
            "SYNC",
            f"started (interval={self.config.interval_sec}s) {self.config.source_dir} -> {self.config.replica_dir}",
        )
        while not stop_event.is_set():
            start = time.monotonic()
            try:
                self.run_pass()
            except Exception as e:
                log_action(self.logger, "SYNC", f"ERROR pass failed: {e}", level=logging.ERROR)

            elapsed = time.monotonic() - start
            ticker.wait(stop_event, max(0.0, interval - elapsed))
        log_action(self.logger, "SYNC", "stopped")

    def run_pass(self) -> PassReport:
        report = PassReport()
        source = self.config.source_dir
        replica = self.config.replica_dir

        if not replica.exists():
            try:
                replica.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                report.errors += 1
                log_action(self.logger, "MKDIR", f"ERROR replica root {replica} | {e}", path=replica, is_dir=True, level=logging.ERROR)
                return report
            report.dirs_created += 1
            log_action(self.logger, "MKDIR", f"(replica root) {replica}", path=replica, is_dir=True)

        try:
            self.reconcile(source, replica, report)
        except OSError as e:
            report.errors += 1
            unreadable = Path(e.filename) if e.filename else source
            log_action(self.logger, "SYNC", f"ERROR pass aborted, cannot read {unreadable} | {e}", path=unreadable, level=logging.ERROR)

        if report.changed or report.errors:
            log_action(self.logger, "SYNC", f"pass done ({report.summary()})")
        return report

    def reconcile(self, source_dir: Path, replica_dir: Path, report: Optional[PassReport] = None) -> PassReport:
        """
        Bring replica_dir and everything below it into line with source_dir.

        Directories are processed from an explicit stack of (source, replica)
        pairs rather than by recursion. Failing to list the top pair raises
        OSError; below the top, the unreadable subtree is logged and skipped.
        """
        report = report if report is not None else PassReport()
        stack = [(source_dir, replica_dir)]
        while stack:
            src_dir, dst_dir = stack.pop()
            try:
                children = self._reconcile_level(src_dir, dst_dir, report)
            except OSError as e:
                if (src_dir, dst_dir) == (source_dir, replica_dir):
                    raise
                report.errors += 1
                log_action(self.logger, "SYNC", f"ERROR skipping {src_dir} | {e}", path=src_dir, is_dir=True, level=logging.ERROR)
                continue
            stack.extend(reversed(children))
        return report

    def _list_source(self, src_dir: Path) -> tuple[dict[str, Path], dict[str, Path]]:
        files, dirs, links = list_entries(src_dir)
        # linked files are mirrored by content; linked folders are not followed
        files.update({n: p for n, p in links.items() if p.is_file()})
        files = {n: p for n, p in files.items() if not self.ignore.is_ignored(p, is_dir=False)}
        dirs = {n: p for n, p in dirs.items() if not self.ignore.is_ignored(p, is_dir=True)}
        return files, dirs

    def _reconcile_level(self, src_dir: Path, dst_dir: Path, report: PassReport) -> list[tuple[Path, Path]]:
        src_files, src_dirs = self._list_source(src_dir)
        dst_files, dst_dirs, dst_links = list_entries(dst_dir)

        # replica links are removed, never followed; a name whose link stays put is left alone
        blocked = {name for name in sorted(dst_links) if not self._delete(dst_links[name], report)}

        for name in sorted(src_files):
            if name in blocked:
                continue
            src = src_files[name]
            dst = dst_dir / name

            if name in dst_dirs:
                # a folder stands where the file belongs; one removal attempt per pass
                del dst_dirs[name]
                if self._remove_dir(dst, report):
                    self._copy(src, dst, "COPY", report)
            elif name not in dst_files:
                self._copy(src, dst, "COPY", report)
            elif self.config.overwrite:
                try:
                    same = self.comparator.equal(src, dst)
                except OSError as e:
                    report.errors += 1
                    log_action(self.logger, "OVERWRITE", f"ERROR compare {src} <> {dst} | {e}", path=dst, is_dir=False, level=logging.ERROR)
                    continue
                if not same:
                    self._copy(src, dst, "OVERWRITE", report)

        for name in sorted(set(dst_files) - set(src_files)):
            self._delete(dst_files[name], report)

        children = []
        for name in sorted(src_dirs):
            if name in blocked:
                continue
            dst = dst_dir / name
            if name not in dst_dirs:
                err = _make_dir(dst)
                if err is not None:
                    report.errors += 1
                    log_action(self.logger, "MKDIR", f"ERROR {dst} | {err}", path=dst, is_dir=True, level=logging.ERROR)
                    continue
                report.dirs_created += 1
                log_action(self.logger, "MKDIR", f"{dst}", path=dst, is_dir=True)
            children.append((src_dirs[name], dst))

        for name in sorted(set(dst_dirs) - set(src_dirs)):
            self._remove_dir(dst_dirs[name], report)

        return children

    def _copy(self, src: Path, dst: Path, action: str, report: PassReport) -> None:
        err = _copy_file(src, dst)
        if err is not None:
            report.errors += 1
            log_action(self.logger, action, f"ERROR {src} -> {dst} | {err}", path=dst, is_dir=False, level=logging.ERROR)
            return
        if action == "OVERWRITE":
            report.overwritten += 1
        else:
            report.copied += 1
        log_action(self.logger, action, f"{src} -> {dst}", path=dst, is_dir=False)

    def _delete(self, path: Path, report: PassReport) -> bool:
        err = _remove_file(path)
        if err is not None:
            report.errors += 1
            log_action(self.logger, "DELETE", f"ERROR {path} | {err}", path=path, is_dir=False, level=logging.ERROR)
            return False
        report.deleted += 1
        log_action(self.logger, "DELETE", f"{path}", path=path, is_dir=False)
        return True

    def _remove_dir(self, path: Path, report: PassReport) -> bool:
        err = _remove_tree(path)
        if err is not None:
            report.errors += 1
            log_action(self.logger, "RMDIR", f"ERROR {path} | {err}", path=path, is_dir=True, level=logging.ERROR)
            return False
        report.dirs_removed += 1
        log_action(self.logger, "RMDIR", f"{path}", path=path, is_dir=True)
        return True


class SyncThread(threading.Thread):
    def __init__(self, engine: SyncEngine, stop_event: threading.Event, ticker: Optional[IntervalTicker] = None):
        super().__init__(daemon=True, name="tree-mirror")
        self.engine = engine
        self.stop_event = stop_event
        self.ticker = ticker

    def run(self) -> None:
        self.engine.run(self.stop_event, self.ticker)


# -------------------------
# Main
# -------------------------

def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    try:
        cfg = build_effective_config(args)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2

    logger = setup_logger(cfg.log_file)

    try:
        cfg = validate_config(cfg)
        logger.info("Source : %s", cfg.source_dir)
        logger.info("Replica: %s", cfg.replica_dir)
    except ConfigError as e:
        logger.error("Config error: %s", e)
        return 2

    try:
        save_config_file(replace(cfg, log_file=cfg.log_file.expanduser().resolve()))
        logger.info("Saved config: %s", CONFIG_PATH)
    except OSError as e:
        logger.error("Could not save config: %s", e)

    engine = SyncEngine(cfg, logger)

    if args.once:
        report = engine.run_pass()
        return 1 if report.errors else 0

    stop_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: stop_event.set())

    worker = SyncThread(engine, stop_event)
    logger.info("Starting sync loop... (Ctrl+C to stop)")
    worker.start()

    try:
        while not stop_event.is_set():
            stop_event.wait(0.5)
    except KeyboardInterrupt:
        logger.info("Stopping...")
    finally:
        stop_event.set()
        worker.join()
        logger.info("Stopped.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
