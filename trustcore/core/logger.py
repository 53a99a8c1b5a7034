"""
TrustCore - Logger
==================

Tree-style structured logger shared by every TrustCore service.

Features:
- Unique run ID per process so multiple instances can be told apart
- Tree-style log formatting for structured data
- Console and file output simultaneously
- Daily log folders with separate log and error files
- Automatic cleanup of old logs (7+ days)

Log Structure:
    logs/
    ├── 2026-10-18/
    │   ├── TrustCore-2026-10-18.log
    │   └── TrustCore-Errors-2026-10-18.log
    └── ...

Environment:
    TRUSTCORE_LOG_DIR: Base directory for log folders (default: ./logs)
    TRUSTCORE_LOG_TO_FILE: "0" disables file output (console only)
    TRUSTCORE_TIMEZONE: IANA timezone for timestamps (default: UTC)
    DEBUG: "1" enables debug output
"""


import os
import re
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Tuple, Optional, Any, Dict
from zoneinfo import ZoneInfo


# =============================================================================
# Constants
# =============================================================================

LOG_RETENTION_DAYS = 7

LOG_FILE_PREFIX = "TrustCore"

EMOJI_PATTERN = re.compile(
    "["
    "\U0001F600-\U0001F64F"
    "\U0001F300-\U0001F5FF"
    "\U0001F680-\U0001F6FF"
    "\U0001F900-\U0001F9FF"
    "\U00002600-\U000026FF"
    "\U00002700-\U000027BF"
    "]+",
    flags=re.UNICODE
)

# level -> (emoji, status shown on plain messages, mirrored to the error log)
LEVELS: Dict[str, Tuple[str, str, bool]] = {
    "debug": ("🔍", "Debug", False),
    "info": ("ℹ️", "OK", False),
    "success": ("✅", "Complete", False),
    "warning": ("⚠️", "Warning", True),
    "error": ("❌", "Failed", True),
}

Items = List[Tuple[str, Any]]


# =============================================================================
# Tree Symbols
# =============================================================================

class TreeSymbols:
    """Box-drawing characters for tree formatting."""
    BRANCH = "├─"
    LAST = "└─"
    PIPE = "│ "
    SPACE = "  "


def _branches(items: Items, indent: str = "  ") -> List[str]:
    """Render (key, value) pairs as tree branch lines."""
    lines = []
    for i, (key, value) in enumerate(items):
        prefix = TreeSymbols.LAST if i == len(items) - 1 else TreeSymbols.BRANCH
        lines.append(f"{indent}{prefix} {key}: {value}")
    return lines


# =============================================================================
# MiniTreeLogger
# =============================================================================

class MiniTreeLogger:
    """Logger with tree-style formatting and daily file rotation."""

    def __init__(self) -> None:
        self.run_id: str = uuid.uuid4().hex[:8]
        self.to_file: bool = os.getenv("TRUSTCORE_LOG_TO_FILE", "1").lower() not in ("0", "false", "no")
        self._timezone = self._load_timezone()
        self.logs_base_dir = Path(os.getenv("TRUSTCORE_LOG_DIR", "logs"))
        self.current_date = ""

        if self.to_file:
            self._rotate("NEW SESSION - RUN ID")
            if self.to_file:
                self._cleanup_old_logs()

    # =========================================================================
    # Files
    # =========================================================================

    @staticmethod
    def _load_timezone() -> ZoneInfo:
        name = os.getenv("TRUSTCORE_TIMEZONE", "UTC")
        try:
            return ZoneInfo(name)
        except (KeyError, ValueError):
            return ZoneInfo("UTC")

    def _today(self) -> str:
        return datetime.now(self._timezone).strftime("%Y-%m-%d")

    def _rotate(self, banner: str) -> None:
        """Point the log files at today's folder and stamp a banner in both."""
        self.current_date = self._today()
        log_dir = self.logs_base_dir / self.current_date
        self.log_file = log_dir / f"{LOG_FILE_PREFIX}-{self.current_date}.log"
        self.error_file = log_dir / f"{LOG_FILE_PREFIX}-Errors-{self.current_date}.log"

        rule = "=" * 60
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self.to_file = False
            return
        self._append(f"\n{rule}\n{banner}: {self.run_id}\n{self._get_timestamp()}\n{rule}\n", to_error=True)

    def _cleanup_old_logs(self) -> None:
        """Delete date folders older than the retention period."""
        now = datetime.now(self._timezone)
        deleted = 0
        try:
            for folder in self.logs_base_dir.iterdir():
                try:
                    folder_date = datetime.strptime(folder.name, "%Y-%m-%d").replace(tzinfo=self._timezone)
                except ValueError:
                    continue
                if folder.is_dir() and (now - folder_date).days > LOG_RETENTION_DAYS:
                    shutil.rmtree(folder)
                    deleted += 1
        except OSError as e:
            print(f"[LOG CLEANUP ERROR] {e}")
            return

        if deleted:
            print(f"[LOG CLEANUP] Deleted {deleted} old log folders (>{LOG_RETENTION_DAYS} days)")

    def _append(self, text: str, to_error: bool = False) -> None:
        if not self.to_file:
            return
        targets = (self.log_file, self.error_file) if to_error else (self.log_file,)
        try:
            for path in targets:
                with open(path, "a", encoding="utf-8") as f:
                    f.write(f"{text}\n")
        except OSError:
            pass

    # =========================================================================
    # Output
    # =========================================================================

    def _get_timestamp(self) -> str:
        current_time = datetime.now(self._timezone)
        return current_time.strftime(f"[%H:%M:%S {current_time.strftime('%Z')}]")

    def _emit(self, title: str, emoji: str, lines: List[str], to_error: bool = False) -> None:
        """Print a timestamped title plus its branch lines, then mirror to the log files."""
        if self.to_file and self._today() != self.current_date:
            self._rotate("LOG ROTATION - Continuing session")

        clean = EMOJI_PATTERN.sub("", title).strip()
        block = [f"{self._get_timestamp()} {emoji} {clean}", *lines, ""]
        for line in block:
            print(line)
        self._append("\n".join(block), to_error=to_error)

    def _log(self, level: str, msg: str, details: Optional[Items]) -> None:
        emoji, status, to_error = LEVELS[level]
        lines = _branches(details) if details else [f"  {TreeSymbols.LAST} Status: {status}"]
        self._emit(msg, emoji, lines, to_error=to_error)

    # =========================================================================
    # Log Levels
    # =========================================================================

    def debug(self, msg: str, details: Optional[Items] = None) -> None:
        """Only written when the DEBUG env var is set."""
        if os.getenv("DEBUG", "").lower() in ("1", "true", "yes"):
            self._log("debug", msg, details)

    def info(self, msg: str, details: Optional[Items] = None) -> None:
        self._log("info", msg, details)

    def success(self, msg: str, details: Optional[Items] = None) -> None:
        self._log("success", msg, details)

    def warning(self, msg: str, details: Optional[Items] = None) -> None:
        self._log("warning", msg, details)

    def error(self, msg: str, details: Optional[Items] = None) -> None:
        self._log("error", msg, details)

    # =========================================================================
    # Trees
    # =========================================================================

    def tree(self, title: str, items: Items, emoji: str = "📦") -> None:
        """
        Log structured data in tree format.

        Example output:
            [12:00:00 UTC] 📦 Message Sent
              ├─ Sender: user_1
              ├─ Recipient: user_2
              └─ Length: 42
        """
        self._emit(title, emoji, _branches(items))

    def tree_section(self, title: str, sections: Dict[str, Items], emoji: str = "📊") -> None:
        """
        Log multiple sections in tree format.

        Example output:
            [12:00:00 UTC] 📊 Reputation Recomputed
              ├─ Before
              │   ├─ Score: 90
              │   └─ Tier: 1
              └─ After
                  ├─ Score: 100
                  └─ Tier: 2
        """
        lines: List[str] = []
        names = list(sections)
        for i, name in enumerate(names):
            last = i == len(names) - 1
            lines.append(f"  {TreeSymbols.LAST if last else TreeSymbols.BRANCH} {name}")
            continuation = TreeSymbols.SPACE if last else TreeSymbols.PIPE
            lines.extend(_branches(sections[name], indent=f"  {continuation} "))
        self._emit(title, emoji, lines)

    def error_tree(self, title: str, error: Exception, context: Optional[Items] = None) -> None:
        """Log an exception with context (also written to the error log)."""
        items: Items = [("Type", type(error).__name__), ("Message", str(error))]
        items.extend(context or [])
        self._emit(title, "❌", _branches(items), to_error=True)

    def rejection_tree(
        self,
        action: str,
        rule: str,
        actor_id: Optional[str],
        reason: str,
        extra: Optional[Items] = None
    ) -> None:
        """
        Log a trust-and-safety rejection.

        Example output:
            [12:00:00 UTC] 🛑 Message Rejected
              ├─ Rule: duplicate_content
              ├─ Actor: user_1
              └─ Reason: Message blocked. Automated behavior detected.
        """
        items: Items = [
            ("Rule", rule),
            ("Actor", actor_id or "anonymous"),
            ("Reason", reason[:100] + "..." if len(reason) > 100 else reason),
        ]
        items.extend(extra or [])
        self.tree(action, items, emoji="🛑")

    def startup_tree(self, service_name: str, host: str, port: int, extra: Optional[Items] = None) -> None:
        items: Items = [("Host", host), ("Port", port), ("Run ID", self.run_id)]
        items.extend(extra or [])
        self.tree(f"Service Ready: {service_name}", items, emoji="🚀")


# =============================================================================
# Module Export
# =============================================================================

logger = MiniTreeLogger()

__all__ = ["logger", "MiniTreeLogger", "TreeSymbols"]
