import os
from typing import Optional

# ========= Static config =========
SERVER_NAME = "fsctx"
SERVER_VERSION = "0.4.0"
PROTOCOL_VERSION = "2024-11-05"

INSTRUCTIONS = (
    "Filesystem operations with session support. Call set_working_directory once, "
    "then use paths relative to it. Pass session_id to keep separate working "
    "directories; omitted session ids share the 'default' session."
)

DEFAULT_SESSION_ID = "default"
SESSION_FILE = os.path.join("~", ".ai-tools", "sessions", "fs.json")

DEFAULT_SEARCH_MAX_RESULTS = 50
DEFAULT_SEARCH_CONTEXT_LINES = 1
SEARCH_EXCLUDED_DIRS = frozenset({".git", "target", "node_modules", ".svn", ".hg"})
SEARCH_BINARY_EXTENSIONS = frozenset({
    "exe", "dll", "so", "dylib", "a", "o", "obj",
    "png", "jpg", "jpeg", "gif", "bmp", "ico",
    "mp3", "mp4", "avi", "mov",
    "zip", "tar", "gz",
})

IGNORE_FILES = (".gitignore", ".ignore")
GIT_EXCLUDE_FILE = os.path.join(".git", "info", "exclude")
GLOB_CHARS = "*?["

READ_SEPARATOR_LENGTH = 10
APPEND_SEAM_LINES = 3

# ========= Runtime Configuration =========
class ServerConfig:
    def __init__(self):
        self.LOG_LOCATION: Optional[str] = None
        self.LOG_LEVEL: str = "INFO"
        self.SESSION_FILE: str = os.path.expanduser(SESSION_FILE)

    def load_from_env(self):
        log_location = os.environ.get("LOG_LOCATION")
        if log_location:
            self.LOG_LOCATION = os.path.expanduser(log_location)
        self.LOG_LEVEL = os.environ.get("LOG_LEVEL", self.LOG_LEVEL).upper()

# Global instance
config = ServerConfig()
