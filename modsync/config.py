import os

# Remote update store. Overridable so a modpack author can point at their own repo.
UPDATE_REPO = os.getenv("MODSYNC_REPO", "")
UPDATE_BRANCH = os.getenv("MODSYNC_BRANCH", "main")
GITHUB_API = os.getenv("MODSYNC_GITHUB_API", "https://api.github.com")
GITHUB_TOKEN = os.getenv("MODSYNC_GITHUB_TOKEN")
USER_AGENT = "modsync/0.3"

DOWNLOAD_TIMEOUT = float(os.getenv("MODSYNC_TIMEOUT", "30"))
API_TIMEOUT = 15
CHUNK_SIZE = 1024 * 1024
DOWNLOAD_WORKERS = max(1, int(os.getenv("MODSYNC_WORKERS", "4")))

# Suffix the game launcher appends to addons the player switched off.
DISABLED_SUFFIX = ".disabled"

STATE_DIR_NAME = ".modsync"
STATE_FILE_NAME = os.getenv("MODSYNC_STATE_FILE", "installed.json")
MANIFEST_FILE_NAME = "manifest.json"
