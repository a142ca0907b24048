"""Constants used by rules and version reporting."""

RULE_STORAGE_NAME_CHOSEN = "CHOSEN"
# Create a new directory for album files.
RULE_DIR_PATH_NEW_FOR_ALBUM = "NEW-FOR-ALBUM"

VERSION = "dev"
BUILD_TIME = "unknown"
GIT_COMMIT = "unknown"