"""Process exit codes used by the stash CLI."""

SUCCESS = 0
GENERAL_ERROR = 1
USAGE_ERROR = 2
NOT_FOUND = 3
STORAGE_ERROR = 4
WRITE_CONFLICT = 5
INTEGRITY_ERROR = 6
