import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# sqlite file next to the repo unless overridden
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR}/school_assignments.db")

# Deadline policy
DUE_SOON_DAYS = 3  # assignments due within 3 days are "due-soon"

# Assignment field bounds
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000

# Pagination
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
