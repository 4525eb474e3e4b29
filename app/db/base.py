# Import all models here so Base.metadata sees every table (used by init_db, tests and alembic)
from app.db.base_class import Base  # noqa: F401
from app.models.assignment import Assignment  # noqa: F401
from app.models.enrollment import Enrollment  # noqa: F401
from app.models.school_class import SchoolClass  # noqa: F401
from app.models.submission import Submission  # noqa: F401
from app.models.user import User  # noqa: F401
