# Models package — import all models here so Alembic can discover them.

from app.models.user import User  # noqa: F401
from app.models.company import Company  # noqa: F401
from app.models.document import Document  # noqa: F401
