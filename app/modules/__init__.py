"""Domain modules package."""

from app.modules.availability import models as availability_models  # noqa: F401
from app.modules.sessions import models as sessions_models  # noqa: F401
