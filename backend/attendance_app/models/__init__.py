# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles.

from attendance_app.models.user import User  # noqa: F401  doit précéder course et sessions
from attendance_app.models.course import Course  # noqa: F401
from attendance_app.models.attendance_session import AttendanceSession  # noqa: F401
from attendance_app.models.attendance_record import AttendanceRecord  # noqa: F401
from attendance_app.models.signature import SignatureObject  # noqa: F401
