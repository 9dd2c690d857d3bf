# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles.

# users doit précéder courses (clé étrangère teacher_id)
from app.models.user import User  # noqa: F401
from app.models.student import Student  # noqa: F401
from app.models.course import Course, CourseStudent  # noqa: F401
from app.models.attendance import AttendanceRecord  # noqa: F401
