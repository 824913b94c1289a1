# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles
# (students.office_uuid → offices.uuid, student_attendances → attendance_records, ...).

from presence_sync.models.office import Level, Office  # noqa: F401  (doit précéder student)
from presence_sync.models.student import Student  # noqa: F401
from presence_sync.models.attendance import AttendanceRecord, StudentAttendance  # noqa: F401
from presence_sync.models.sync_queue import SyncQueueEntry  # noqa: F401
