"""
Énumérations partagées par les modèles, les schémas et le moteur de synchronisation.
"""

from enum import Enum


class EntityKind(str, Enum):
    """Entités synchronisées ; la valeur est le nom de table (local et distant)."""
    OFFICES = "offices"
    LEVELS = "levels"
    STUDENTS = "students"
    ATTENDANCE_RECORDS = "attendance_records"


class SyncTarget(str, Enum):
    """Cibles acceptées par syncEntity (vocabulaire de l'interface)."""
    OFFICES = "offices"
    LEVELS = "levels"
    STUDENTS = "students"
    ATTENDANCE = "attendance"

    @property
    def entity(self) -> EntityKind:
        if self is SyncTarget.ATTENDANCE:
            return EntityKind.ATTENDANCE_RECORDS
        return EntityKind(self.value)


class SyncOperation(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SyncState(str, Enum):
    SYNCED = "synced"
    PENDING_INSERT = "pending_insert"
    PENDING_UPDATE = "pending_update"
    PENDING_DELETE = "pending_delete"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    EXCUSED = "excused"


# Ordre de téléchargement : parents avant enfants
DOWNLOAD_ORDER = (
    EntityKind.OFFICES,
    EntityKind.LEVELS,
    EntityKind.STUDENTS,
    EntityKind.ATTENDANCE_RECORDS,
)
