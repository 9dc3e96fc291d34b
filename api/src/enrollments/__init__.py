"""Course enrollment module (read by the progress sync engine)."""

from .models import ENROLLMENTS_TABLES_CQL, Enrollment, EnrollmentStatus


__all__ = [
    "ENROLLMENTS_TABLES_CQL",
    "Enrollment",
    "EnrollmentStatus",
]
