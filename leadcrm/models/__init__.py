# Models package: import all models here so Alembic can discover them.

from leadcrm.models.user import User  # noqa: F401
from leadcrm.models.course import Course  # noqa: F401
from leadcrm.models.lead import Lead  # noqa: F401
from leadcrm.models.call_log import CallLog  # noqa: F401
from leadcrm.models.call_stats import DailyCallStats  # noqa: F401
from leadcrm.models.counselor_note import CounselorNote  # noqa: F401
from leadcrm.models.audit import AuditEvent  # noqa: F401
