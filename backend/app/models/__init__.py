from app.models.user import User  # noqa: F401
from app.models.permission import Permission, RolePermission  # noqa: F401
from app.models.coaching import CoachingSession  # noqa: F401
from app.models.agent_metric import AgentMetric  # noqa: F401
from app.models.quick_note import QuickNote  # noqa: F401
from app.models.audit import AuditLog  # noqa: F401
