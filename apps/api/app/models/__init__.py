from app.commissions.models import BonusTier, CommissionRequest
from app.history.models import EditHistoryEntry
from app.pipeline.models import Job, User

__all__ = [
	"BonusTier",
	"CommissionRequest",
	"EditHistoryEntry",
	"Job",
	"User",
]
