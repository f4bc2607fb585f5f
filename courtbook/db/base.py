from courtbook.db.session import Base
from courtbook.models.organization import Organization, OrganizationMember, AppSetting
from courtbook.models.user import User, Guest
from courtbook.models.court import Court, CourtBlock
from courtbook.models.booking import Booking, BookingSlot
from courtbook.models.payment import Payment
from courtbook.models.recurring import RecurringBooking
from courtbook.models.audit_log import AuditLog
