from courtbook.models.organization import Organization, OrganizationMember, AppSetting
from courtbook.models.user import User, Guest
from courtbook.models.court import Court, CourtBlock, BlockReason
from courtbook.models.booking import Booking, BookingSlot, BookingStatus, BookingType
from courtbook.models.payment import Payment, PaymentStatus
from courtbook.models.recurring import RecurringBooking
from courtbook.models.audit_log import AuditLog
