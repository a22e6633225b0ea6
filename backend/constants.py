from decimal import Decimal

# Roles are derived from resident flags rather than stored.
ROLE_RESIDENT = "RESIDENT"
ROLE_HOMEOWNER = "HOMEOWNER"
ROLE_RENTER = "RENTER"
ROLE_BOARD = "BOARD"
ROLE_DEV = "DEV"

MANAGER_ROLES = (ROLE_BOARD, ROLE_DEV)

USER_TYPE_HOMEOWNER = "homeowner"
USER_TYPE_BOARD_MEMBER = "board-member"
USER_TYPE_RENTER = "renter"
USER_TYPE_NON_RESIDENT = "non-resident"

FEE_BEARING_USER_TYPES = {USER_TYPE_HOMEOWNER, USER_TYPE_BOARD_MEMBER}

MIN_POLL_OPTIONS = 2
MAX_POLL_OPTIONS = 10

ANNUAL_FEE_NAME = "Annual HOA Fee"
DEFAULT_ANNUAL_FEE_AMOUNT = Decimal("300.00")
ANNUAL_FEE_DESCRIPTION = (
    "Annual HOA assessment for {year} - covers maintenance, services, and community improvements"
)

FEE_TYPE_FEE = "Fee"
FEE_TYPE_FINE = "Fine"

STATUS_PENDING = "Pending"
STATUS_PAID = "Paid"
STATUS_OVERDUE = "Overdue"
CHARGE_STATUSES = (STATUS_PENDING, STATUS_PAID, STATUS_OVERDUE)

VERIFICATION_PENDING = "Pending"
VERIFICATION_VERIFIED = "Verified"
VERIFICATION_REJECTED = "Rejected"

PAYMENT_METHOD_VENMO = "Venmo"
PAYMENT_METHOD_STRIPE = "stripe"
