# Models package
from inventaris.models.user import User, UserRole, UserStatus, STAFF_ROLES
from inventaris.models.category import Category
from inventaris.models.item import Item, ItemCondition, CONDITION_RANK
from inventaris.models.loan import Loan, LoanEvent, LoanStatus
