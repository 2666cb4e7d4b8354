from enum import Enum

class TransactionType(str, Enum):
    revenue = "revenue"
    personal = "personal"
    shared = "shared"

class PaymentMode(str, Enum):
    cash = "cash"
    online = "online"

class SplitMethod(str, Enum):
    equally = "equally"
    percentages = "percentages"
    settlement = "settlement"

class ExpenseCategory(str, Enum):
    rent = "rent"
    food = "food"
    social = "social"
    transport = "transport"
    apparel = "apparel"
    beauty = "beauty"
    education = "education"
    other = "other"

class ActivityAction(str, Enum):
    created = "created"
    updated = "updated"
    deleted = "deleted"
