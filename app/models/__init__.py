from app.models.user import User
from app.models.connection import UserConnection
from app.models.transaction import Transaction, TransactionMember
from app.models.debt import Debt
from app.models.monthly_balance import MonthlyBalance
