from .auth import User, SessionToken
from .inventory import Product
from .cart import Cart, CartItem
from .reports import Report, ReportItem, ReportCategory, ReportExpenditure
from .debts import Debt, DebtPayment
from .expenditures import Expenditure

__all__ = [
    'User', 'SessionToken',
    'Product',
    'Cart', 'CartItem',
    'Report', 'ReportItem', 'ReportCategory', 'ReportExpenditure',
    'Debt', 'DebtPayment',
    'Expenditure',
]
