from .catalog import User, Terminal, Customer, Product, StoreCreditAccount
from .sales import Transaction, TransactionItem, Payment, PaymentDetail
from .gift_cards import GiftCard, GiftCardTransaction
from .documents import NumberSequence, AuditEvent

__all__ = [
    'User', 'Terminal', 'Customer', 'Product', 'StoreCreditAccount',
    'Transaction', 'TransactionItem', 'Payment', 'PaymentDetail',
    'GiftCard', 'GiftCardTransaction',
    'NumberSequence', 'AuditEvent',
]
