from stockroom.models.item import Item
from stockroom.models.purchase import Purchase, PurchaseLine
from stockroom.models.day_end import DayEndLine, DayEndReport, SalesChannel
from stockroom.models.adjustment import StockAdjustment
from stockroom.models.audit_log import AuditLog
