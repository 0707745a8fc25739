import enum

class OrderStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"

class StockStatus(str, enum.Enum):
    in_stock = "in-stock"
    low_stock = "low-stock"

class AssetKind(str, enum.Enum):
    credential = "credential"
    code = "code"
