import enum

class Role(str, enum.Enum):
    admin = "admin"
    pharmacist = "pharmacist"
    user = "user"

class Period(str, enum.Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"

class RegulatoryClass(str, enum.Enum):
    controlled = "controlled"
    dangerous = "dangerous"

class ReportSection(str, enum.Enum):
    sales = "sales"
    inventory = "inventory"
    thai_fda = "thaiFda"

class ActivityType(str, enum.Enum):
    sale_recorded = "SALE_RECORDED"
    lot_received = "LOT_RECEIVED"
    report_exported = "REPORT_EXPORTED"
