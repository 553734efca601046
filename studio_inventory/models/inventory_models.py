from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from studio_inventory.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    full_name = Column(String(100), nullable=False)
    role = Column(String(20), default="user")
    phone = Column(String(20))
    department = Column(String(50))
    pin_code = Column(String(255))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    Transactions = relationship("Transaction", back_populates="User", foreign_keys="Transaction.user_id")


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String(50), nullable=False, unique=True)
    description = Column(Text)
    color = Column(String(7))
    created_at = Column(DateTime, server_default=func.now())

    Equipment = relationship("Equipment", back_populates="Category")


class Equipment(Base):
    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    serial_number = Column(String(100), unique=True)
    barcode = Column(String(100), index=True)
    model = Column(String(100))
    manufacturer = Column(String(100))
    category_id = Column(Integer, ForeignKey("categories.id"), index=True)
    purchase_date = Column(Date)
    purchase_price = Column(Numeric(10, 2))
    current_value = Column(Numeric(10, 2))
    condition = Column(String(20), default="normal")
    # Administrative status (needs_maintenance, decommissioned, ...); the
    # checkout status is derived from transactions, never stored here.
    status = Column(String(30), default="available")
    location = Column(String(100))
    description = Column(Text)
    notes = Column(Text)
    image_path = Column(String(255))
    qr_code = Column(String(100))
    included_in_kit = Column(Boolean, default=False)
    kit_contents = Column(Text)
    needs_relabeling = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    Category = relationship("Category", back_populates="Equipment")
    Transactions = relationship("Transaction", back_populates="Equipment")
    MaintenanceRecords = relationship("MaintenanceRecord", back_populates="Equipment")
    DamageReports = relationship("DamageReport", back_populates="Equipment")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    transaction_type = Column(String(20), nullable=False, index=True)
    batch_id = Column(String(50), index=True)
    checkout_date = Column(DateTime)
    expected_return_date = Column(DateTime)
    actual_return_date = Column(DateTime)
    condition_on_checkout = Column(String(20))
    condition_on_return = Column(String(20))
    purpose = Column(String(50), index=True)
    location = Column(String(50))
    notes = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    created_by = Column(Integer, ForeignKey("users.id"))

    Equipment = relationship("Equipment", back_populates="Transactions")
    User = relationship("User", back_populates="Transactions", foreign_keys=[user_id])
    CreatedBy = relationship("User", foreign_keys=[created_by])


class MaintenanceRecord(Base):
    __tablename__ = "maintenance_records"

    id = Column(Integer, primary_key=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=False)
    maintenance_type = Column(String(50), nullable=False)
    description = Column(Text)
    cost = Column(Numeric(10, 2))
    performed_by = Column(String(100))
    performed_date = Column(Date)
    next_maintenance_date = Column(Date)
    notes = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    created_by = Column(Integer, ForeignKey("users.id"))

    Equipment = relationship("Equipment", back_populates="MaintenanceRecords")


class DamageReport(Base):
    __tablename__ = "damage_reports"

    id = Column(Integer, primary_key=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=False)
    reported_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    damage_description = Column(Text, nullable=False)
    damage_severity = Column(String(20), default="minor")
    estimated_repair_cost = Column(Numeric(10, 2))
    repair_status = Column(String(20), default="reported")
    image_paths = Column(Text)
    reported_date = Column(DateTime, server_default=func.now())
    resolved_date = Column(DateTime)
    notes = Column(Text)

    Equipment = relationship("Equipment", back_populates="DamageReports")


class ActivityLog(Base):
    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    action = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer)
    changes_json = Column(Text)
    ip_address = Column(String(45))
    user_agent = Column(Text)
    created_at = Column(DateTime, server_default=func.now(), index=True)

    User = relationship("User")


class BarcodeSequence(Base):
    __tablename__ = "barcode_sequences"
    __table_args__ = (UniqueConstraint("type_code", "year", name="uq_barcode_sequences_type_year"),)

    id = Column(Integer, primary_key=True)
    type_code = Column(String(2), nullable=False)
    year = Column(String(2), nullable=False)
    last_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, server_default=func.now())
