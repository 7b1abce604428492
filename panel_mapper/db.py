import json
import logging
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from panel_mapper.core.settings import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(url: str, **kwargs):
    """
    Build an engine for `url`. SQLite connections get foreign keys switched on
    so ON DELETE rules and reference checks are enforced.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)
        kwargs.setdefault("pool_recycle", 300)
    eng = create_engine(url, **kwargs)

    if eng.dialect.name == "sqlite":
        @event.listens_for(eng, "connect")
        def _sqlite_fk_pragma(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return eng


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# -------------------------------------------------------------------
# TABLES
# -------------------------------------------------------------------
class FloorPlanRow(Base):
    __tablename__ = "floor_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    # lowercased name; enforces case-insensitive uniqueness
    name_key = Column(String(200), nullable=False, unique=True)
    rooms_data = Column(Text, nullable=False, default="[]")
    view_box = Column(String(100))
    svg_content = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DeviceTypeRow(Base):
    __tablename__ = "device_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    icon = Column(String(50))
    fields = Column(Text, nullable=False, default="{}")
    is_custom = Column(Boolean, nullable=False, default=False)
    category = Column(String(30), nullable=False, default="general")
    default_wattage = Column(Float, nullable=False, default=0)
    default_voltage = Column(Float, nullable=False, default=120)
    default_amperage = Column(Float, nullable=False, default=15)
    requires_gfci = Column(Boolean, nullable=False, default=False)
    requires_afci = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class RoomRow(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100))
    svg_ref = Column(String(100), unique=True)


class PanelRow(Base):
    __tablename__ = "electrical_panels"

    id = Column(Integer, primary_key=True, autoincrement=True)
    floor_plan_id = Column(Integer, ForeignKey("floor_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    panel_name = Column(String(100), nullable=False)
    x_position = Column(Float, nullable=False, default=0)
    y_position = Column(Float, nullable=False, default=0)
    panel_type = Column(String(30), nullable=False, default="main")
    main_breaker_amps = Column(Integer, default=200)
    total_positions = Column(Integer, nullable=False, default=30)
    created_at = Column(DateTime, default=datetime.utcnow)


class CircuitRow(Base):
    __tablename__ = "electrical_circuits"
    __table_args__ = (UniqueConstraint("panel_id", "breaker_position", name="uq_circuit_position"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    panel_id = Column(Integer, ForeignKey("electrical_panels.id", ondelete="CASCADE"), nullable=False, index=True)
    breaker_position = Column(Integer, nullable=False)
    breaker_type = Column(String(20), nullable=False, default="single")
    amperage = Column(Integer, nullable=False)
    wire_gauge = Column(String(20), default="12 AWG")
    circuit_label = Column(String(200))
    color_code = Column(String(20), default="#000000")
    secondary_position = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow)


class EntityRow(Base):
    """A placed component. room_id points into the floor plan's rooms_data geometry."""
    __tablename__ = "entities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    x = Column(Float, nullable=False, default=0)
    y = Column(Float, nullable=False, default=0)
    room_id = Column(Integer)
    device_type_id = Column(Integer, ForeignKey("device_types.id"))
    floor_plan_id = Column(Integer, ForeignKey("floor_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    circuit_id = Column(Integer, ForeignKey("electrical_circuits.id", ondelete="SET NULL"), index=True)
    label = Column(String(200))
    voltage = Column(Float, default=120)
    amperage = Column(Float, default=15)
    gfci = Column(Boolean, default=False)
    properties = Column(Text, default="{}")
    wattage = Column(Float, default=0)


class ViolationRow(Base):
    __tablename__ = "code_violations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    floor_plan_id = Column(Integer, ForeignKey("floor_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_id = Column(Integer, ForeignKey("entities.id", ondelete="CASCADE"))
    violation_type = Column(String(50), nullable=False)
    violation_code = Column(String(30))
    description = Column(Text, nullable=False)
    severity = Column(String(10), nullable=False, default="warning")
    resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)


class MaterialRow(Base):
    __tablename__ = "materials_list"

    id = Column(Integer, primary_key=True, autoincrement=True)
    floor_plan_id = Column(Integer, ForeignKey("floor_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    material_type = Column(String(30), nullable=False)
    description = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit = Column(String(20), default="each")
    unit_cost = Column(Float, default=0.0)
    total_cost = Column(Float, default=0.0)
    supplier = Column(String(100))
    part_number = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow)


class ProjectTemplateRow(Base):
    __tablename__ = "project_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    template_type = Column(String(20), nullable=False, default="residential")
    code_requirements = Column(Text, default="{}")
    is_system_template = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


# -------------------------------------------------------------------
# SEED DATA
# -------------------------------------------------------------------
# (name, icon, category, watts, volts, amps, requires_gfci, requires_afci)
DEFAULT_DEVICE_TYPES = [
    ("Light", "Lightbulb", "lighting", 60, 120, 15, False, True),
    ("Outlet", "Outlet", "receptacle", 0, 120, 15, False, True),
    ("Switch", "ToggleOn", "control", 0, 120, 15, False, True),
    ("Heater", "LocalFireDepartment", "heating", 1500, 120, 15, False, False),
    ("Baseboard Heater", "Thermostat", "heating", 1000, 240, 15, False, False),
    ("Jacuzzi", "HotTub", "appliance", 1500, 240, 20, True, False),
    ("Water Heater", "Water", "appliance", 4500, 240, 30, False, False),
    ("HVAC Unit", "Air", "hvac", 3000, 240, 20, False, False),
    ("Dryer", "LocalLaundryService", "appliance", 5000, 240, 30, False, False),
    ("Range/Oven", "Kitchen", "appliance", 8000, 240, 40, False, False),
    ("Dishwasher", "Kitchen", "appliance", 1800, 120, 20, True, False),
    ("Garbage Disposal", "Delete", "appliance", 500, 120, 15, True, False),
    ("Ceiling Fan", "Air", "lighting", 75, 120, 15, False, True),
    ("GFCI Outlet", "Outlet", "receptacle", 0, 120, 15, True, True),
    ("USB Outlet", "Outlet", "receptacle", 0, 120, 15, False, True),
    ("Arc Fault Outlet", "Outlet", "receptacle", 0, 120, 15, False, True),
    ("Smoke Detector", "Smoke", "safety", 10, 120, 15, False, True),
    ("Carbon Monoxide Detector", "Warning", "safety", 10, 120, 15, False, True),
    ("Doorbell", "Doorbell", "control", 15, 24, 1, False, False),
    ("Security Camera", "Camera", "security", 12, 12, 1, False, False),
]

DEFAULT_PROJECT_TEMPLATES = [
    ("Residential - Single Family", "Standard single family home electrical layout", "residential",
     {"min_outlets_per_room": 2, "gfci_required": ["bathroom", "kitchen", "outdoor"], "afci_required": ["bedroom", "living"]}),
    ("Residential - Apartment", "Multi-unit residential electrical layout", "residential",
     {"min_outlets_per_room": 2, "gfci_required": ["bathroom", "kitchen"], "afci_required": ["bedroom", "living"]}),
    ("Commercial - Office", "Commercial office space electrical layout", "commercial",
     {"min_outlets_per_room": 4, "emergency_lighting": True, "exit_signs": True}),
    ("Commercial - Retail", "Retail space electrical layout", "commercial",
     {"min_outlets_per_room": 6, "display_lighting": True, "security_systems": True}),
    ("Industrial - Light Manufacturing", "Light manufacturing facility layout", "industrial",
     {"three_phase_required": True, "machinery_circuits": True, "emergency_systems": True}),
]


def init_db(bind=None):
    """Create all tables on `bind` (the module engine by default)."""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created successfully")


def seed_default_data(session: Session) -> bool:
    """
    Insert the system device types and project templates into an empty database.
    Returns True when anything was seeded.
    """
    seeded = False
    if session.query(DeviceTypeRow).count() == 0:
        for name, icon, category, watts, volts, amps, gfci, afci in DEFAULT_DEVICE_TYPES:
            session.add(DeviceTypeRow(
                name=name, icon=icon, category=category,
                default_wattage=watts, default_voltage=volts, default_amperage=amps,
                requires_gfci=gfci, requires_afci=afci, is_custom=False, fields="{}",
            ))
        seeded = True
        logger.info(f"Seeded {len(DEFAULT_DEVICE_TYPES)} default device types")

    if session.query(ProjectTemplateRow).count() == 0:
        for name, description, template_type, requirements in DEFAULT_PROJECT_TEMPLATES:
            session.add(ProjectTemplateRow(
                name=name, description=description, template_type=template_type,
                code_requirements=json.dumps(requirements), is_system_template=True,
            ))
        seeded = True
        logger.info(f"Seeded {len(DEFAULT_PROJECT_TEMPLATES)} project templates")

    if seeded:
        session.commit()
    return seeded


def get_db():
    """FastAPI dependency: one session per request, always closed."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
