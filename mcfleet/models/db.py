from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, Float, Boolean, JSON, Index
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from uuid import uuid4

Base = declarative_base()

def gen_uuid():
    return str(uuid4())

class InstanceDB(Base):
    __tablename__ = "instances"

    id = Column(String, primary_key=True, default=gen_uuid)
    name = Column(String, nullable=False)
    server_type = Column(String, nullable=False)      # VANILLA / PAPER / FORGE ...
    version = Column(String, nullable=False)
    status = Column(String, default="stopped")        # stopped / starting / running / stopping / error
    owner_id = Column(String, nullable=True)
    memory_limit = Column(String, default="2G")
    cpu_limit = Column(String, nullable=True)
    game_port = Column(Integer, nullable=True, unique=True)
    console_port = Column(Integer, nullable=True, unique=True)
    query_port = Column(Integer, nullable=True, unique=True)
    container_id = Column(String, nullable=True)      # docker id
    console_password = Column(String, nullable=True)
    env = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class MetricSampleDB(Base):
    __tablename__ = "metric_samples"
    __table_args__ = (Index("ix_metric_samples_instance_ts", "instance_id", "timestamp"),)

    id = Column(String, primary_key=True, default=gen_uuid)
    instance_id = Column(String, ForeignKey("instances.id", ondelete="CASCADE"), nullable=False)
    source = Column(String, nullable=False)           # console / log_fallback
    timestamp = Column(DateTime(timezone=True), nullable=False)
    cpu_percent = Column(Float, default=0.0)
    memory_used_bytes = Column(Integer, default=0)
    memory_limit_bytes = Column(Integer, default=0)
    network_rx_bytes = Column(Integer, default=0)
    network_tx_bytes = Column(Integer, default=0)
    block_read_bytes = Column(Integer, default=0)
    block_write_bytes = Column(Integer, default=0)
    player_count = Column(Integer, default=0)
    max_players = Column(Integer, nullable=True)
    tps = Column(Float, nullable=True)
    entities = Column(Integer, nullable=True)
    chunks_loaded = Column(Integer, nullable=True)
    game_memory_used_mb = Column(Integer, nullable=True)
    game_memory_max_mb = Column(Integer, nullable=True)
    extensions = Column(JSON, default=dict)

class AlertDB(Base):
    __tablename__ = "alerts"

    id = Column(String, primary_key=True, default=gen_uuid)
    instance_id = Column(String, ForeignKey("instances.id", ondelete="CASCADE"), nullable=False)
    type = Column(String, nullable=False)
    severity = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    threshold = Column(Float, nullable=True)
    current_value = Column(Float, nullable=True)
    triggered_at = Column(DateTime(timezone=True), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    alert_metadata = Column("metadata", JSON, default=dict)

class MonitoringConfigDB(Base):
    __tablename__ = "monitoring_configs"

    instance_id = Column(String, ForeignKey("instances.id", ondelete="CASCADE"), primary_key=True)
    console_enabled = Column(Boolean, default=True, nullable=False)
    console_port = Column(Integer, nullable=True)
    console_password = Column(String, nullable=True)
    exposition_enabled = Column(Boolean, default=False, nullable=False)
    exposition_port = Column(Integer, default=9225)
    scrape_interval = Column(Integer, default=15)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
