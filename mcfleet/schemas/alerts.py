from pydantic import BaseModel, ConfigDict
from uuid import UUID
from datetime import datetime
from typing import Any, Dict, Optional

from mcfleet.domain.alerts import AlertType, Severity


class AlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    instance_id: UUID
    type: AlertType
    severity: Severity
    title: str
    message: str
    threshold: Optional[float]
    current_value: Optional[float]
    triggered_at: datetime
    resolved_at: Optional[datetime]
    active: bool
    metadata: Dict[str, Any] = {}
