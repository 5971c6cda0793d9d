from typing import Optional
from pydantic import BaseModel, Field, field_validator
import pytz


class GymBase(BaseModel):
    """Esquema base para gimnasios (tenants)"""
    name: str = Field(..., title="Nombre del gimnasio", max_length=255)
    subdomain: str = Field(..., title="Subdominio único para el gimnasio", max_length=100, pattern="^[a-z0-9-]+$")
    timezone: str = Field('UTC', title="Zona horaria del gimnasio", max_length=50, description="Timezone en formato pytz (ej: 'America/Mexico_City')")

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v):
        if v not in pytz.all_timezones:
            raise ValueError(f"Zona horaria inválida: {v}. Debe ser una zona horaria válida de pytz.")
        return v


class GymSchema(GymBase):
    id: int
    is_active: Optional[bool] = True

    model_config = {"from_attributes": True}
