from typing import Optional

from pydantic import BaseModel, field_validator


class StoreCreate(BaseModel):
    store_id: str
    city: str
    county: str
    description: Optional[str] = None
    address: Optional[str] = None

    @field_validator('store_id', 'city', 'county', mode='before')
    @classmethod
    def required_text(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("store_id, city, and county are required")
        return str(v).strip()


class StoreResponse(BaseModel):
    store_id: str
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None

    class Config:
        from_attributes = True


class StoreSaved(BaseModel):
    success: bool = True
    message: str = "Store created/updated successfully"
    store: StoreResponse
