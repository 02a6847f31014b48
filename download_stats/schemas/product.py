from typing import Literal

from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    status: Literal["published", "draft"] = "published"
    # Seed for the all-time counter, e.g. when importing an existing catalogue
    download_count: int = Field(default=0, ge=0)


class ProductOut(BaseModel):
    id: int
    title: str
    status: str
    download_count: int
