"""Provider wire models."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProviderTaskInput(BaseModel):
    prompt: str
    aspect_ratio: str
    n_frames: str
    remove_watermark: bool = True
    image_urls: Optional[List[str]] = None
    character_id_list: Optional[List[str]] = None


class ProviderTaskRequest(BaseModel):
    """Body of ``POST /api/v1/jobs/createTask``."""

    model_config = ConfigDict(populate_by_name=True)

    model: str
    callback_url: str = Field(..., alias="callBackUrl")
    input: ProviderTaskInput

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
