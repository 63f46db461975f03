# backend/pagecast/schemas/page.py
from typing import List, Optional

from .base import BaseSchema, TimestampMixin


class AudioFile(BaseSchema, TimestampMixin):
    id: int
    page_id: int
    file_name: str
    file_path: str
    voice_id: str


class PageBase(BaseSchema):
    page_number: int
    content: str


class Page(PageBase):
    id: int
    document_id: int
    audio_files: List[AudioFile] = []
    current_audio: Optional[AudioFile] = None
