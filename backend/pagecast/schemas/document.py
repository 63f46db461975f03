# backend/pagecast/schemas/document.py
from typing import List
from .base import BaseSchema, TimestampMixin
from .page import Page

class DocumentBase(BaseSchema):
    name: str

class Document(DocumentBase, TimestampMixin):
    id: int
    created_by: str

class DocumentDetail(Document):
    pages: List[Page] = []
    page_count: int = 0
