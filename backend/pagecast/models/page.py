# backend/pagecast/models/page.py
from sqlalchemy import Column, Integer, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base


class Page(Base):
    __tablename__ = "pages"
    __table_args__ = (
        UniqueConstraint("document_id", "page_number", name="uq_pages_document_page_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False, index=True)
    page_number = Column(Integer, nullable=False)
    content = Column(Text, nullable=False, default="")

    document = relationship("Document", back_populates="pages")
    audio_files = relationship(
        "AudioFile",
        back_populates="page",
        order_by="AudioFile.id"
    )

    @property
    def current_audio(self):
        """Most recently recorded audio file; older rows are kept as history.

        Latest `created_at` wins, ties broken by the highest id.
        """
        if not self.audio_files:
            return None
        if any(audio.created_at is None for audio in self.audio_files):
            return max(self.audio_files, key=lambda audio: audio.id)
        return max(self.audio_files, key=lambda audio: (audio.created_at, audio.id))
