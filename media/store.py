"""
media/store.py -- SQLAlchemy-backed persistence for gallery images.

Pattern: Repository + Data Mapper, same as auth/store.py. ImageStore records
one row per successful Blob Store upload; routes read back the newest URLs.

Usage:
    store = ImageStore("sqlite:///memberdesk.db")
    image_id = store.add_image(GalleryImage(url=url, content_type="image/png"))
    urls = store.latest_urls(limit=10)
    store.close()
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine
from sqlalchemy.engine import Engine

from media.models import GalleryImage

_metadata = MetaData()

_images = Table(
    "images",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("content_type", String(100), nullable=False),
    Column("url", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)


class ImageStore:
    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        _metadata.create_all(self.engine)

    def add_image(self, image: GalleryImage) -> int:
        """Insert an uploaded image record and return its ID."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _images.insert().values(
                    content_type=image.content_type,
                    url=image.url,
                    created_at=datetime.now(timezone.utc).isoformat(timespec="microseconds"),
                )
            )
            return result.inserted_primary_key[0]

    def latest(self, limit: int = 10) -> list[GalleryImage]:
        """Return the most recent images, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_images.select().order_by(_images.c.id.desc()).limit(limit)).fetchall()
        return [_row_to_image(r) for r in rows]

    def latest_urls(self, limit: int = 10) -> list[str]:
        return [image.url for image in self.latest(limit)]

    def close(self) -> None:
        self.engine.dispose()


def _row_to_image(row) -> GalleryImage:
    return GalleryImage(
        id=row.id,
        url=row.url,
        content_type=row.content_type,
        created_at=row.created_at,
    )
