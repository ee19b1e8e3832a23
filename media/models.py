"""
media/models.py -- Domain dataclass for hosted gallery images.

Only the hosted URL and the upload's content type are kept; the bytes live
with the image host.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class GalleryImage:
    url: str
    content_type: str
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
