from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Optional

class ErrorKind(str, Enum):
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    DECODE = "decode"
    API = "api"
    NO_ITEMS = "no_items"
    ITEM_UNAVAILABLE = "item_unavailable"

class ValidationState(str, Enum):
    UNCHECKED = "unchecked"
    CHECKING = "checking"
    VALID = "valid"
    INVALID = "invalid"

class RemoteItem(BaseModel):
    id: str
    title: str = ""
    payload: str = ""  # Reference used to probe/load the item (e.g. video id)
    thumbnail_url: Optional[str] = None
    detail: Optional[str] = None  # Body text for announcements / verses
    subtitle: Optional[str] = None
    priority: int = 0

class ErrorState(BaseModel):
    kind: ErrorKind
    message: str

class EmbedInfo(BaseModel):
    item_id: str
    title: str = ""
    html: str = ""
    thumbnail_url: Optional[str] = None
    provider_name: Optional[str] = None

class UnavailableItem(BaseModel):
    item_id: str
    title: str = ""
    external_url: Optional[str] = None

class CacheRecord(BaseModel):
    items: List[RemoteItem] = Field(default_factory=list)
    fetched_at: float = 0.0
    valid_ids: List[str] = Field(default_factory=list)
    invalid_ids: List[str] = Field(default_factory=list)
    last_checked_at: float = 0.0

class SyncSnapshot(BaseModel):
    """Consumer-facing view of a synchronized collection."""
    name: str
    items: List[RemoteItem] = Field(default_factory=list)
    fetched_at: float = 0.0
    selected: Optional[str] = None
    is_loading: bool = False
    is_validating: bool = False
    error: Optional[ErrorState] = None
    is_loading_selection: bool = False
    has_playback_error: bool = False
    now_showing: Optional[EmbedInfo] = None
    unavailable: Optional[UnavailableItem] = None

class Preferences(BaseModel):
    gradient: str = "default"
    scripture_theme: str = "default"
    font_size: str = "medium"
    refresh_frequency: str = "onLaunch"
    enable_background_music: bool = False
