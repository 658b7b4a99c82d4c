"""
Entity types for the storefront snapshot.

Each entity knows how to build itself from an upstream JSON body
(from_api) and from a SQLite row (from_row). Upstream bodies use camelCase;
both the current artist DTO (isActive, *DataUri) and the older one
(webmail, logos, favicons, imageGallery) are accepted.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TenantCategory(Enum):
    """Kind of artist owning a storefront."""
    GROUP = "group"
    INDIVIDUAL = "individual"

    @classmethod
    def parse(cls, value: Any) -> "TenantCategory":
        """Parse an upstream value, defaulting to INDIVIDUAL for unknown input."""
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.INDIVIDUAL


def _as_list(value: Any) -> List[str]:
    """Coerce an upstream list-ish field to a list of strings."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None]
    return [str(value)]


def _as_float(value: Any) -> Optional[float]:
    """Parse an optional number; malformed input becomes None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _load_list(raw: Optional[str]) -> List[str]:
    """Deserialize a JSON list column."""
    if not raw:
        return []
    loaded = json.loads(raw)
    return loaded if isinstance(loaded, list) else []


def _flag(data: Dict[str, Any], key: str, data_uri_key: str) -> bool:
    """Explicit boolean flag, else presence of the matching data URI."""
    if key in data and data[key] is not None:
        return bool(data[key])
    return bool(data.get(data_uri_key))


@dataclass
class Tenant:
    """An artist or brand owning one storefront."""

    id: str
    name: str
    category: TenantCategory = TenantCategory.INDIVIDUAL
    website: Optional[str] = None
    webmail_url: str = ''
    webmail_email: str = ''
    webmail_password: str = ''
    logos: List[str] = field(default_factory=list)
    favicons: List[str] = field(default_factory=list)
    is_active: bool = True
    production_price: Optional[float] = None
    has_avatar: bool = False
    has_logo: bool = False
    has_favicon: bool = False
    bio: Optional[str] = None
    archive_path: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Tenant":
        webmail = data.get('webmail') or {}
        logos = _as_list(data.get('logos'))
        favicons = _as_list(data.get('favicons'))
        return cls(
            id=str(data['id']),
            name=data.get('name') or '',
            category=TenantCategory.parse(data.get('type')),
            website=data.get('website') or None,
            webmail_url=webmail.get('url') or '',
            webmail_email=webmail.get('email') or '',
            webmail_password=webmail.get('password') or '',
            logos=logos,
            favicons=favicons,
            is_active=bool(data.get('isActive', True)),
            production_price=_as_float(data.get('productionPrice')),
            has_avatar=_flag(data, 'hasAvatar', 'avatarDataUri'),
            has_logo=_flag(data, 'hasLogo', 'logoDataUri') or bool(logos),
            has_favicon=_flag(data, 'hasFavicon', 'faviconDataUri') or bool(favicons),
            bio=data.get('bio') or None,
            archive_path=data.get('archivePath') or None,
        )

    @classmethod
    def from_row(cls, row) -> "Tenant":
        return cls(
            id=row['id'],
            name=row['name'],
            category=TenantCategory.parse(row['category']),
            website=row['website'],
            webmail_url=row['webmail_url'] or '',
            webmail_email=row['webmail_email'] or '',
            webmail_password=row['webmail_password'] or '',
            logos=_load_list(row['logos']),
            favicons=_load_list(row['favicons']),
            is_active=bool(row['is_active']),
            production_price=row['production_price'],
            has_avatar=bool(row['has_avatar']),
            has_logo=bool(row['has_logo']),
            has_favicon=bool(row['has_favicon']),
            bio=row['bio'],
            archive_path=row['archive_path'],
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category.value,
            'website': self.website,
            'webmail_url': self.webmail_url,
            'webmail_email': self.webmail_email,
            'webmail_password': self.webmail_password,
            'logos': json.dumps(self.logos),
            'favicons': json.dumps(self.favicons),
            'is_active': int(self.is_active),
            'production_price': self.production_price,
            'has_avatar': int(self.has_avatar),
            'has_logo': int(self.has_logo),
            'has_favicon': int(self.has_favicon),
            'bio': self.bio,
            'archive_path': self.archive_path,
        }


@dataclass
class Shop:
    """Storefront configuration for one tenant."""

    id: str
    tenant_id: str
    name: str
    website: str
    image_gallery: List[str] = field(default_factory=list)
    has_image: bool = False
    shop_feed: str = ''

    @classmethod
    def from_api(cls, data: Dict[str, Any], tenant_id: Optional[str] = None) -> "Shop":
        gallery = _as_list(data.get('imageGallery'))
        return cls(
            id=str(data['id']),
            tenant_id=str(data.get('artistId') or tenant_id or ''),
            name=data.get('name') or '',
            website=data.get('website') or '',
            image_gallery=gallery,
            has_image=_flag(data, 'hasImage', 'imageDataUri') or bool(gallery),
            shop_feed=data.get('shopFeed') or '',
        )

    @classmethod
    def from_row(cls, row) -> "Shop":
        return cls(
            id=row['id'],
            tenant_id=row['tenant_id'],
            name=row['name'],
            website=row['website'],
            image_gallery=_load_list(row['image_gallery']),
            has_image=bool(row['has_image']),
            shop_feed=row['shop_feed'] or '',
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'website': self.website,
            'image_gallery': json.dumps(self.image_gallery),
            'has_image': int(self.has_image),
            'shop_feed': self.shop_feed,
        }


@dataclass
class SocialLink:
    """A social platform link; many per tenant."""

    id: str
    tenant_id: str
    name: str
    description: str = ''
    url: str = ''

    @classmethod
    def from_api(cls, data: Dict[str, Any], tenant_id: str) -> "SocialLink":
        return cls(
            id=str(data['id']),
            tenant_id=tenant_id,
            name=data.get('name') or '',
            description=data.get('description') or '',
            url=data.get('url') or '',
        )

    @classmethod
    def from_row(cls, row) -> "SocialLink":
        return cls(
            id=row['id'],
            tenant_id=row['tenant_id'],
            name=row['name'],
            description=row['description'] or '',
            url=row['url'] or '',
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'description': self.description,
            'url': self.url,
        }


@dataclass
class YouTubeRelease:
    video_id: str
    title: str
    view_count: int = 0
    published_at: str = ''
    thumbnail_url: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "YouTubeRelease":
        return cls(
            video_id=data.get('videoId') or '',
            title=data.get('title') or '',
            view_count=int(data.get('viewCount') or 0),
            published_at=data.get('publishedAt') or '',
            thumbnail_url=data.get('thumbnailUrl') or '',
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'videoId': self.video_id,
            'title': self.title,
            'viewCount': self.view_count,
            'publishedAt': self.published_at,
            'thumbnailUrl': self.thumbnail_url,
        }


@dataclass
class SpotifyRelease:
    name: str
    spotify_url: str
    image_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpotifyRelease":
        return cls(
            name=data.get('name') or '',
            spotify_url=data.get('spotifyUrl') or '',
            image_url=data.get('imageUrl'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'spotifyUrl': self.spotify_url,
            'imageUrl': self.image_url,
        }


@dataclass
class AuxRelease:
    """Latest known video and audio releases of a tenant; either side may be missing."""

    tenant_id: str
    youtube: Optional[YouTubeRelease] = None
    spotify: Optional[SpotifyRelease] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any], tenant_id: str) -> "AuxRelease":
        youtube = data.get('youtube')
        spotify = data.get('spotify')
        return cls(
            tenant_id=tenant_id,
            youtube=YouTubeRelease.from_dict(youtube) if youtube else None,
            spotify=SpotifyRelease.from_dict(spotify) if spotify else None,
        )

    @classmethod
    def from_row(cls, row) -> "AuxRelease":
        youtube = json.loads(row['youtube']) if row['youtube'] else None
        spotify = json.loads(row['spotify']) if row['spotify'] else None
        return cls(
            tenant_id=row['tenant_id'],
            youtube=YouTubeRelease.from_dict(youtube) if youtube else None,
            spotify=SpotifyRelease.from_dict(spotify) if spotify else None,
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            'tenant_id': self.tenant_id,
            'youtube': json.dumps(self.youtube.to_dict()) if self.youtube else None,
            'spotify': json.dumps(self.spotify.to_dict()) if self.spotify else None,
        }

    @property
    def is_empty(self) -> bool:
        return self.youtube is None and self.spotify is None
