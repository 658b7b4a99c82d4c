"""
SEO Renderer - server-side metadata for storefront pages.

Builds the page title, description and Open Graph tags for a resolved
tenant/shop and substitutes them into the static page template. The
representative image is fetched once per render to read its dimensions
and content type. Only the first MAX_IMAGE_BYTES are downloaded and the
whole fetch is bounded by image_timeout. If the fetch fails, the fallback
1920x1080 image/png is used so the page still renders.
"""

import html
import time
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import requests
from PIL import Image

from .host_resolver import Resolution
from .logger import setup_logger
from .upstream_client import read_body

logger = setup_logger(__name__)


@dataclass(frozen=True)
class ImageMeta:
    content_type: str
    width: int
    height: int


FALLBACK_IMAGE_META = ImageMeta(content_type='image/png', width=1920, height=1080)


@dataclass
class PageMeta:
    """Everything substituted into the page template."""

    path: str
    url: str
    title: str
    site_name: str
    description: str
    image_url: str
    favicon_url: str


class SeoRenderer:
    """Renders the index (or maintenance) template with per-shop metadata."""

    DEFAULT_PAGE_TITLE = "Welcome"
    DEFAULT_IMAGE_TIMEOUT = 5  # seconds, for the whole download
    MAX_IMAGE_BYTES = 1024 * 1024

    def __init__(
        self,
        index_html_path: str,
        maintenance_html_path: str,
        s3_public_base_url: str = '',
        maintenance_mode: bool = False,
        image_timeout: float = DEFAULT_IMAGE_TIMEOUT,
    ):
        """
        Args:
            index_html_path: Normal page template
            maintenance_html_path: Template served while in maintenance mode
            s3_public_base_url: Base URL prepended to stored image paths
            maintenance_mode: Serve the maintenance template instead of the index
            image_timeout: Total timeout for the image fetch in seconds
        """
        self.index_html_path = Path(index_html_path)
        self.maintenance_html_path = Path(maintenance_html_path)
        self.s3_public_base_url = s3_public_base_url.rstrip('/')
        self.maintenance_mode = maintenance_mode
        self.image_timeout = image_timeout

    @staticmethod
    def format_title(path_segment: str) -> str:
        """
        Turn a URL segment into a readable title.

        Example:
            >>> SeoRenderer.format_title('summer-tour-hoodie')
            'Summer Tour Hoodie'
        """
        return ' '.join(word[:1].upper() + word[1:] for word in path_segment.split('-'))

    @staticmethod
    def _first_segment(path: str) -> str:
        parts = path.split('/')
        return parts[1] if len(parts) > 1 else ''

    def image_url_for(self, resolution: Resolution) -> str:
        """URL of the representative image: first gallery image, else first logo."""
        raw = ''
        if resolution.shop.image_gallery:
            raw = resolution.shop.image_gallery[0]
        elif resolution.tenant.logos:
            raw = resolution.tenant.logos[0]

        if raw.startswith(('http://', 'https://')):
            return raw
        return f"{self.s3_public_base_url}/{quote(raw, safe='/')}"

    def build_page(self, resolution: Resolution, path: str, url: str) -> PageMeta:
        """
        Assemble metadata for one request.

        Args:
            resolution: Tenant and shop owning the host
            path: Request path (e.g. '/' or '/summer-tour')
            url: Full request URL for og:url
        """
        shop = resolution.shop
        tenant = resolution.tenant

        if path in ('', '/'):
            segment = self.DEFAULT_PAGE_TITLE
            description = (
                f"Welcome to {shop.name} - official shop of {tenant.name}. "
                f"Discover exclusive merchandise and more!"
            )
        else:
            segment = self.format_title(self._first_segment(path))
            description = f"Explore '{segment}' on {shop.name} Shop."

        return PageMeta(
            path=path or '/',
            url=url,
            title=f"{shop.name} - {segment}",
            site_name=f"{shop.name} Shop",
            description=description,
            image_url=self.image_url_for(resolution),
            favicon_url=f"https://{shop.website}/static/favicon.webp",
        )

    def fetch_image_meta(self, url: str) -> ImageMeta:
        """
        Download an image and read its content type and dimensions.

        Returns:
            ImageMeta; FALLBACK_IMAGE_META on any fetch or decode failure
        """
        deadline = time.monotonic() + self.image_timeout
        try:
            with requests.get(url, timeout=self.image_timeout, stream=True) as response:
                response.raise_for_status()
                # Dimensions live in the header; the rest of a large image is never downloaded
                data = read_body(response, deadline, max_bytes=self.MAX_IMAGE_BYTES)
                header_type = response.headers.get('Content-Type')

            with Image.open(BytesIO(data)) as img:
                width, height = img.size
                detected_type = Image.MIME.get(img.format or '')

            content_type = header_type or detected_type or 'image/png'
            return ImageMeta(
                content_type=content_type.split(';')[0].strip(),
                width=width or FALLBACK_IMAGE_META.width,
                height=height or FALLBACK_IMAGE_META.height,
            )

        except Exception as e:
            logger.error("Error fetching image metadata for URL %s: %s", url, e)
            return FALLBACK_IMAGE_META

    def build_meta_tags(self, page: PageMeta, image: ImageMeta) -> str:
        """Render the description and Open Graph meta tags."""
        def attr(value) -> str:
            return html.escape(str(value), quote=True)

        tags = [
            ('name', 'description', page.description),
            ('property', 'og:url', page.url),
            ('property', 'og:type', 'website'),
            ('property', 'og:site_name', page.site_name),
            ('property', 'og:title', page.title),
            ('property', 'og:description', page.description),
            ('property', 'og:image', page.image_url),
            ('property', 'og:image:height', image.height),
            ('property', 'og:image:width', image.width),
            ('property', 'og:image:type', image.content_type),
        ]
        return '\n'.join(
            f'    <meta {kind}="{name}" content="{attr(content)}">'
            for kind, name, content in tags
        )

    def render_html(self, page: PageMeta, image: Optional[ImageMeta] = None) -> str:
        """
        Substitute metadata into the active template.

        Args:
            page: Page metadata
            image: Pre-fetched image metadata; fetched from page.image_url if None
        """
        if image is None:
            image = self.fetch_image_meta(page.image_url)

        template_path = self.maintenance_html_path if self.maintenance_mode else self.index_html_path
        document = template_path.read_text(encoding='utf-8')

        document = document.replace('{metaTags}', self.build_meta_tags(page, image))
        document = document.replace('{favicon_url}', html.escape(page.favicon_url, quote=True))
        if not self.maintenance_mode:
            document = document.replace('{title}', html.escape(page.title))

        return document

    def render(self, resolution: Resolution, path: str, url: str) -> str:
        """Build metadata for the request and render the page."""
        return self.render_html(self.build_page(resolution, path, url))
