"""Unit tests for the entity models."""

from storefront.models import AuxRelease, Shop, SocialLink, Tenant, TenantCategory


class TestTenantCategory:
    """Tests for TenantCategory.parse."""

    def test_known_values(self):
        assert TenantCategory.parse('group') is TenantCategory.GROUP
        assert TenantCategory.parse('INDIVIDUAL') is TenantCategory.INDIVIDUAL

    def test_unknown_defaults_to_individual(self):
        assert TenantCategory.parse('orchestra') is TenantCategory.INDIVIDUAL
        assert TenantCategory.parse(None) is TenantCategory.INDIVIDUAL


class TestTenant:
    """Tests for Tenant.from_api."""

    def test_current_dto(self):
        """Test the DTO with data URI presence flags."""
        tenant = Tenant.from_api({
            'id': 42,
            'name': 'Band',
            'type': 'group',
            'website': 'band.com',
            'isActive': False,
            'productionPrice': '9.99',
            'avatarDataUri': 'data:image/png;base64,AA',
            'faviconDataUri': '',
        })

        assert tenant.id == '42'
        assert tenant.category is TenantCategory.GROUP
        assert tenant.is_active is False
        assert tenant.production_price == 9.99
        assert tenant.has_avatar is True
        assert tenant.has_logo is False
        assert tenant.has_favicon is False

    def test_legacy_dto(self):
        """Test the DTO with webmail and image path lists."""
        tenant = Tenant.from_api({
            'id': 'a',
            'name': 'Solo',
            'type': 'individual',
            'webmail': {'url': 'https://mail.solo.com', 'email': 'me@solo.com', 'password': 'pw'},
            'logos': ['l1.png', None, 'l2.png'],
            'favicons': 'fav.ico',
        })

        assert tenant.webmail_url == 'https://mail.solo.com'
        assert tenant.logos == ['l1.png', 'l2.png']
        assert tenant.favicons == ['fav.ico']
        assert tenant.has_logo is True
        assert tenant.has_favicon is True
        assert tenant.website is None
        assert tenant.is_active is True

    def test_malformed_price_becomes_none(self):
        """Test that a bad optional price does not reject the tenant."""
        for price in ('call us', {'amount': 5}, [], True):
            tenant = Tenant.from_api({'id': 'a', 'name': 'x', 'productionPrice': price})
            assert tenant.production_price is None

    def test_explicit_flag_wins(self):
        tenant = Tenant.from_api({'id': 'a', 'name': 'x', 'hasAvatar': False, 'avatarDataUri': 'data:'})
        assert tenant.has_avatar is False


class TestShopAndSocials:
    """Tests for Shop and SocialLink parsing."""

    def test_shop_uses_artist_id(self):
        shop = Shop.from_api({'id': 's', 'artistId': 'a1', 'name': 'S', 'website': 's.com'}, tenant_id='other')
        assert shop.tenant_id == 'a1'

    def test_shop_falls_back_to_requested_tenant(self):
        shop = Shop.from_api({'id': 's', 'name': 'S', 'website': 's.com', 'imageGallery': ['a.png']}, tenant_id='a2')
        assert shop.tenant_id == 'a2'
        assert shop.has_image is True

    def test_social_defaults(self):
        social = SocialLink.from_api({'id': 1, 'name': 'instagram'}, 'a1')
        assert social.id == '1'
        assert social.description == ''
        assert social.url == ''


class TestAuxRelease:
    """Tests for AuxRelease."""

    def test_both_sides(self):
        release = AuxRelease.from_api({
            'youtube': {'videoId': 'v', 'title': 'T', 'viewCount': '7'},
            'spotify': {'name': 'N', 'spotifyUrl': 'https://open.spotify.com/x'},
        }, 'a1')

        assert release.youtube.view_count == 7
        assert release.spotify.image_url is None
        assert release.is_empty is False

    def test_empty(self):
        assert AuxRelease.from_api({}, 'a1').is_empty is True

    def test_row_serialization(self):
        """Test the stored JSON uses the upstream field names."""
        release = AuxRelease.from_api({'youtube': {'videoId': 'v', 'title': 'T'}}, 'a1')
        row = release.to_row()

        assert '"videoId": "v"' in row['youtube']
        assert row['spotify'] is None
