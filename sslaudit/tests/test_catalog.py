"""
Tests for the cipher catalog
by BitSpectreLabs
"""

import ssl

import pytest

from sslaudit.core.catalog import (
    CipherCatalog,
    CipherSuiteProvider,
    OpenSSLCipherProvider,
    ProtocolVersion,
    STRONG_CIPHERS,
    SUPPORTED_VERSIONS,
    StaticCipherProvider,
    UnsupportedVersionError,
    get_default_catalog,
)

from sslaudit.tests.conftest import OFFERED, STRONG, TOTAL_PROBES


class TestProtocolVersion:
    """Test ProtocolVersion enum."""

    def test_all_versions_exist(self):
        assert ProtocolVersion.SSLv2.value == "SSLv2"
        assert ProtocolVersion.SSLv3.value == "SSLv3"
        assert ProtocolVersion.TLSv1.value == "TLSv1"
        assert SUPPORTED_VERSIONS == (
            ProtocolVersion.SSLv2,
            ProtocolVersion.SSLv3,
            ProtocolVersion.TLSv1,
        )

    @pytest.mark.parametrize("value", ["TLSv1", "tlsv1", ProtocolVersion.TLSv1])
    def test_parse(self, value):
        assert ProtocolVersion.parse(value) is ProtocolVersion.TLSv1

    @pytest.mark.parametrize("value", ["TLSv1.2", "", None, 3])
    def test_parse_invalid(self, value):
        with pytest.raises(ValueError):
            ProtocolVersion.parse(value)


class TestStaticCatalog:
    """Test CipherCatalog over fixed tables."""

    def test_ciphers_per_version(self, catalog):
        for version in SUPPORTED_VERSIONS:
            assert list(catalog.ciphers(version)) == OFFERED[version]

    def test_size(self, catalog):
        assert catalog.size() == TOTAL_PROBES

    def test_resolve_strong(self, catalog):
        assert catalog.resolve_strong(ProtocolVersion.TLSv1) == frozenset(STRONG[ProtocolVersion.TLSv1])
        assert catalog.resolve_strong(ProtocolVersion.SSLv2) == frozenset()

    def test_is_weak_matches_strong_policy(self, catalog):
        for version in SUPPORTED_VERSIONS:
            strong = catalog.resolve_strong(version)
            for cipher in catalog.ciphers(version):
                assert catalog.is_weak(version, cipher) == (cipher not in strong)

    def test_is_offered(self, catalog):
        assert catalog.is_offered(ProtocolVersion.SSLv3, "RC4-MD5")
        assert not catalog.is_offered(ProtocolVersion.SSLv3, "ECDHE-RSA-AES128-SHA")

    def test_strong_not_offered_is_dropped(self):
        provider = StaticCipherProvider(
            {ProtocolVersion.TLSv1: ["AES128-SHA"]},
            {ProtocolVersion.TLSv1: ["AES128-SHA", "AES256-SHA"]},
        )
        assert CipherCatalog(provider).resolve_strong(ProtocolVersion.TLSv1) == {"AES128-SHA"}

    @pytest.mark.parametrize("version", ["TLSv1", None, "TLSv1.3"])
    def test_unsupported_version_is_fatal(self, catalog, version):
        with pytest.raises(UnsupportedVersionError):
            catalog.ciphers(version)
        with pytest.raises(UnsupportedVersionError):
            catalog.resolve_strong(version)

    def test_lookups_are_memoized(self):
        class CountingProvider(CipherSuiteProvider):
            def __init__(self):
                self.calls = 0

            def offered(self, version):
                self.calls += 1
                return ("AES128-SHA",)

            def resolve(self, selection, version):
                self.calls += 1
                return ("AES128-SHA",)

        provider = CountingProvider()
        catalog = CipherCatalog(provider)
        for _ in range(3):
            catalog.ciphers(ProtocolVersion.TLSv1)
            catalog.resolve_strong(ProtocolVersion.TLSv1)
        assert provider.calls == 2

    def test_base_provider_is_abstract(self):
        with pytest.raises(NotImplementedError):
            CipherSuiteProvider().offered(ProtocolVersion.TLSv1)


class TestOpenSSLCatalog:
    """Test the catalog backed by the local OpenSSL."""

    def test_strong_selection_excludes_weak_families(self):
        assert "!RC4" in STRONG_CIPHERS
        assert "!MD5" in STRONG_CIPHERS
        assert "!aNULL" in STRONG_CIPHERS

    def test_unavailable_version_is_empty(self, monkeypatch):
        monkeypatch.setitem(OpenSSLCipherProvider.AVAILABILITY, ProtocolVersion.SSLv2, False)
        assert OpenSSLCipherProvider().offered(ProtocolVersion.SSLv2) == ()

    def test_strong_is_subset_of_offered(self):
        catalog = CipherCatalog(OpenSSLCipherProvider())
        for version in SUPPORTED_VERSIONS:
            assert catalog.resolve_strong(version) <= set(catalog.ciphers(version))

    @pytest.mark.skipif(not ssl.HAS_TLSv1, reason="TLSv1 not available in this OpenSSL")
    def test_tlsv1_has_no_tls13_only_ciphers(self):
        ciphers = CipherCatalog(OpenSSLCipherProvider()).ciphers(ProtocolVersion.TLSv1)
        assert "TLS_AES_128_GCM_SHA256" not in ciphers

    def test_unknown_selection_resolves_to_nothing(self):
        if not OpenSSLCipherProvider.AVAILABILITY[ProtocolVersion.TLSv1]:
            pytest.skip("TLSv1 not available in this OpenSSL")
        assert OpenSSLCipherProvider().resolve("NO-SUCH-CIPHER", ProtocolVersion.TLSv1) == ()

    def test_default_catalog_is_shared(self):
        assert get_default_catalog() is get_default_catalog()
