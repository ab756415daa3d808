"""
Tests for the version index — alias → version resolution.
"""

import pytest

from chartverify.core.errors import PackageNotFound
from chartverify.core.services.version_index import VersionIndex, looks_like_version

URL = "https://jupyterhub.github.io/helm-chart/info.json"
INFO = {"jupyterhub": {"stable": "3.0.3", "dev": "3.1.0-0.dev.git.6289.hb4ea8f2e"}}


class TestResolve:
    def test_alias(self):
        index = VersionIndex(URL, fetch=lambda url: INFO)
        assert index.resolve("jupyterhub", "stable") == "3.0.3"
        assert index.resolve("jupyterhub", "dev") == "3.1.0-0.dev.git.6289.hb4ea8f2e"

    def test_fetched_once(self):
        fetched = []

        def fetch(url):
            fetched.append(url)
            return INFO

        index = VersionIndex(URL, fetch=fetch)
        index.resolve("jupyterhub", "stable")
        index.resolve("jupyterhub", "dev")
        assert fetched == [URL]

    def test_literal_passes_through(self):
        def fetch(url):
            raise AssertionError("literal versions must not hit the index")

        assert VersionIndex(None, fetch=fetch).resolve("jupyterhub", "2.0.0") == "2.0.0"

    def test_unknown_alias(self):
        index = VersionIndex(URL, fetch=lambda url: INFO)
        with pytest.raises(PackageNotFound) as exc:
            index.resolve("jupyterhub", "beta")
        assert exc.value.context["known"] == ["dev", "stable"]

    def test_unknown_chart(self):
        with pytest.raises(PackageNotFound, match="not listed"):
            VersionIndex(URL, fetch=lambda url: INFO).resolve("binderhub", "stable")

    def test_no_url(self):
        with pytest.raises(PackageNotFound, match="No version index"):
            VersionIndex(None).resolve("jupyterhub", "stable")

    def test_fetch_error(self):
        def fetch(url):
            raise OSError("connection refused")

        with pytest.raises(PackageNotFound, match="connection refused"):
            VersionIndex(URL, fetch=fetch).resolve("jupyterhub", "stable")

    def test_not_an_object(self):
        with pytest.raises(PackageNotFound, match="not a JSON object"):
            VersionIndex(URL, fetch=lambda url: ["stable"]).resolve("jupyterhub", "stable")


class TestLooksLikeVersion:
    @pytest.mark.parametrize("value", ["1.2.3", "v1.2.3", "1.3.0-dev", "1.2.3+build.1"])
    def test_versions(self, value):
        assert looks_like_version(value)

    @pytest.mark.parametrize("value", ["stable", "dev", "1.2", "latest"])
    def test_aliases(self, value):
        assert not looks_like_version(value)
