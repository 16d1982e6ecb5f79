"""Unit tests for the rule-matching engine."""

from __future__ import annotations

import base64
import json

import pytest


class TestFilterParser:
    """Tests for the filter parser."""

    def test_parse_network_block_filter(self) -> None:
        """Test parsing a basic blocking filter."""
        from blocksync.engine.parser import parse_network_filter

        result = parse_network_filter("||example.com^")
        assert result is not None
        assert result.is_hostname_anchor is True
        assert result.hostname == "example.com"
        assert result.is_exception is False

    def test_parse_network_exception_filter(self) -> None:
        """Test parsing an exception (allowlist) filter."""
        from blocksync.engine.parser import parse_network_filter

        result = parse_network_filter("@@||example.com^")
        assert result is not None
        assert result.is_exception is True
        assert result.hostname == "example.com"

    def test_parse_network_filter_with_modifiers(self) -> None:
        """Test parsing a filter with modifiers."""
        from blocksync.engine.parser import RequestType, parse_network_filter

        result = parse_network_filter("||ads.com^$third-party,script,important")
        assert result is not None
        assert result.hostname == "ads.com"
        assert result.third_party is True
        assert result.important is True
        assert RequestType.SCRIPT in result.request_types

    def test_parse_network_filter_with_domain(self) -> None:
        """Test parsing a filter with domain constraint."""
        from blocksync.engine.parser import parse_network_filter

        result = parse_network_filter("||tracker.com^$domain=example.com|~other.com")
        assert result is not None
        assert result.domains == {"example.com"}
        assert result.excluded_domains == {"other.com"}

    def test_parse_anchored_filter_is_not_plain(self) -> None:
        """Left/right anchors require regex matching."""
        from blocksync.engine.parser import parse_network_filter

        result = parse_network_filter("|https://ads.|")
        assert result is not None
        assert result.is_left_anchor is True
        assert result.is_right_anchor is True
        assert result.is_plain is False

    def test_parse_generichide_exception(self) -> None:
        """Test parsing a $generichide exception."""
        from blocksync.engine.parser import parse_network_filter

        result = parse_network_filter("@@||example.com^$generichide")
        assert result is not None
        assert result.is_exception is True
        assert result.generichide is True

    def test_parse_cosmetic_filter(self) -> None:
        """Test parsing a cosmetic (element hiding) filter."""
        from blocksync.engine.parser import parse_cosmetic_filter

        result = parse_cosmetic_filter("##.ad-banner")
        assert result is not None
        assert result.selector == ".ad-banner"
        assert result.is_exception is False
        assert result.style is None
        assert len(result.domains) == 0  # Global filter

    def test_parse_cosmetic_style_filter(self) -> None:
        """Test parsing a :style() filter."""
        from blocksync.engine.parser import parse_cosmetic_filter

        result = parse_cosmetic_filter("example.com##.header:style(margin-top: 0)")
        assert result is not None
        assert result.selector == ".header"
        assert result.style == "margin-top: 0"
        assert "example.com" in result.domains

    def test_parse_cosmetic_exception(self) -> None:
        """Test parsing a cosmetic exception filter."""
        from blocksync.engine.parser import parse_cosmetic_filter

        result = parse_cosmetic_filter("example.com#@#.ad-banner")
        assert result is not None
        assert result.is_exception is True

    def test_unsupported_procedural_selector_skipped(self) -> None:
        from blocksync.engine.parser import parse_cosmetic_filter

        assert parse_cosmetic_filter("example.com##:xpath(//div[@id=\"ad\"])") is None

    def test_parse_scriptlet_filter(self) -> None:
        """Test parsing a scriptlet filter."""
        from blocksync.engine.parser import parse_scriptlet_filter

        result = parse_scriptlet_filter("example.com##+js(set-constant, adblock, false)")
        assert result is not None
        assert result.scriptlet_name == "set-constant"
        assert result.args == ["adblock", "false"]
        assert "example.com" in result.domains

    def test_parse_filter_list(self) -> None:
        """Test parsing a complete filter list."""
        from blocksync.engine.parser import parse_filter_list

        content = """
! This is a comment
[Adblock Plus 2.0]
||ads.example.com^
@@||allowed.example.com^
##.advertisement
example.com##.sponsored
example.com##+js(abort-on-property-read, adblock)
"""
        result = parse_filter_list(content)
        assert len(result.network_filters) == 2
        assert len(result.cosmetic_filters) == 2
        assert len(result.scriptlet_filters) == 1
        assert len(result) == 5


class TestNetworkMatcher:
    """Tests for the network filter matcher."""

    def _matcher(self, *rules: str):
        from blocksync.engine.matcher import NetworkFilterMatcher
        from blocksync.engine.parser import parse_network_filter

        matcher = NetworkFilterMatcher()
        filters = [parse_network_filter(rule) for rule in rules]
        assert all(filters)
        matcher.add_filters(filters)  # type: ignore[arg-type]
        return matcher

    def test_block_matching_url(self) -> None:
        """Test that matching URLs are blocked."""
        matcher = self._matcher("||ads.example.com^")

        result = matcher.should_block("https://ads.example.com/banner.js")
        assert result.blocked is True
        assert result.filter is not None
        assert result.filter.raw == "||ads.example.com^"

    def test_allow_non_matching_url(self) -> None:
        """Test that non-matching URLs are allowed."""
        matcher = self._matcher("||ads.example.com^")

        result = matcher.should_block("https://www.example.com/page.html")
        assert result.blocked is False

    def test_exception_overrides_block(self) -> None:
        """Test that exception filters override block filters."""
        matcher = self._matcher("||example.com^", "@@||example.com/allowed^")

        assert matcher.should_block("https://example.com/ads").blocked is True
        assert matcher.should_block("https://example.com/allowed").blocked is False

    def test_important_ignores_exception(self) -> None:
        """An $important filter wins over an exception."""
        matcher = self._matcher("||example.com/ads^$important", "@@||example.com^")

        assert matcher.should_block("https://example.com/ads").blocked is True
        assert matcher.should_block("https://example.com/other").blocked is False

    def test_important_wins_when_plain_rule_matches_first(self) -> None:
        """A plain block rule listed first does not let an exception beat a later $important rule."""
        matcher = self._matcher("banner", "banner$important", "@@banner-ok")

        result = matcher.should_block("https://x.com/banner-ok.js", source_hostname="site.com")
        assert result.blocked is True
        assert result.filter is not None
        assert result.filter.raw == "banner$important"

    def test_subdomain_matching(self) -> None:
        """Test that subdomain matching works correctly."""
        matcher = self._matcher("||ads.com^")

        assert matcher.should_block("https://ads.com/").blocked is True
        assert matcher.should_block("https://www.ads.com/").blocked is True
        assert matcher.should_block("https://notads.com/").blocked is False

    def test_third_party_filtering(self) -> None:
        """Test third-party request filtering."""
        matcher = self._matcher("||tracker.com^$third-party")

        result = matcher.should_block("https://tracker.com/track.js", source_hostname="example.com")
        assert result.blocked is True

        result = matcher.should_block("https://tracker.com/track.js", source_hostname="tracker.com")
        assert result.blocked is False

    def test_request_type_filtering(self) -> None:
        from blocksync.engine.parser import RequestType

        matcher = self._matcher("||cdn.com^$script")

        assert matcher.should_block("https://cdn.com/a.js", RequestType.SCRIPT).blocked is True
        assert matcher.should_block("https://cdn.com/a.png", RequestType.IMAGE).blocked is False

    def test_domain_option_requires_source(self) -> None:
        """A $domain= filter never matches a request without a source page."""
        matcher = self._matcher("/banner/$domain=news.com")

        assert matcher.should_block("https://cdn.com/banner/1.png", source_hostname="www.news.com").blocked is True
        assert matcher.should_block("https://cdn.com/banner/1.png", source_hostname="blog.com").blocked is False
        assert matcher.should_block("https://cdn.com/banner/1.png").blocked is False

    def test_separator_and_wildcard(self) -> None:
        matcher = self._matcher("/ads/*/pixel^")

        assert matcher.should_block("https://x.com/ads/123/pixel?x=1").blocked is True
        assert matcher.should_block("https://x.com/ads/123/pixels").blocked is False

    def test_regex_filter(self) -> None:
        matcher = self._matcher(r"/banner\d+\.gif/")

        assert matcher.should_block("https://x.com/banner42.gif").blocked is True
        assert matcher.should_block("https://x.com/banner.gif").blocked is False

    def test_invalid_url_is_allowed(self) -> None:
        matcher = self._matcher("ads")

        assert matcher.should_block("not a url").blocked is False


class TestCosmeticHandler:
    """Tests for the cosmetic filter handler."""

    def _handler(self, *rules: str):
        from blocksync.engine.cosmetic import CosmeticFilterHandler
        from blocksync.engine.parser import parse_cosmetic_filter

        handler = CosmeticFilterHandler()
        filters = [parse_cosmetic_filter(rule) for rule in rules]
        assert all(filters)
        handler.add_filters(filters)  # type: ignore[arg-type]
        return handler

    def test_get_selectors_for_domain(self) -> None:
        """Test getting selectors for a specific domain."""
        handler = self._handler("##.ad-banner", "example.com##.sponsored")

        selectors = handler.get_selectors_for_domain("example.com")
        assert ".ad-banner" in selectors
        assert ".sponsored" in selectors

        selectors = handler.get_selectors_for_domain("other.com")
        assert ".ad-banner" in selectors
        assert ".sponsored" not in selectors

    def test_subdomain_gets_parent_selectors(self) -> None:
        handler = self._handler("example.com##.sponsored")

        assert handler.get_selectors_for_domain("www.example.com") == [".sponsored"]

    def test_exception_removes_selector(self) -> None:
        """Test that exceptions remove selectors."""
        handler = self._handler("##.ad-banner", "example.com#@#.ad-banner")

        assert ".ad-banner" not in handler.get_selectors_for_domain("example.com")
        assert ".ad-banner" in handler.get_selectors_for_domain("other.com")
        assert handler.get_exceptions_for_domain("example.com") == {".ad-banner"}

    def test_generic_filters_can_be_skipped(self) -> None:
        handler = self._handler("##.ad-banner", "example.com##.sponsored")

        assert handler.get_selectors_for_domain("example.com", generic=False) == [".sponsored"]

    def test_style_selectors(self) -> None:
        handler = self._handler("example.com##.header:style(margin-top: 0)", "##.ad-banner")

        assert handler.get_style_selectors_for_domain("example.com") == {".header": ["margin-top: 0"]}
        assert ".header" not in handler.get_selectors_for_domain("example.com")


class TestScriptletHandler:
    """Tests for the scriptlet handler."""

    def _handler(self, *rules: str):
        from blocksync.engine.parser import parse_scriptlet_filter
        from blocksync.engine.scriptlets import ScriptletHandler

        handler = ScriptletHandler()
        filters = [parse_scriptlet_filter(rule) for rule in rules]
        assert all(filters)
        handler.add_filters(filters)  # type: ignore[arg-type]
        return handler

    def test_get_scripts_for_domain(self) -> None:
        """Test getting scripts for a specific domain."""
        handler = self._handler("example.com##+js(set-constant, adblock, false)")

        scripts = handler.get_scripts_for_domain("example.com")
        assert len(scripts) == 1
        assert '"adblock"' in scripts[0]
        assert '"false"' in scripts[0]

        assert handler.get_scripts_for_domain("other.com") == []

    def test_scriptlet_alias(self) -> None:
        """Test that scriptlet aliases work."""
        handler = self._handler("example.com##+js(aopr, detectAdblock)")

        scripts = handler.get_scripts_for_domain("example.com")
        assert len(scripts) == 1
        assert "detectAdblock" in scripts[0]

    def test_unknown_scriptlet_skipped(self) -> None:
        handler = self._handler("example.com##+js(does-not-exist, x)")

        assert handler.get_scripts_for_domain("example.com") == []

    def test_template_resource(self) -> None:
        """Templates from a resources bundle are rendered with {{n}} arguments."""
        handler = self._handler("example.com##+js(log-it, hello)")
        template = base64.b64encode(b"console.log('{{1}}');").decode()

        added = handler.add_resources(
            [
                {"name": "log-it.js", "aliases": [], "kind": "template", "content": template},
                {"name": "1x1.gif", "aliases": [], "kind": {"mime": "image/gif"}, "content": ""},
            ]
        )

        assert added == 1
        assert handler.get_scripts_for_domain("example.com") == ["console.log('hello');"]


class TestAdblockEngine:
    """Tests for the engine handle."""

    RULES = "\n".join(
        [
            "||ads.example.com^",
            "-advertisement-",
            "@@good-advertisement",
            "##.ad-banner",
            "news.com##.sponsored",
            "@@||quiet.com^$generichide",
            "news.com##+js(set-constant, adblock, false)",
        ]
    )

    def test_deserialize_gzip_and_plain(self) -> None:
        from blocksync.engine import AdblockEngine, serialize_rules

        for data in (serialize_rules(self.RULES), serialize_rules(self.RULES, compress=False)):
            engine = AdblockEngine()
            assert engine.deserialize(data) is True
            assert engine.lists_loaded == 1
            assert engine.should_block("https://ads.example.com/x.js", "https://site.com", "script") is True

    @pytest.mark.parametrize("data", [b"\x1f\x8bnot gzip", b"\xff\xfe\xfa", b"rules\x00binary"])
    def test_deserialize_corrupt_data(self, data: bytes) -> None:
        """Undecodable data is rejected and leaves the engine empty."""
        from blocksync.engine import AdblockEngine

        engine = AdblockEngine()
        assert engine.deserialize(data) is False
        assert engine.lists_loaded == 0

    def test_should_block_with_exception(self) -> None:
        from blocksync.engine import AdblockEngine

        engine = AdblockEngine(self.RULES)

        assert engine.should_block("http://x.com/-advertisement-icon.", "https://x.com", "xmlhttprequest") is True
        assert engine.should_block("http://x.com/good-advertisement-icon.", "https://x.com", "xmlhttprequest") is False
        assert engine.should_block("https://unrelated.com", "https://x.com", "xmlhttprequest") is False

    def test_sealed_engine_rejects_mutation(self) -> None:
        from blocksync.engine import AdblockEngine, serialize_rules
        from blocksync.errors import EngineSealedError

        engine = AdblockEngine()
        engine.seal()

        with pytest.raises(EngineSealedError):
            engine.deserialize(serialize_rules(self.RULES))
        with pytest.raises(EngineSealedError):
            engine.add_resources("[]")

    @pytest.mark.parametrize("payload", ["not json", "[]", "{}", '"text"'])
    def test_add_resources_rejects_invalid(self, payload: str) -> None:
        from blocksync.engine import AdblockEngine

        with pytest.raises(ValueError):
            AdblockEngine().add_resources(payload)

    def test_cosmetic_resources_for_url(self) -> None:
        from blocksync.engine import AdblockEngine

        engine = AdblockEngine(self.RULES)

        resources = json.loads(engine.cosmetic_resources_for_url("https://www.news.com/article"))
        assert set(resources["hide_selectors"]) == {".ad-banner", ".sponsored"}
        assert resources["generichide"] is False
        assert "adblock" in resources["injected_script"]

    def test_generichide_drops_generic_selectors(self) -> None:
        from blocksync.engine import AdblockEngine

        engine = AdblockEngine(self.RULES)

        resources = json.loads(engine.cosmetic_resources_for_url("https://quiet.com/"))
        assert resources["generichide"] is True
        assert resources["hide_selectors"] == []

    def test_cosmetic_resources_for_invalid_url(self) -> None:
        from blocksync.engine import AdblockEngine

        resources = json.loads(AdblockEngine(self.RULES).cosmetic_resources_for_url("about:blank"))
        assert resources["hide_selectors"] == []
        assert resources["injected_script"] == ""
