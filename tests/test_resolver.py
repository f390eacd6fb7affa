"""Tests for fontspider.resolver module.

This module tests resolution of stylesheets into font records:
- Declaration order, including slow and late imports
- The import ceiling, cycles and self-imports
- Session cache sharing, isolation and reuse after failures
- Ignore patterns and map rules on imports
- Error chains and skipped rules
"""

import asyncio
import os
from unittest.mock import patch

import pytest

from fontspider import css_ast
from fontspider.config import CrawlOptions
from fontspider.errors import FetchError, ImportLimitError, ParseError
from fontspider.font_identity import font_id
from fontspider.models import DescriptorSet, FontFaceRecord, FontUsageRecord, Stylesheet
from fontspider.resolver import (
    ImportCounter,
    ResolutionCache,
    Resolver,
    resolve,
    resolve_rules,
)
from tests.conftest import MemoryFetcher

FACE_A = '@font-face { font-family: "A"; src: url(a.woff) }'
STYLE_B = '.b { font-family: "B"; content: "b" }'


def face(family: str) -> str:
    return f'@font-face {{ font-family: "{family}"; src: url({family}.woff) }}'


def run(coro, timeout: float = 10):
    """Run a coroutine, failing instead of hanging on a deadlock."""
    return asyncio.run(asyncio.wait_for(coro, timeout))


def families(records) -> list[str]:
    return [
        record.family if isinstance(record, FontFaceRecord) else record.families[0]
        for record in records
    ]


def chain_files(length: int) -> dict[str, str]:
    """Stylesheets /chain/0.css -> /chain/1.css -> ... -> /chain/<length>.css."""
    files = {}
    for index in range(length):
        files[f"/chain/{index}.css"] = f'@import "{index + 1}.css";\n{face(f"F{index}")}'
    files[f"/chain/{length}.css"] = face(f"F{length}")
    return files


class TestImportCounter:
    """Tests for the import counter."""

    def test_increment(self) -> None:
        """Test the counter fails once the limit is passed."""

        counter = ImportCounter(2)
        assert counter.increment()
        assert counter.increment()
        assert not counter.increment()
        assert counter.count == 3


class TestResolutionCache:
    """Tests for the resolution cache bookkeeping."""

    def test_would_deadlock(self) -> None:
        """Test cycles are detected through transitive waits."""

        cache = ResolutionCache()
        cache.add_wait("/a.css", "/b.css")
        cache.add_wait("/b.css", "/c.css")
        assert cache.would_deadlock("/c.css", "/a.css")
        assert cache.would_deadlock("/a.css", "/a.css")
        assert not cache.would_deadlock("/a.css", "/c.css")
        assert not cache.would_deadlock("/d.css", "/a.css")


class TestResolve:
    """Tests for resolving single stylesheets."""

    def test_empty_stylesheet(self) -> None:
        """Test an empty stylesheet resolves to no records."""

        assert run(resolve(Stylesheet("/site/main.css", ""))) == []

    def test_stylesheet_without_fonts(self) -> None:
        """Test rules without font data produce no records."""

        content = "body { color: red } @media print { p { margin: 0 } }"
        assert run(resolve(Stylesheet("/site/main.css", content))) == []

    def test_font_face_example(self) -> None:
        """Test a font-face rule becomes one font-face record."""

        records = run(
            resolve(
                Stylesheet(
                    "/a/b/x.css", '@font-face{font-family:"Foo";src:url(foo.woff);}'
                )
            )
        )
        assert records == [
            FontFaceRecord(
                id=font_id("Foo", DescriptorSet()),
                family="Foo",
                files=["/a/b/foo.woff"],
                descriptors=DescriptorSet(),
            )
        ]

    def test_font_usage_example(self) -> None:
        """Test a style rule becomes one font-usage record."""

        records = run(
            resolve(Stylesheet("/a/b/x.css", '.a,.b{font-family:"Foo","Bar";content:"Hi"}'))
        )
        assert records == [
            FontUsageRecord(
                ids=[font_id("Foo", DescriptorSet()), font_id("Bar", DescriptorSet())],
                families=["Foo", "Bar"],
                selectors=[".a", ".b"],
                chars=["H", "i"],
                descriptors=DescriptorSet(),
            )
        ]

    def test_charset_is_stripped(self) -> None:
        """Test a leading @charset does not hide later rules."""

        content = '@charset "utf-8";\n' + FACE_A
        assert families(run(resolve(Stylesheet("/site/main.css", content)))) == ["A"]

    def test_media_rules_are_transparent(self) -> None:
        """Test rules nested in @media are resolved in place."""

        content = "\n".join(
            [
                FACE_A,
                "@media screen { .m { font-family: M } .n { font-family: N } }",
                STYLE_B,
            ]
        )
        records = run(resolve(Stylesheet("/site/main.css", content)))
        assert families(records) == ["A", "M", "N", "B"]

    def test_accepts_awaitable_resource(self) -> None:
        """Test resolve() awaits an awaitable stylesheet."""

        async def load() -> Stylesheet:
            return Stylesheet("/site/main.css", FACE_A)

        assert families(run(resolve(load()))) == ["A"]

    def test_relative_entry_file(self, tmp_path, monkeypatch) -> None:
        """Test a relative entry path yields absolute font files and cache keys."""

        monkeypatch.chdir(tmp_path)
        cwd = os.getcwd()
        resolver = Resolver()

        records = run(resolver.resolve(Stylesheet(os.path.join("css", "x.css"), FACE_A)))

        assert records[0].files == [os.path.join(cwd, "css", "a.woff")]
        assert os.path.join(cwd, "css", "x.css") in resolver.cache

    def test_imports_are_expanded_in_place(self) -> None:
        """Test imported records replace their @import rule."""

        fetcher = MemoryFetcher(
            {
                "/site/fonts.css": face("Imported"),
                "/site/sub/more.css": '@import "../fonts.css";\n' + face("More"),
            }
        )
        content = '@import "fonts.css";\n@import url(sub/more.css);\n' + FACE_A
        records = run(resolve(Stylesheet("/site/main.css", content), fetcher=fetcher))
        assert families(records) == ["Imported", "Imported", "More", "A"]
        assert records[0].files == ["/site/Imported.woff"]


class TestOrdering:
    """Tests for declaration order of merged records."""

    def test_delayed_import_keeps_declaration_order(self) -> None:
        """Test a slow import still comes first in the output."""

        fetcher = MemoryFetcher(
            {"/site/c.css": face("C"), "/site/d.css": face("D")},
            delays={"/site/c.css": 0.05},
        )
        content = '@import "c.css";\n@import "d.css";\n' + FACE_A + STYLE_B
        records = run(resolve(Stylesheet("/site/main.css", content), fetcher=fetcher))
        assert fetcher.completed == ["/site/d.css", "/site/c.css"]
        assert families(records) == ["C", "D", "A", "B"]

    def test_rules_before_delayed_import(self) -> None:
        """Test an @import after other rules is followed in its source position."""

        fetcher = MemoryFetcher({"/site/c.css": face("C")}, delays={"/site/c.css": 0.05})
        content = FACE_A + " " + STYLE_B + ' @import "c.css";'

        records = run(resolve(Stylesheet("/site/main.css", content), fetcher=fetcher))

        assert fetcher.requests == ["/site/c.css"]
        assert families(records) == ["A", "B", "C"]

    def test_imports_between_rules(self) -> None:
        """Test leading and late imports interleave with rules in source order."""

        fetcher = MemoryFetcher(
            {"/site/c.css": face("C"), "/site/d.css": face("D")},
            delays={"/site/d.css": 0.05},
        )
        content = (
            '@import "c.css";\n'
            + FACE_A
            + '\n@import "d.css";\n@media screen { .m { font-family: M } }\n'
            + STYLE_B
        )

        records = run(resolve(Stylesheet("/site/main.css", content), fetcher=fetcher))

        assert families(records) == ["C", "A", "D", "M", "B"]

    def test_resolve_rules_keeps_given_order(self) -> None:
        """Test resolve_rules() merges an explicit rule list in order."""

        fetcher = MemoryFetcher({"/site/c.css": face("C")}, delays={"/site/c.css": 0.05})
        resolver = Resolver(fetcher=fetcher)
        rules = css_ast.parse_stylesheet('@import "c.css";', "/site/main.css")
        rules += css_ast.parse_stylesheet(FACE_A, "/site/main.css")

        records = run(resolve_rules(rules, "/site/main.css", resolver.new_context()))

        assert families(records) == ["C", "A"]


class TestImportLimit:
    """Tests for the import ceiling."""

    def test_chain_within_limit(self) -> None:
        """Test a chain of 15 imports resolves."""

        fetcher = MemoryFetcher(chain_files(15))
        records = run(
            resolve(Stylesheet("/chain/0.css", fetcher.files["/chain/0.css"]), fetcher=fetcher)
        )
        assert families(records) == [f"F{index}" for index in range(15, -1, -1)]

    def test_chain_over_limit(self) -> None:
        """Test the 16th import fails with the full file chain."""

        fetcher = MemoryFetcher(chain_files(16))
        with pytest.raises(ImportLimitError) as exc_info:
            run(
                resolve(
                    Stylesheet("/chain/0.css", fetcher.files["/chain/0.css"]),
                    fetcher=fetcher,
                )
            )
        error = exc_info.value
        assert error.files[0] == "/chain/15.css"
        assert error.files[-1] == "/chain/0.css"
        assert len(error.files) == 16
        assert "/chain/16.css" not in fetcher.requests
        assert str(error).startswith('parse "/chain/0.css" failed: ')
        assert "exceeds the maximum limit" in str(error)

    @pytest.mark.parametrize("cache", [True, False])
    def test_self_import(self, cache: bool) -> None:
        """Test a self-import ends with ImportLimitError."""

        content = '@import "self.css";\n' + FACE_A
        fetcher = MemoryFetcher({"/site/self.css": content})
        with pytest.raises(ImportLimitError):
            run(
                resolve(
                    Stylesheet("/site/self.css", content),
                    CrawlOptions(cache=cache),
                    fetcher,
                )
            )
        assert len(fetcher.requests) <= 15

    @pytest.mark.parametrize("cache", [True, False])
    def test_mutual_imports(self, cache: bool) -> None:
        """Test two stylesheets importing each other end with ImportLimitError."""

        fetcher = MemoryFetcher(
            {
                "/site/a.css": '@import "b.css";\n' + face("A"),
                "/site/b.css": '@import "a.css";\n' + face("B"),
            }
        )
        with pytest.raises(ImportLimitError):
            run(
                resolve(
                    Stylesheet("/site/a.css", fetcher.files["/site/a.css"]),
                    CrawlOptions(cache=cache),
                    fetcher,
                )
            )

    def test_limit_is_global_across_branches(self) -> None:
        """Test sibling branches share one import counter."""

        files = {}
        for branch in ("a", "b"):
            leaves = [f"{branch}{index}.css" for index in range(8)]
            files[f"/site/{branch}.css"] = "".join(f'@import "{leaf}";' for leaf in leaves)
            for leaf in leaves:
                files[f"/site/{leaf}"] = face(leaf)
        content = '@import "a.css";\n@import "b.css";'

        with pytest.raises(ImportLimitError):
            run(resolve(Stylesheet("/site/main.css", content), fetcher=MemoryFetcher(files)))

        records = run(
            resolve(
                Stylesheet("/site/main.css", content),
                CrawlOptions(max_imports=18),
                MemoryFetcher(files),
            )
        )
        assert len(records) == 16

    def test_zero_limit(self) -> None:
        """Test a zero limit rejects the first import without fetching."""

        fetcher = MemoryFetcher({"/site/a.css": face("A")})
        with pytest.raises(ImportLimitError) as exc_info:
            run(
                resolve(
                    Stylesheet("/site/main.css", '@import "a.css";'),
                    CrawlOptions(max_imports=0),
                    fetcher,
                )
            )
        assert exc_info.value.files == ("/site/main.css",)
        assert fetcher.requests == []

    def test_counter_is_per_entry_stylesheet(self) -> None:
        """Test each entry stylesheet starts a fresh counter."""

        fetcher = MemoryFetcher({"/site/a.css": face("A"), "/site/b.css": face("B")})
        resolver = Resolver(CrawlOptions(max_imports=1, cache=False), fetcher)
        assert families(
            run(resolver.resolve(Stylesheet("/site/x.css", '@import "a.css";')))
        ) == ["A"]
        assert families(
            run(resolver.resolve(Stylesheet("/site/y.css", '@import "b.css";')))
        ) == ["B"]


class TestCache:
    """Tests for the session cache."""

    def test_cache_isolation(self) -> None:
        """Test cached results are copied on every read."""

        resolver = Resolver()
        resource = Stylesheet("/site/main.css", FACE_A + STYLE_B)

        first = run(resolver.resolve(resource))
        second = run(resolver.resolve(resource))

        assert first == second
        assert first is not second
        assert "/site/main.css" in resolver.cache

        first[0].files.append("/tampered.woff")
        first.pop()
        third = run(resolver.resolve(resource))
        assert third == second
        assert third[0].files == ["/site/a.woff"]

    def test_shared_import_fetched_once(self) -> None:
        """Test a shared import is fetched once per session."""

        files = {
            "/site/a.css": '@import "shared.css";' + face("A"),
            "/site/b.css": '@import "shared.css";' + face("B"),
            "/site/shared.css": face("Shared"),
        }
        content = '@import "a.css";\n@import "b.css";'

        fetcher = MemoryFetcher(files)
        records = run(resolve(Stylesheet("/site/main.css", content), fetcher=fetcher))
        assert families(records) == ["Shared", "A", "Shared", "B"]
        assert fetcher.requests.count("/site/shared.css") == 1
        assert records[0] is not records[2]

        uncached = MemoryFetcher(files)
        records = run(
            resolve(
                Stylesheet("/site/main.css", content), CrawlOptions(cache=False), uncached
            )
        )
        assert families(records) == ["Shared", "A", "Shared", "B"]
        assert uncached.requests.count("/site/shared.css") == 2

    def test_cache_disabled(self) -> None:
        """Test nothing is cached when caching is off."""

        resolver = Resolver(CrawlOptions(cache=False))
        run(resolver.resolve(Stylesheet("/site/main.css", FACE_A)))
        assert len(resolver.cache) == 0

    def test_session_reused_after_failure(self) -> None:
        """Test imports left unfinished by a failed run resolve in the next run."""

        fetcher = MemoryFetcher(
            {"/site/slow.css": face("Slow")}, delays={"/site/slow.css": 0.2}
        )
        resolver = Resolver(fetcher=fetcher)

        with pytest.raises(FetchError):
            run(
                resolver.resolve(
                    Stylesheet(
                        "/site/main.css", '@import "missing.css"; @import "slow.css";'
                    )
                )
            )
        assert resolver.cache.get("/site/slow.css").cancelled()

        records = run(
            resolver.resolve(Stylesheet("/site/other.css", '@import "slow.css";'))
        )

        assert families(records) == ["Slow"]
        assert fetcher.requests.count("/site/slow.css") == 2
        assert not resolver.cache.get("/site/slow.css").cancelled()

    def test_discard(self) -> None:
        """Test discard() forgets an entry and its waits."""

        cache = ResolutionCache()
        cache.add_wait("/a.css", "/b.css")
        cache.discard("/a.css")
        assert not cache.would_deadlock("/b.css", "/a.css")
        cache.discard("/missing.css")


class TestFilterAndMap:
    """Tests for ignore patterns and map rules."""

    def test_ignored_import_is_not_fetched(self) -> None:
        """Test an ignored import is skipped without fetching."""

        fetcher = MemoryFetcher({"/site/a.css": face("A")})
        records = run(
            resolve(
                Stylesheet("/site/main.css", '@import "a.css";' + STYLE_B),
                CrawlOptions(ignore=[r"a\.css$"]),
                fetcher,
            )
        )
        assert fetcher.requests == []
        assert families(records) == ["B"]

    def test_ignored_font_file(self) -> None:
        """Test an ignored font source is left out of files."""

        records = run(
            resolve(
                Stylesheet("/site/main.css", FACE_A),
                CrawlOptions(ignore=[r"\.woff$"]),
            )
        )
        assert records[0].files == []

    def test_mapped_import_uses_rewritten_url(self) -> None:
        """Test a mapped import is fetched and cached by its new URL."""

        fetcher = MemoryFetcher({"/local/fonts.css": face("Mapped")})
        options = CrawlOptions(
            map=[(r"^https://cdn\.example\.com/", "/local/")],
        )
        resolver = Resolver(options, fetcher)
        content = '@import "https://cdn.example.com/fonts.css?v=3#x";'

        records = run(resolver.resolve(Stylesheet("/site/main.css", content)))

        assert fetcher.requests == ["/local/fonts.css"]
        assert "/local/fonts.css" in resolver.cache
        assert records[0].files == ["/local/Mapped.woff"]

    def test_invalid_pattern(self) -> None:
        """Test an invalid ignore pattern is rejected up front."""

        with pytest.raises(ValueError):
            Resolver(CrawlOptions(ignore=["["]))


class TestErrors:
    """Tests for error propagation and skipped rules."""

    def test_parse_error(self) -> None:
        """Test a parser failure becomes a ParseError naming the file."""

        with patch.object(
            css_ast.cssutils.CSSParser, "parseString", side_effect=ValueError("boom")
        ):
            with pytest.raises(ParseError) as exc_info:
                run(resolve(Stylesheet("/site/main.css", FACE_A)))
        assert exc_info.value.files == ("/site/main.css",)
        assert "boom" in str(exc_info.value)

    def test_nested_parse_error(self) -> None:
        """Test a nested ParseError is wrapped with the importing file."""

        fetcher = MemoryFetcher({"/site/bad.css": "bad"})
        real_parse = css_ast.parse_stylesheet

        def parse(content, file, strict=False):
            if file == "/site/bad.css":
                raise ParseError("unexpected token", (file,))
            return real_parse(content, file, strict)

        with patch("fontspider.resolver.css_ast.parse_stylesheet", side_effect=parse):
            with pytest.raises(ParseError) as exc_info:
                run(
                    resolve(
                        Stylesheet("/site/main.css", '@import "bad.css";'),
                        fetcher=fetcher,
                    )
                )
        assert exc_info.value.files == ("/site/bad.css", "/site/main.css")
        assert str(exc_info.value) == (
            'parse "/site/main.css" failed: parse "/site/bad.css" failed: '
            "unexpected token"
        )

    def test_fetch_error_names_requesting_file(self) -> None:
        """Test a missing import names every file up the chain."""

        fetcher = MemoryFetcher({"/site/a.css": '@import "missing.css";'})
        with pytest.raises(FetchError) as exc_info:
            run(resolve(Stylesheet("/site/main.css", '@import "a.css";'), fetcher=fetcher))
        assert exc_info.value.files == ("/site/a.css", "/site/main.css")
        assert "/site/missing.css" in str(exc_info.value)

    def test_unexpected_fetch_failure(self) -> None:
        """Test arbitrary fetcher exceptions become FetchError."""

        class BrokenFetcher:
            async def fetch(self, url, options):
                raise RuntimeError("connection reset")

        with pytest.raises(FetchError) as exc_info:
            run(
                resolve(
                    Stylesheet("/site/main.css", '@import "a.css";'),
                    fetcher=BrokenFetcher(),
                )
            )
        error = exc_info.value
        assert error.files == ("/site/main.css",)
        assert "connection reset" in str(error)
        assert isinstance(error.__cause__, FetchError)
        assert isinstance(error.__cause__.__cause__, RuntimeError)

    def test_failure_does_not_wait_for_siblings(self) -> None:
        """Test the first failure is raised before slow siblings finish."""

        fetcher = MemoryFetcher({"/site/slow.css": face("Slow")}, delays={"/site/slow.css": 1})

        async def check():
            with pytest.raises(FetchError):
                await resolve(
                    Stylesheet("/site/main.css", '@import "missing.css"; @import "slow.css";'),
                    fetcher=fetcher,
                )
            assert "/site/slow.css" in fetcher.requests
            assert "/site/slow.css" not in fetcher.completed

        run(check())

    def test_bad_rule_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test a font-face without family is logged and skipped."""

        content = "@font-face { src: url(nameless.woff) }\n" + FACE_A + STYLE_B
        records = run(resolve(Stylesheet("/site/main.css", content)))
        assert families(records) == ["A", "B"]
        assert "Skipping font-face rule in /site/main.css" in caplog.text

    def test_unexpected_rule_failure_is_skipped(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test an unexpected handler error is logged and skipped."""

        with patch(
            "fontspider.resolver.FontRuleExtractor.style",
            side_effect=KeyError("selectorText"),
        ):
            records = run(resolve(Stylesheet("/site/main.css", FACE_A + STYLE_B)))
        assert families(records) == ["A"]
        assert "Skipping style rule" in caplog.text
