"""资源引用提取测试"""

from pathlib import Path

import pytest

from assetmirror.core.paths import PathResolver
from assetmirror.core.references import ReferenceExtractor, looks_like_asset_path


class TestLooksLikeAssetPath:
    @pytest.mark.parametrize("value", ["tex/wood.png", "a/b/c.ltcb.ls", "./x/y.ltc"])
    def test_accepts(self, value: str) -> None:
        assert looks_like_asset_path(value) is True

    @pytest.mark.parametrize("value", [
        "",
        "wood.png",
        "a/b",
        "http://cdn.example.com/x.png",
        "https://cdn.example.com/x.png",
        "data:image/png;base64,iVBOR",
        "tex/{id}.png",
    ])
    def test_rejects(self, value: str) -> None:
        assert looks_like_asset_path(value) is False


@pytest.fixture
def extractor(tmp_path: Path) -> ReferenceExtractor:
    return ReferenceExtractor(PathResolver(tmp_path))


class TestIsReference:
    def test_path_with_dir(self, extractor: ReferenceExtractor) -> None:
        assert extractor.is_reference("textures/wood.png") is True

    def test_bare_hierarchy_name(self, extractor: ReferenceExtractor) -> None:
        assert extractor.is_reference("child.lmat") is True
        assert extractor.is_reference("Grand.LTC") is True

    def test_bare_non_hierarchy_name(self, extractor: ReferenceExtractor) -> None:
        assert extractor.is_reference("wood.png") is False

    def test_url_never_reference(self, extractor: ReferenceExtractor) -> None:
        assert extractor.is_reference("http://cdn.example.com/x.png") is False
        assert extractor.is_reference("http://cdn.example.com/x.ltc") is False

    def test_pattern_rejects_long_extension(self, extractor: ReferenceExtractor) -> None:
        assert extractor.is_reference("dir/file.toolongext") is False

    def test_template_rejected(self, extractor: ReferenceExtractor) -> None:
        assert extractor.is_reference("mat/{name}.lmat") is False

    def test_custom_pattern(self, tmp_path: Path) -> None:
        ex = ReferenceExtractor(PathResolver(tmp_path), pattern=r"^tex/.*\.png$")
        assert ex.is_reference("tex/a.png") is True
        assert ex.is_reference("mat/a.lmat") is False


class TestExtract:
    def test_resolves_against_source_dir_and_dedups(self, extractor: ReferenceExtractor) -> None:
        data = {
            "name": "child.lmat",
            "children": [
                {"name": "sub/grand.ltc"},
                {"name": "child.lmat"},
                {"name": "../shared/base.ltc"},
            ],
            "desc": "other/file.png",
            "icon": {"name": "http://cdn.example.com/x.png"},
        }
        assert extractor.extract(data, "scene/top.ls") == [
            "scene/child.lmat",
            "scene/sub/grand.ltc",
            "shared/base.ltc",
        ]

    def test_custom_keys(self, tmp_path: Path) -> None:
        ex = ReferenceExtractor(PathResolver(tmp_path), keys=("name", "texture"))
        data = {"texture": "tex/a.png", "name": "m.lmat", "mesh": "mesh/a.bin"}
        assert ex.extract(data, "top.ls") == ["tex/a.png", "m.lmat"]

    def test_empty_data(self, extractor: ReferenceExtractor) -> None:
        assert extractor.extract({}, "top.ls") == []
        assert extractor.extract(None, "top.ls") == []
